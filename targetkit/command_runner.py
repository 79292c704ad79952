"""Execution of the external commands issued by build steps."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Sequence
import shlex
import subprocess


def format_command(command: Sequence[str]) -> str:
    return " ".join(shlex.quote(part) for part in command)


@dataclass(slots=True)
class CommandResult:
    command: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""


class CommandError(RuntimeError):
    """Raised when a command exits with a non-zero status."""

    def __init__(self, result: CommandResult):
        super().__init__(
            f"Command failed with exit code {result.returncode}: {format_command(result.command)}\n"
            f"stdout: {result.stdout}\n"
            f"stderr: {result.stderr}"
        )
        self.result = result


class CommandRunner:
    """Runs one command; ``note`` describes it for the user."""

    def run(self, command: Sequence[str], *, note: str | None = None) -> CommandResult:
        raise NotImplementedError


class SubprocessCommandRunner(CommandRunner):
    def run(self, command: Sequence[str], *, note: str | None = None) -> CommandResult:
        process = subprocess.run(list(command), capture_output=True, text=True, check=False)
        result = CommandResult(list(command), process.returncode, process.stdout, process.stderr)
        if result.returncode != 0:
            raise CommandError(result)
        return result


@dataclass(slots=True)
class RecordedCommand:
    command: List[str]
    note: str | None = None


class RecordingCommandRunner(CommandRunner):
    """Records commands instead of executing them, for dry runs."""

    def __init__(self) -> None:
        self.commands: List[RecordedCommand] = []

    def run(self, command: Sequence[str], *, note: str | None = None) -> CommandResult:
        self.commands.append(RecordedCommand(list(command), note))
        return CommandResult(list(command), 0)

    def iter_formatted(self) -> Iterable[str]:
        for record in self.commands:
            prefix = f"[dry-run] {record.note} " if record.note else "[dry-run] "
            yield prefix + format_command(record.command)


__all__ = [
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "RecordedCommand",
    "RecordingCommandRunner",
    "SubprocessCommandRunner",
    "format_command",
]
