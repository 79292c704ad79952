"""Source file discovery: glob expansion, template sources and first-line access."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Sequence
import glob
import os

TEMPLATE_SUFFIX = ".in"

_GLOB_CHARACTERS = set("*?[")
_IGNORED_DIRECTORIES = {"__pycache__", ".git", ".svn"}


def is_glob(pattern: str) -> bool:
    return any(char in _GLOB_CHARACTERS for char in pattern)


def strip_template_suffix(path: Path) -> Path:
    if path.name.endswith(TEMPLATE_SUFFIX) and len(path.name) > len(TEMPLATE_SUFFIX):
        return path.with_name(path.name[: -len(TEMPLATE_SUFFIX)])
    return path


def template_candidate(path: Path) -> Path:
    """Return ``path`` or, if only a ``.in`` template of it exists, the template."""

    if path.exists() or path.name.endswith(TEMPLATE_SUFFIX):
        return path
    candidate = path.with_name(path.name + TEMPLATE_SUFFIX)
    if candidate.is_file():
        return candidate
    return path


def read_first_line(path: Path) -> str:
    """Return the first line of ``path`` without its line terminator."""

    with path.open("r", encoding="utf-8", errors="replace") as handle:
        return handle.readline().rstrip("\r\n")


def _walk_directory(directory: Path) -> List[Path]:
    files: List[Path] = []
    for path in sorted(directory.rglob("*")):
        relative = path.relative_to(directory)
        if any(part in _IGNORED_DIRECTORIES or part.startswith(".") for part in relative.parts):
            continue
        if path.is_file():
            files.append(path)
    return files


@dataclass(slots=True)
class GlobRecord:
    """Glob patterns of a target and the file list they expanded to."""

    uid: str
    base_dir: Path
    patterns: tuple[str, ...]
    files: tuple[Path, ...] = field(default_factory=tuple)

    def expand(self) -> tuple[Path, ...]:
        matches: List[Path] = []
        for pattern in self.patterns:
            absolute = pattern if Path(pattern).is_absolute() else str(self.base_dir / pattern)
            for match in sorted(glob.glob(absolute, recursive=True)):
                path = Path(match)
                if path.is_file() and path not in matches:
                    matches.append(path)
        return tuple(matches)

    def is_stale(self) -> bool:
        """Whether re-globbing now yields a different file list."""
        return self.expand() != self.files


class SourceFinder:
    """Expands user-given source arguments relative to a base directory."""

    def __init__(self, base_dir: Path) -> None:
        self.base_dir = base_dir

    def absolute(self, value: str | Path) -> Path:
        path = Path(value).expanduser()
        if not path.is_absolute():
            path = self.base_dir / path
        return Path(os.path.normpath(path))

    def expand(self, values: Sequence[str | Path], *, uid: str) -> tuple[List[Path], GlobRecord | None]:
        """Expand ``values`` into concrete files.

        Returns the file list and, if any glob pattern was involved, the
        :class:`GlobRecord` needed to detect changes of the matched files.
        """

        files: List[Path] = []
        patterns: List[str] = []

        def _add(path: Path) -> None:
            if path not in files:
                files.append(path)

        for value in values:
            text = str(value)
            if is_glob(text):
                patterns.append(text)
                continue
            path = self.absolute(text)
            if path.is_dir():
                for item in _walk_directory(path):
                    _add(item)
            else:
                _add(template_candidate(path))

        record: GlobRecord | None = None
        if patterns:
            record = GlobRecord(uid=uid, base_dir=self.base_dir, patterns=tuple(patterns))
            record.files = record.expand()
            for path in record.files:
                _add(path)
        return files, record


def missing_files(paths: Iterable[Path]) -> List[Path]:
    return [path for path in paths if not path.exists()]


__all__ = [
    "GlobRecord",
    "SourceFinder",
    "TEMPLATE_SUFFIX",
    "is_glob",
    "missing_files",
    "read_first_line",
    "strip_template_suffix",
    "template_candidate",
]
