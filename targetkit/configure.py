"""Body of the build step synthesized for script targets.

A script is configured by replacing ``@NAME@`` references with variables
collected from an ordered list of configuration files. Later files take
precedence. Scripts that are installed are rendered a second time with
``BUILD_INSTALL_SCRIPT`` set so that they can refer to install-tree paths.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence
import os
import stat

from .command_runner import CommandError, CommandRunner
from .config_loader import load_config_file, merge_mappings
from .engine import StepAction
from .errors import GenerationError
from .template import TemplateError, TemplateResolver, substitute_variables

_COMPILE_SNIPPET = (
    "import py_compile, sys; "
    "py_compile.compile(sys.argv[1], cfile=sys.argv[2], doraise=True)"
)


@dataclass(slots=True)
class ScriptFile:
    """One source file of a script target and the files generated from it."""

    source: Path
    output: Path
    install_output: Path | None = None
    destination: str | None = None
    compiled: Path | None = None
    install_compiled: Path | None = None

    def outputs(self) -> List[Path]:
        paths = [self.output, self.install_output, self.compiled, self.install_compiled]
        return [path for path in paths if path is not None]


class ScriptConfigurer:
    """Loads script configuration and writes configured scripts."""

    def __init__(self, *, strict: bool = False, python_executable: str = "python3") -> None:
        self.strict = strict
        self.python_executable = python_executable

    def load_variables(
        self, config_files: Sequence[Path], *, defaults: Mapping[str, Any] | None = None
    ) -> Dict[str, Any]:
        variables: Dict[str, Any] = dict(defaults or {})
        for path in config_files:
            try:
                data = load_config_file(path)
            except OSError as exc:
                raise GenerationError(f"Failed to read script configuration {path}: {exc}") from exc
            variables = merge_mappings(variables, data)
        try:
            return TemplateResolver(variables).resolve_all()
        except TemplateError as exc:
            raise GenerationError(f"Invalid script configuration: {exc}") from exc

    def configure(self, source: Path, output: Path, variables: Mapping[str, Any]) -> bool:
        """Write the configured ``source`` to ``output``.

        Returns ``False`` if ``output`` already had the configured content.
        """

        try:
            text = source.read_text(encoding="utf-8")
        except OSError as exc:
            raise GenerationError(f"Failed to read script {source}: {exc}") from exc
        try:
            configured = substitute_variables(text, variables, strict=self.strict)
        except TemplateError as exc:
            raise GenerationError(f"Failed to configure {source}: {exc}") from exc

        if output.is_file() and output.read_text(encoding="utf-8") == configured:
            return False
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(configured, encoding="utf-8")
        return True

    def compile(self, runner: CommandRunner, source: Path, output: Path) -> None:
        output.parent.mkdir(parents=True, exist_ok=True)
        command = [self.python_executable, "-c", _COMPILE_SNIPPET, str(source), str(output)]
        try:
            runner.run(command, note=f"Compiling {source.name}")
        except CommandError as exc:
            raise GenerationError(f"Failed to compile {source}: {exc}") from exc


def compiled_path(path: Path) -> Path:
    """Byte-compiled sibling of a Python file (``mod.py`` gives ``mod.pyc``)."""
    return path.with_name(path.name + "c")


def make_executable(path: Path) -> None:
    mode = path.stat().st_mode
    os.chmod(path, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


@dataclass
class ConfigureScript(StepAction):
    """Configures (and optionally compiles) all files of one script target."""

    uid: str
    files: List[ScriptFile]
    config_files: List[Path]
    configurer: ScriptConfigurer
    build_link_depends: List[str] = field(default_factory=list)
    install_link_depends: List[str] = field(default_factory=list)
    executable: bool = False

    def variables(self, *, install: bool) -> Dict[str, Any]:
        defaults = {
            "BUILD_INSTALL_SCRIPT": install,
            "LINK_DEPENDS": self.install_link_depends if install else self.build_link_depends,
        }
        return self.configurer.load_variables(self.config_files, defaults=defaults)

    def execute(self, runner: CommandRunner) -> None:
        try:
            self._execute(runner)
        except GenerationError as exc:
            if exc.uid is None:
                raise GenerationError(exc.reason, uid=self.uid) from exc
            raise

    def _execute(self, runner: CommandRunner) -> None:
        build_variables = self.variables(install=False)
        install_variables: Dict[str, Any] | None = None
        for script in self.files:
            self.configurer.configure(script.source, script.output, build_variables)
            if self.executable:
                make_executable(script.output)
            if script.compiled is not None:
                self.configurer.compile(runner, script.output, script.compiled)

            if script.install_output is None:
                continue
            if install_variables is None:
                install_variables = self.variables(install=True)
            self.configurer.configure(script.source, script.install_output, install_variables)
            if self.executable:
                make_executable(script.install_output)
            if script.install_compiled is not None:
                self.configurer.compile(runner, script.install_output, script.install_compiled)

    def describe(self) -> Dict[str, Any]:
        return {
            "type": "configure-script",
            "uid": self.uid,
            "config_files": [str(path) for path in self.config_files],
            "files": [
                {
                    "source": str(script.source),
                    "output": str(script.output),
                    "install_output": str(script.install_output) if script.install_output else None,
                    "destination": script.destination,
                    "compiled": str(script.compiled) if script.compiled else None,
                    "install_compiled": str(script.install_compiled) if script.install_compiled else None,
                }
                for script in self.files
            ],
            "executable": self.executable,
        }


__all__ = ["ConfigureScript", "ScriptConfigurer", "ScriptFile", "compiled_path", "make_executable"]
