"""Generation of missing ``__init__.py`` files of Python packages."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List, Set

from .command_runner import CommandRunner
from .configure import ConfigureScript, ScriptConfigurer, compiled_path
from .engine import BuildStep, EngineAdapter, InstallRule, StepAction
from .model import Language, TargetKind
from .registry import TargetRegistry
from .settings import ProjectSettings

INIT_PY = "__init__.py"

INIT_PY_CONTENT = (
    '"""Namespace package generated at build time."""\n'
    "from pkgutil import extend_path\n"
    "__path__ = extend_path(__path__, __name__)\n"
)

_MODULE_KINDS = {TargetKind.SCRIPT_MODULE, TargetKind.SCRIPT_LIBRARY}


def package_directories(path: Path, root: Path) -> List[Path]:
    """Directories strictly between ``root`` and ``path``, outermost first."""
    try:
        relative = path.parent.relative_to(root)
    except ValueError:
        return []
    directories: List[Path] = []
    current = root
    for part in relative.parts:
        current = current / part
        directories.append(current)
    return directories


class WriteInitPy(StepAction):
    """Writes missing ``__init__.py`` files and byte-compiles them if a configurer is given."""

    def __init__(self, files: Iterable[Path], configurer: ScriptConfigurer | None = None) -> None:
        self.files = sorted(set(files))
        self.configurer = configurer

    def execute(self, runner: CommandRunner) -> None:
        for path in self.files:
            if not path.exists():
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(INIT_PY_CONTENT, encoding="utf-8")
            if self.configurer is not None:
                self.configurer.compile(runner, path, compiled_path(path))

    def describe(self) -> Dict[str, Any]:
        return {
            "type": "write-init-py",
            "files": [str(path) for path in self.files],
            "compile": self.configurer is not None,
        }


class InitPyGenerator:
    """Adds one build step writing ``__init__.py`` where a package lacks one."""

    def __init__(self, settings: ProjectSettings, registry: TargetRegistry, engine: EngineAdapter) -> None:
        self.settings = settings
        self.registry = registry
        self.engine = engine
        self.uid = f"{settings.namespace}._initpy"
        self.staging_dir = settings.binary_dir / "targetkit" / "_initpy.dir" / "install"

    def generate(self, steps: Iterable[BuildStep]) -> BuildStep | None:
        build_roots = [
            self.settings.output_dir("library", test=test, language=Language.PYTHON) for test in (False, True)
        ]
        install_root = self.settings.install_dir("library", language=Language.PYTHON).rstrip("/")

        owners: List[str] = []
        produced: Set[Path] = set()
        build_dirs: Set[Path] = set()
        install_dirs: Set[str] = set()
        installed: Set[str] = set()
        for step in steps:
            target = self.registry.get(step.target)
            if target is None or target.kind not in _MODULE_KINDS or not target.language.is_python:
                continue
            if not isinstance(step.action, ConfigureScript):
                continue
            owners.append(target.uid)
            for script in step.action.files:
                produced.add(script.output)
                for root in build_roots:
                    build_dirs.update(package_directories(script.output, root))
                if script.destination is None:
                    continue
                destination = Path(script.destination) / script.output.name
                for directory in package_directories(destination, Path(install_root)):
                    install_dirs.add(directory.relative_to(install_root).as_posix())
                if script.output.name == INIT_PY:
                    installed.add(Path(script.destination).as_posix())

        build_files = [directory / INIT_PY for directory in build_dirs if directory / INIT_PY not in produced]
        install_files = {
            relative: self.staging_dir / relative / INIT_PY
            for relative in sorted(install_dirs)
            if f"{install_root}/{relative}" not in installed
        }
        if not build_files and not install_files:
            return None

        configurer: ScriptConfigurer | None = None
        if self.settings.compile_scripts:
            configurer = ScriptConfigurer(python_executable=self.settings.python_executable)
        files = sorted(build_files) + list(install_files.values())
        outputs = list(files)
        if configurer is not None:
            outputs.extend(compiled_path(path) for path in files)

        step = BuildStep(
            name="_initpy",
            target=self.uid,
            outputs=tuple(outputs),
            action=WriteInitPy(files, configurer),
            target_dependencies=tuple(owners),
            comment="Generating __init__.py files of Python packages...",
        )
        self.engine.add_build_step(step)
        self.engine.add_clean_files(step.outputs)
        for relative, path in install_files.items():
            sources = [path] if configurer is None else [path, compiled_path(path)]
            for source in sources:
                self.engine.add_install_rule(
                    InstallRule(
                        kind="files",
                        source=str(source),
                        destination=f"{install_root}/{relative}",
                        component=self.settings.library_component,
                    )
                )
        return step


__all__ = ["INIT_PY", "InitPyGenerator", "WriteInitPy", "package_directories"]
