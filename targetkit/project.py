"""Project-level API used to declare targets of one configuration run."""
from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Mapping

from .command_runner import CommandRunner, SubprocessCommandRunner
from .console import Console
from .dependencies import DependencyResolver
from .dispatcher import TargetDispatcher, TargetOptions
from .engine import EngineAdapter, RecordingEngine
from .errors import PhaseError, StaleSources
from .finalize import CrossCompiledGenerator, Finalizer
from .identity import IdentityResolver
from .init_py import InitPyGenerator
from .language import LineReader
from .manifest import ExportManifest
from .model import Language, Target, TargetKind
from .properties import PropertyStore
from .registry import TargetRegistry
from .scripts import ScriptGenerator
from .settings import ProjectSettings
from .sources import read_first_line


class Project:
    """Wires the components of one configuration run together.

    All state (registry, properties, engine graph) lives on the instance and
    is discarded with it.
    """

    def __init__(
        self,
        settings: ProjectSettings,
        *,
        engine: EngineAdapter | None = None,
        console: Console | None = None,
        runner: CommandRunner | None = None,
        reader: LineReader = read_first_line,
        cross_compiled: CrossCompiledGenerator | None = None,
    ) -> None:
        self.settings = settings
        self.engine = engine if engine is not None else RecordingEngine()
        self.console = console if console is not None else Console(settings.log_level)
        self.runner = runner if runner is not None else SubprocessCommandRunner()
        self.registry = TargetRegistry()
        self.identity = IdentityResolver(settings.namespace, self.registry)
        self.properties = PropertyStore(self.registry, self.identity)
        self.dependencies = DependencyResolver(
            self.registry,
            self.identity,
            self.engine,
            self.console,
            matching=settings.dependency_matching,
            implicit_dependencies=settings.implicit_dependencies,
        )
        self.dispatcher = TargetDispatcher(
            settings, self.registry, self.identity, self.engine, self.console, reader=reader
        )
        self.scripts = ScriptGenerator(settings, self.engine, self.dependencies, self.console)
        self.finalizer = Finalizer(
            self.registry,
            self.scripts,
            InitPyGenerator(settings, self.registry, self.engine),
            self.console,
            cross_compiled=cross_compiled,
        )
        self.current_source_dir = settings.source_dir
        self.current_binary_dir = settings.binary_dir

    @classmethod
    def from_file(cls, path: Path, **kwargs: Any) -> "Project":
        return cls(ProjectSettings.from_file(path), **kwargs)

    @contextmanager
    def subdirectory(self, path: str | Path) -> Iterator["Project"]:
        """Declare targets relative to a subdirectory of the current source directory."""
        previous = (self.current_source_dir, self.current_binary_dir)
        relative = Path(path)
        if relative.is_absolute():
            relative = relative.relative_to(self.settings.source_dir)
        self.current_source_dir = previous[0] / relative
        self.current_binary_dir = previous[1] / relative
        try:
            yield self
        finally:
            self.current_source_dir, self.current_binary_dir = previous

    def _declare(self, request: str, name: str, sources: Iterable[str | Path], options: Mapping[str, Any]) -> Target:
        return self.dispatcher.declare(
            request,
            name,
            list(sources),
            TargetOptions.from_mapping(options),
            source_dir=self.current_source_dir,
            binary_dir=self.current_binary_dir,
        )

    def add_executable(self, name: str, *sources: str | Path, **options: Any) -> Target:
        return self._declare("executable", name, sources, options)

    def add_library(self, name: str, *sources: str | Path, **options: Any) -> Target:
        return self._declare("library", name, sources, options)

    def add_script(self, name: str, *sources: str | Path, **options: Any) -> Target:
        return self._declare("script", name, sources, options)

    def import_target(
        self,
        uid: str,
        kind: TargetKind | str,
        *,
        location: str | Path,
        install_location: str | Path | None = None,
        language: Language | str = Language.CXX,
        link: Iterable[str] = (),
    ) -> Target:
        """Register a target built outside of this project."""

        if self.registry.finalized:
            raise PhaseError(f"Cannot import target '{uid}' after the targets were finalized", uid=uid)
        kind = TargetKind(kind) if not isinstance(kind, TargetKind) else kind
        uid = uid[1:] if uid.startswith(".") else uid
        properties = {"IMPORTED_LOCATION": str(location)}
        if install_location is not None:
            properties["IMPORTED_INSTALL_LOCATION"] = str(install_location)
        target = Target(uid, kind, Language.parse(language), imported=True, properties=properties)
        self.registry.add(target)
        for token in link:
            target.link_dependencies.append(token, self.identity.resolve(token))
        self.console.debug(f"Imported {kind.label} {uid}")
        return target

    def target(self, name: str) -> Target:
        return self.properties.target(name)

    def add_dependencies(self, name: str, *tokens: str) -> List[str]:
        return self.dependencies.add_dependencies(self.target(name), tokens)

    def target_link_libraries(self, name: str, *tokens: str) -> List[str]:
        return self.dependencies.add_link_libraries(self.target(name), tokens)

    def set_implicit_dependencies(self, token: str, dependencies: Iterable[str]) -> None:
        self.dependencies.set_implicit_dependencies(token, dependencies)

    def set_target_properties(self, names: str | Iterable[str], **values: Any) -> None:
        self.properties.set_many(names, values)

    def get_target_property(self, name: str, key: str) -> Any:
        return self.properties.get(name, key)

    def include_directories(self, *directories: str | Path, before: bool = False) -> List[str]:
        if not directories:
            self.console.warning("No directories given to add!")
            return list(self.registry.include_directories)
        current = self.registry.include_directories
        added = []
        for directory in directories:
            path = Path(directory)
            if not path.is_absolute():
                path = self.current_source_dir / path
            text = str(path)
            if text not in current and text not in added:
                added.append(text)
        if before:
            current[:0] = added
        else:
            current.extend(added)
        return list(current)

    def finalize(self) -> List[str]:
        return self.finalizer.finalize()

    def build(self, runner: CommandRunner | None = None) -> List[str]:
        """Execute the synthesized build steps of a recording engine."""
        if not isinstance(self.engine, RecordingEngine):
            raise TypeError("Only the recording engine can execute build steps")
        stale = self.engine.stale_globs()
        if stale:
            changed: set[Path] = set()
            for uid in stale:
                record = self.engine.glob_checks[uid]
                changed.update(set(record.expand()) ^ set(record.files))
            raise StaleSources(
                f"Files matched by the source patterns of {', '.join(stale)} changed since the "
                "targets were declared. Reconfigure the project to update the source lists",
                uid=stale[0] if len(stale) == 1 else None,
                sources=sorted(changed),
            )
        return self.engine.run(runner or self.runner)

    def exports(self) -> ExportManifest:
        return ExportManifest.from_registry(self.registry, self.settings)


__all__ = ["Project"]
