"""Declaration of executables, libraries and scripts.

The dispatcher expands and classifies the sources of a new target, picks
the target kind, fills in default output and installation settings and
hands the target to the engine. Script and cross-compiled targets only
get a placeholder at this point; their build steps are synthesized when
the project is finalized.
"""
from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence
import os

from .console import Console
from .engine import EngineAdapter, InstallRule
from .errors import (
    AmbiguousLanguage,
    ConflictingOptions,
    InvalidSources,
    MissingSources,
    PhaseError,
    UnknownLanguage,
)
from .identity import IdentityResolver
from .language import LineReader, classify_sources
from .locations import default_affixes
from .model import Language, Target, TargetKind
from .registry import TargetRegistry
from .scripts import target_build_dir, write_variable_cache
from .settings import ProjectSettings
from .sources import SourceFinder, missing_files, read_first_line, strip_template_suffix, template_candidate

REQUESTS = ("executable", "library", "script")

_LIBRARY_TYPES = ("static", "shared", "module", "mex")

_EXECUTABLE_KINDS = {
    TargetKind.EXECUTABLE,
    TargetKind.SCRIPT_EXECUTABLE,
    TargetKind.SCRIPT_LIBEXEC,
    TargetKind.MCC_EXECUTABLE,
}


@dataclass(slots=True)
class TargetOptions:
    language: str | None = None
    destination: str | None = None
    component: str | None = None
    output_name: str | None = None
    executable: bool = False
    libexec: bool = False
    module: bool = False
    static: bool = False
    shared: bool = False
    mex: bool = False
    test: bool | None = None
    export: bool | None = None
    compile: bool | None = None
    compile_definitions: str | Mapping[str, Any] | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TargetOptions":
        known = {item.name for item in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in data.items():
            if key == "library_type":
                library_type = str(value).lower()
                if library_type not in _LIBRARY_TYPES:
                    raise ValueError(
                        f"library_type must be one of: {', '.join(_LIBRARY_TYPES)}"
                    )
                values[library_type] = True
                continue
            if key not in known:
                raise ValueError(f"Unknown target option '{key}'")
            values[key] = value
        return cls(**values)

    def library_types(self) -> List[str]:
        return [name for name in _LIBRARY_TYPES if getattr(self, name)]


class TargetDispatcher:
    def __init__(
        self,
        settings: ProjectSettings,
        registry: TargetRegistry,
        identity: IdentityResolver,
        engine: EngineAdapter,
        console: Console,
        *,
        reader: LineReader = read_first_line,
    ) -> None:
        self.settings = settings
        self.registry = registry
        self.identity = identity
        self.engine = engine
        self.console = console
        self.reader = reader

    def declare(
        self,
        request: str,
        name: str,
        sources: Sequence[str | Path],
        options: TargetOptions | None = None,
        *,
        source_dir: Path,
        binary_dir: Path,
    ) -> Target:
        if request not in REQUESTS:
            raise ValueError(f"Unknown target request '{request}'. Supported: {', '.join(REQUESTS)}")
        options = options or TargetOptions()
        if self.registry.finalized:
            raise PhaseError(f"Cannot add target '{name}' after the targets were finalized")

        finder = SourceFinder(source_dir)
        name, sources = self._derive_name(request, name, sources, finder, options)
        self.identity.check_name(name)
        uid = self.identity.make_uid(name)

        files, glob_record = finder.expand(sources, uid=uid)
        if not files:
            raise MissingSources("No source files given or found", uid=uid, sources=sources)
        language = self._language(uid, files, options)
        kind = self._kind(request, uid, language, files, options)
        if not kind.is_native:
            missing = missing_files(files)
            if missing:
                raise MissingSources("Source files do not exist", uid=uid, sources=missing)

        self.identity.register(name, kind)
        self.console.debug(f"Adding {kind.label} {uid}...")

        try:
            is_test = options.test if options.test is not None else self._is_test(source_dir)
            target = Target(
                uid,
                kind,
                language,
                sources=files,
                build_dir=target_build_dir(self.settings, uid),
                source_dir=source_dir,
                binary_dir=binary_dir,
                is_test=is_test,
                properties=self._properties(uid, kind, language, files, is_test, options),
            )
        except Exception:
            self.registry.release(uid)
            raise
        self.registry.add(target)

        if kind.is_native:
            self.engine.add_native_target(uid, kind, files, target.properties)
            destination = target.properties.get("INSTALL_DIRECTORY")
            if destination:
                self.engine.add_install_rule(
                    InstallRule(
                        kind="targets",
                        source=uid,
                        destination=destination,
                        component=target.properties["COMPONENT"],
                        export=uid if target.exported and not is_test else None,
                    )
                )
        else:
            self.engine.add_custom_target(uid, files)
            if kind.is_script:
                write_variable_cache(self.settings, target)
        if glob_record is not None:
            self.engine.add_glob_check(glob_record)

        self.console.debug(f"Adding {kind.label} {uid}... - done")
        return target

    def _derive_name(
        self,
        request: str,
        name: str,
        sources: Sequence[str | Path],
        finder: SourceFinder,
        options: TargetOptions,
    ) -> tuple[str, List[str | Path]]:
        """Derive the logical target name if ``name`` is a file or directory."""

        if sources:
            return name, list(sources)
        path = template_candidate(finder.absolute(name))
        if not path.exists():
            return name, []
        if path.is_dir():
            return path.name, [path]
        base = strip_template_suffix(path)
        keep_extension = request == "script" and not (options.executable or options.libexec)
        return (base.name if keep_extension else base.stem), [path]

    def _language(self, uid: str, files: Sequence[Path], options: TargetOptions) -> Language:
        if options.language:
            try:
                language = Language.parse(options.language)
            except ValueError as exc:
                raise UnknownLanguage(str(exc), uid=uid, sources=files) from exc
        else:
            language = classify_sources(files, reader=self.reader)
        if language is Language.AMBIGUOUS:
            raise AmbiguousLanguage(
                "Ambiguous source code files! Set the language explicitly if the sources are "
                "written in one language",
                uid=uid,
                sources=files,
            )
        if language is Language.UNKNOWN:
            raise UnknownLanguage(
                "Failed to determine the programming language of the source code files",
                uid=uid,
                sources=files,
            )
        return language

    def _kind(
        self,
        request: str,
        uid: str,
        language: Language,
        files: Sequence[Path],
        options: TargetOptions,
    ) -> TargetKind:
        library_types = options.library_types()
        if len(library_types) > 1:
            raise ConflictingOptions(
                f"More than one library type given: {', '.join(item.upper() for item in library_types)}",
                uid=uid,
            )

        if request == "executable":
            if library_types:
                raise ConflictingOptions(
                    f"Option {library_types[0].upper()} is not valid for executables", uid=uid
                )
            if language is Language.CXX:
                return TargetKind.EXECUTABLE
            if language is Language.MATLAB:
                return TargetKind.MCC_EXECUTABLE
            self._require_single_source(uid, files)
            return TargetKind.SCRIPT_LIBEXEC if options.libexec else TargetKind.SCRIPT_EXECUTABLE

        if request == "library":
            if options.executable or options.libexec:
                raise ConflictingOptions("Options EXECUTABLE and LIBEXEC are not valid for libraries", uid=uid)
            if language is Language.CXX:
                if options.mex:
                    return TargetKind.MEX
                if options.static:
                    return TargetKind.STATIC_LIBRARY
                if options.shared:
                    return TargetKind.SHARED_LIBRARY
                if options.module:
                    return TargetKind.MODULE_LIBRARY
                return TargetKind.SHARED_LIBRARY if self.settings.build_shared_libs else TargetKind.STATIC_LIBRARY
            if library_types:
                raise ConflictingOptions(
                    f"Option {library_types[0].upper()} is not valid for {language.value} libraries",
                    uid=uid,
                )
            if language is Language.MATLAB:
                return TargetKind.MCC_LIBRARY
            return TargetKind.SCRIPT_LIBRARY

        if not language.is_script:
            raise InvalidSources(f"Source code file is not a script but {language.value}", uid=uid, sources=files)
        self._require_single_source(uid, files)
        subtypes = [flag for flag in ("module", "executable", "libexec") if getattr(options, flag)]
        if len(subtypes) > 1:
            raise ConflictingOptions(
                f"Options {', '.join(item.upper() for item in subtypes)} are mutually exclusive", uid=uid
            )
        if options.static or options.shared or options.mex:
            raise ConflictingOptions(f"Option {library_types[0].upper()} is not valid for scripts", uid=uid)
        if options.executable:
            return TargetKind.SCRIPT_EXECUTABLE
        if options.libexec:
            return TargetKind.SCRIPT_LIBEXEC
        return TargetKind.SCRIPT_MODULE

    @staticmethod
    def _require_single_source(uid: str, files: Sequence[Path]) -> None:
        if len(files) != 1:
            raise InvalidSources("Script targets must be built from exactly one source file", uid=uid, sources=files)

    def _is_test(self, source_dir: Path) -> bool:
        testing_dir = Path(os.path.normpath(self.settings.testing_dir))
        source_dir = Path(os.path.normpath(source_dir))
        return source_dir == testing_dir or testing_dir in source_dir.parents

    def _properties(
        self,
        uid: str,
        kind: TargetKind,
        language: Language,
        files: Sequence[Path],
        is_test: bool,
        options: TargetOptions,
    ) -> Dict[str, Any]:
        settings = self.settings
        directory = _directory_kind(kind, options.libexec)
        output_dir = settings.output_dir(directory, test=is_test, language=language)

        prefix, suffix = default_affixes(kind)
        if kind in {TargetKind.SCRIPT_MODULE, TargetKind.SCRIPT_LIBRARY}:
            prefix = self._namespace_prefix(language)

        if options.output_name:
            output_name = options.output_name
        elif kind in {TargetKind.SCRIPT_EXECUTABLE, TargetKind.SCRIPT_LIBEXEC}:
            output_name = strip_template_suffix(files[0]).stem
        elif kind is TargetKind.SCRIPT_MODULE:
            output_name = strip_template_suffix(files[0]).name
        else:
            output_name = self.identity.short_name(uid)

        if options.component:
            component = options.component
        elif kind.is_library:
            component = settings.library_component or "Unspecified"
        else:
            component = settings.runtime_component or "Unspecified"

        properties: Dict[str, Any] = {
            "OUTPUT_NAME": output_name,
            "PREFIX": prefix,
            "SUFFIX": suffix,
            "OUTPUT_DIRECTORY": str(output_dir),
            "COMPONENT": component,
            "EXPORT": settings.export if options.export is None else bool(options.export),
            "LIBEXEC": bool(options.libexec) or kind is TargetKind.SCRIPT_LIBEXEC,
        }
        destination = self._destination(uid, kind, language, directory, is_test, options)
        if destination:
            properties["INSTALL_DIRECTORY"] = destination
        if kind.is_script:
            properties["COMPILE"] = settings.compile_scripts if options.compile is None else bool(options.compile)
            if options.compile_definitions:
                properties["COMPILE_DEFINITIONS"] = options.compile_definitions
        return properties

    def _namespace_prefix(self, language: Language) -> str:
        if language.is_python and self.settings.python_namespace:
            return self.settings.python_namespace.replace(".", "/") + "/"
        if language is Language.PERL and self.settings.perl_namespace:
            return self.settings.perl_namespace.replace("::", "/") + "/"
        return ""

    def _destination(
        self,
        uid: str,
        kind: TargetKind,
        language: Language,
        directory: str,
        is_test: bool,
        options: TargetOptions,
    ) -> str | None:
        value = options.destination
        if value is not None and value.strip().lower() in {"", "none"}:
            return None
        if is_test:
            if value is not None and kind is TargetKind.SCRIPT_LIBRARY:
                self.console.warning(
                    f"Target {uid} is a library used for testing only. "
                    "Installation to the specified directory will be skipped."
                )
                return None
            if value is None:
                return None
        if value is None:
            return self.settings.install_dir(directory, language=language)
        path = Path(value)
        if path.is_absolute():
            return Path(os.path.relpath(path, self.settings.install_prefix)).as_posix()
        return path.as_posix()


def _directory_kind(kind: TargetKind, libexec: bool) -> str:
    if kind in _EXECUTABLE_KINDS:
        return "libexec" if libexec or kind is TargetKind.SCRIPT_LIBEXEC else "runtime"
    if kind is TargetKind.STATIC_LIBRARY:
        return "archive"
    return "library"


__all__ = ["REQUESTS", "TargetDispatcher", "TargetOptions"]
