"""Project configuration for a target orchestration run."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping
import sys

from .config_loader import load_config_file, normalize_string_list
from .dependencies import DependencyMatching
from .model import Language

_DIRECTORY_KINDS = ("runtime", "libexec", "library", "archive", "python_library", "perl_library")

_LANGUAGE_LIBRARY_DIRS = {
    Language.PYTHON: "python_library",
    Language.JYTHON: "python_library",
    Language.PERL: "perl_library",
}


@dataclass(slots=True)
class DirectoryLayout:
    """Relative directory names of the build, testing and installation trees."""

    binary: Dict[str, str]
    testing: Dict[str, str]
    install: Dict[str, str]

    @classmethod
    def defaults(cls, package: str) -> "DirectoryLayout":
        binary = {
            "runtime": "bin",
            "libexec": "libexec",
            "library": "lib",
            "archive": "lib",
            "python_library": "lib/python",
            "perl_library": "lib/perl5",
        }
        testing = {key: f"Testing/{value}" for key, value in binary.items()}
        install = dict(binary)
        install["libexec"] = f"lib/{package}"
        return cls(binary=binary, testing=testing, install=install)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, package: str) -> "DirectoryLayout":
        layout = cls.defaults(package)
        for key, value in data.items():
            tree, _, kind = str(key).partition("_")
            if tree not in {"binary", "testing", "install"} or kind not in _DIRECTORY_KINDS:
                raise ValueError(f"Unknown directory setting '{key}'")
            if not isinstance(value, str):
                raise TypeError(f"directories.{key} must be a string")
            getattr(layout, tree)[kind] = value
        return layout


@dataclass(slots=True)
class ProjectSettings:
    name: str
    source_dir: Path
    binary_dir: Path
    install_prefix: Path
    testing_dir: Path
    config_dir: Path
    version: str = "0.0.0"
    namespace: str = ""
    python_namespace: str = ""
    perl_namespace: str = ""
    log_level: str = "info"
    export: bool = True
    compile_scripts: bool = False
    build_shared_libs: bool = True
    script_config_file: Path | None = None
    dependency_matching: DependencyMatching = DependencyMatching.SIGIL
    strict_variables: bool = False
    python_executable: str = sys.executable
    runtime_component: str = "Runtime"
    library_component: str = "Development"
    directories: DirectoryLayout | None = None
    variables: Dict[str, Any] = field(default_factory=dict)
    implicit_dependencies: Dict[str, List[str]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.namespace:
            self.namespace = self.name.lower()
        if not self.python_namespace:
            self.python_namespace = self.namespace
        if not self.perl_namespace:
            self.perl_namespace = self.name.replace(".", "::")
        if self.directories is None:
            self.directories = DirectoryLayout.defaults(self.namespace)

    @classmethod
    def from_file(cls, path: Path) -> "ProjectSettings":
        return cls.from_mapping(load_config_file(path), base_dir=path.resolve().parent)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, base_dir: Path) -> "ProjectSettings":
        project_section = data.get("project")
        if not isinstance(project_section, Mapping):
            raise ValueError("[project] section is required in project configuration")
        name = project_section.get("name")
        if not name:
            raise ValueError("project.name is required")
        name = str(name)

        def _path(value: Any, default: Path, root: Path) -> Path:
            if not value:
                return default
            candidate = Path(str(value)).expanduser()
            return candidate if candidate.is_absolute() else (root / candidate).resolve()

        source_dir = _path(project_section.get("source_dir"), base_dir, base_dir)
        binary_dir = _path(project_section.get("binary_dir"), source_dir / "build", source_dir)
        install_prefix = _path(project_section.get("install_prefix"), binary_dir / "install", source_dir)
        testing_dir = _path(project_section.get("testing_dir"), source_dir / "test", source_dir)
        config_dir = _path(project_section.get("config_dir"), source_dir / "config", source_dir)

        global_section = data.get("global", {})
        if not isinstance(global_section, Mapping):
            raise TypeError("[global] must be a table")
        script_config = global_section.get("script_config_file")
        matching = str(global_section.get("dependency_matching", DependencyMatching.SIGIL.value))
        try:
            dependency_matching = DependencyMatching(matching)
        except ValueError as exc:
            supported = ", ".join(member.value for member in DependencyMatching)
            raise ValueError(
                f"global.dependency_matching must be one of: {supported}"
            ) from exc

        namespace = str(project_section.get("namespace") or name.lower())
        directories_section = data.get("directories", {})
        if not isinstance(directories_section, Mapping):
            raise TypeError("[directories] must be a table")

        variables_section = data.get("variables", {})
        if not isinstance(variables_section, Mapping):
            raise TypeError("[variables] must be a table")

        implicit_section = data.get("implicit_dependencies", {})
        if not isinstance(implicit_section, Mapping):
            raise TypeError("[implicit_dependencies] must be a table")
        implicit_dependencies = {
            str(key): normalize_string_list(value, field_name=f"implicit_dependencies.{key}")
            for key, value in implicit_section.items()
        }

        return cls(
            name=name,
            version=str(project_section.get("version", "0.0.0")),
            source_dir=source_dir,
            binary_dir=binary_dir,
            install_prefix=install_prefix,
            testing_dir=testing_dir,
            config_dir=config_dir,
            namespace=namespace,
            python_namespace=str(project_section.get("python_namespace") or namespace),
            perl_namespace=str(project_section.get("perl_namespace") or name.replace(".", "::")),
            log_level=str(global_section.get("log_level", "info")),
            export=bool(global_section.get("export", True)),
            compile_scripts=bool(global_section.get("compile_scripts", False)),
            build_shared_libs=bool(global_section.get("build_shared_libs", True)),
            script_config_file=_path(script_config, source_dir, source_dir) if script_config else None,
            dependency_matching=dependency_matching,
            strict_variables=bool(global_section.get("strict_variables", False)),
            python_executable=str(global_section.get("python_executable") or sys.executable),
            runtime_component=str(global_section.get("runtime_component", "Runtime")),
            library_component=str(global_section.get("library_component", "Development")),
            directories=DirectoryLayout.from_mapping(directories_section, package=namespace),
            variables={str(key): value for key, value in variables_section.items()},
            implicit_dependencies=implicit_dependencies,
        )

    def output_dir(self, kind: str, *, test: bool, language: Language | None = None) -> Path:
        """Build-tree output directory for ``kind`` (runtime, libexec, library, archive)."""
        key = self._directory_key(kind, language)
        tree = self.directories.testing if test else self.directories.binary
        return self.binary_dir / tree[key]

    def install_dir(self, kind: str, *, language: Language | None = None) -> str:
        """Installation directory for ``kind`` relative to the installation prefix."""
        return self.directories.install[self._directory_key(kind, language)]

    @staticmethod
    def _directory_key(kind: str, language: Language | None) -> str:
        if kind == "library" and language in _LANGUAGE_LIBRARY_DIRS:
            return _LANGUAGE_LIBRARY_DIRS[language]  # type: ignore[index]
        if kind not in _DIRECTORY_KINDS:
            raise ValueError(f"Unknown output directory kind '{kind}'")
        return kind

    def script_variables(self) -> Dict[str, Any]:
        """Project variables exported to the configuration of scripts."""
        values: Dict[str, Any] = {
            "PROJECT_NAME": self.name,
            "PROJECT_VERSION": self.version,
            "PROJECT_NAMESPACE": self.namespace,
            "PROJECT_NAMESPACE_PYTHON": self.python_namespace,
            "PROJECT_NAMESPACE_PERL": self.perl_namespace,
            "PROJECT_SOURCE_DIR": str(self.source_dir),
            "PROJECT_BINARY_DIR": str(self.binary_dir),
            "INSTALL_PREFIX": str(self.install_prefix),
            "PYTHON_EXECUTABLE": self.python_executable,
        }
        for kind in _DIRECTORY_KINDS:
            suffix = kind.upper()
            values[f"BINARY_{suffix}_DIR"] = str(self.binary_dir / self.directories.binary[kind])
            values[f"TESTING_{suffix}_DIR"] = str(self.binary_dir / self.directories.testing[kind])
            values[f"INSTALL_{suffix}_DIR"] = self.directories.install[kind]
        values.update(self.variables)
        return values


__all__ = ["DirectoryLayout", "ProjectSettings"]
