"""Synthesis of the deferred build step of script targets."""
from __future__ import annotations

from pathlib import Path
from typing import Any, List, Mapping
import json
import os
import tomllib

from .config_loader import find_config_file, parse_config_text
from .configure import ConfigureScript, ScriptConfigurer, ScriptFile, compiled_path
from .console import Console
from .dependencies import DependencyResolver
from .engine import BuildStep, EngineAdapter, InstallRule
from .errors import GenerationError
from .locations import target_location
from .model import Target, TargetKind, TargetState
from .settings import ProjectSettings
from .sources import strip_template_suffix

CACHE_FILE_NAME = "cache.json"
INLINE_CONFIG_NAME = "ScriptConfig.json"
PROJECT_CONFIG_STEM = "ScriptConfig"


def target_build_dir(settings: ProjectSettings, uid: str) -> Path:
    return settings.binary_dir / "targetkit" / f"{uid}.dir"


def write_variable_cache(settings: ProjectSettings, target: Target) -> Path:
    """Write the project variables visible to the scripts of ``target``."""

    path = target.build_dir / CACHE_FILE_NAME
    path.parent.mkdir(parents=True, exist_ok=True)
    variables = settings.script_variables()
    variables["TARGET_UID"] = target.uid
    variables["TARGET_NAME"] = str(target.properties.get("OUTPUT_NAME", ""))
    content = json.dumps(variables, indent=2, sort_keys=True, default=str)
    if not path.is_file() or path.read_text(encoding="utf-8") != content:
        path.write_text(content, encoding="utf-8")
    return path


class ScriptGenerator:
    """Turns a declared script target into one build step plus install rules."""

    def __init__(
        self,
        settings: ProjectSettings,
        engine: EngineAdapter,
        resolver: DependencyResolver,
        console: Console,
    ) -> None:
        self.settings = settings
        self.engine = engine
        self.resolver = resolver
        self.console = console
        self.configurer = ScriptConfigurer(
            strict=settings.strict_variables, python_executable=settings.python_executable
        )

    def generate(self, target: Target) -> BuildStep | None:
        if target.state is TargetState.GENERATED:
            return None
        if not target.kind.is_script:
            raise GenerationError(
                f"Cannot generate script build step for {target.kind.label} target", uid=target.uid
            )
        self.console.debug(f"Adding build command for target {target.uid}...")

        dependencies = self.resolver.target_closure(target)
        build_link_depends: List[str] = []
        install_link_depends: List[str] = []
        for dependency in dependencies:
            location = target_location(dependency, self.settings, install=False)
            if location is not None:
                build_link_depends.append(str(location))
            location = target_location(dependency, self.settings, install=True)
            if location is not None:
                install_link_depends.append(str(location))

        files = self._script_files(target)
        config_files = self._config_files(target)
        action = ConfigureScript(
            uid=target.uid,
            files=files,
            config_files=config_files,
            configurer=self.configurer,
            build_link_depends=build_link_depends,
            install_link_depends=install_link_depends,
            executable=target.kind in {TargetKind.SCRIPT_EXECUTABLE, TargetKind.SCRIPT_LIBEXEC},
        )

        outputs: List[Path] = []
        for script in files:
            outputs.extend(script.outputs())
        step = BuildStep(
            name=f"_{target.uid}",
            target=target.uid,
            outputs=tuple(outputs),
            action=action,
            main_dependency=target.sources[0] if len(target.sources) == 1 else None,
            depends=(*target.sources, *config_files),
            target_dependencies=tuple(dependency.uid for dependency in dependencies),
            comment=f"Building {target.kind.label} {target.uid}...",
        )
        self.engine.add_build_step(step)
        self.engine.add_clean_files(self._clean_files(outputs))
        for rule in self._install_rules(target, files):
            self.engine.add_install_rule(rule)

        target.state = TargetState.GENERATED
        self.console.debug(f"Adding build command for target {target.uid}... - done")
        return step

    def _script_files(self, target: Target) -> List[ScriptFile]:
        properties = target.properties
        output_dir = Path(properties["OUTPUT_DIRECTORY"])
        destination = properties.get("INSTALL_DIRECTORY")
        prefix = str(properties.get("PREFIX", ""))
        compile_python = bool(properties.get("COMPILE")) and target.language.is_python and target.kind in {
            TargetKind.SCRIPT_MODULE,
            TargetKind.SCRIPT_LIBRARY,
        }
        staging = target.build_dir / "install"

        files: List[ScriptFile] = []
        if target.kind is TargetKind.SCRIPT_LIBRARY:
            for source in target.sources:
                relative = self._relative_output(target, source, prefix)
                install_output = staging / relative if destination else None
                files.append(
                    ScriptFile(
                        source=source,
                        output=output_dir / relative,
                        install_output=install_output,
                        destination=_join_destination(destination, relative.parent) if destination else None,
                    )
                )
        else:
            name = f"{prefix}{properties.get('OUTPUT_NAME', '')}{properties.get('SUFFIX', '')}"
            output = output_dir / name
            files.append(
                ScriptFile(
                    source=target.sources[0],
                    output=output,
                    install_output=staging / name if destination else None,
                    destination=_join_destination(destination, Path(name).parent) if destination else None,
                )
            )

        if compile_python:
            for script in files:
                script.compiled = compiled_path(script.output)
                if script.install_output is not None:
                    script.install_compiled = compiled_path(script.install_output)
        return files

    @staticmethod
    def _relative_output(target: Target, source: Path, prefix: str) -> Path:
        base = target.source_dir
        relative = Path(os.path.relpath(source, base)) if base is not None else Path(source.name)
        if relative.parts and relative.parts[0] == "..":
            relative = Path(source.name)
        relative = strip_template_suffix(relative)
        return Path(prefix + relative.as_posix()) if prefix else relative

    def _config_files(self, target: Target) -> List[Path]:
        files: List[Path] = []
        cache = target.build_dir / CACHE_FILE_NAME
        if cache.is_file():
            files.append(cache)

        global_config = self.settings.script_config_file
        if global_config is not None:
            if not global_config.is_file():
                raise GenerationError(
                    f"Script configuration file {global_config} does not exist", uid=target.uid
                )
            files.append(global_config)

        try:
            project_config = find_config_file(self.settings.config_dir, PROJECT_CONFIG_STEM)
        except ValueError as exc:
            raise GenerationError(str(exc), uid=target.uid) from exc
        if project_config is not None:
            files.append(project_config)

        inline = target.properties.get("COMPILE_DEFINITIONS")
        if inline:
            files.append(self._write_inline_config(target, inline))
        return files

    @staticmethod
    def _write_inline_config(target: Target, inline: str | Mapping[str, Any]) -> Path:
        if isinstance(inline, str):
            try:
                data = dict(parse_config_text(inline))
            except tomllib.TOMLDecodeError as exc:
                raise GenerationError(f"Invalid COMPILE_DEFINITIONS: {exc}", uid=target.uid) from exc
        elif isinstance(inline, Mapping):
            data = dict(inline)
        else:
            raise GenerationError("COMPILE_DEFINITIONS must be TOML text or a mapping", uid=target.uid)

        path = target.build_dir / INLINE_CONFIG_NAME
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2, sort_keys=True, default=str), encoding="utf-8")
        return path

    def _clean_files(self, outputs: List[Path]) -> List[Path]:
        paths: List[Path] = []
        for path in outputs:
            paths.append(path)
            if path.suffix == ".py":
                paths.append(compiled_path(path))
        return paths

    def _install_rules(self, target: Target, files: List[ScriptFile]) -> List[InstallRule]:
        kind = "programs" if target.kind in {TargetKind.SCRIPT_EXECUTABLE, TargetKind.SCRIPT_LIBEXEC} else "files"
        component = str(target.properties.get("COMPONENT", "Unspecified"))
        export = target.uid if target.exported and not target.is_test else None
        rules: List[InstallRule] = []
        for script in files:
            if script.install_output is None or script.destination is None:
                continue
            rename = script.output.name if target.kind is not TargetKind.SCRIPT_LIBRARY else None
            rules.append(
                InstallRule(
                    kind=kind,
                    source=str(script.install_output),
                    destination=script.destination,
                    component=component,
                    rename=rename,
                    export=export,
                )
            )
            if script.install_compiled is not None:
                rules.append(
                    InstallRule(
                        kind=kind,
                        source=str(script.install_compiled),
                        destination=script.destination,
                        component=component,
                        export=export,
                    )
                )
        return rules


def _join_destination(destination: str, relative: Path) -> str:
    if str(relative) in {"", "."}:
        return destination
    return f"{destination.rstrip('/')}/{relative.as_posix()}"


__all__ = [
    "CACHE_FILE_NAME",
    "INLINE_CONFIG_NAME",
    "ScriptGenerator",
    "target_build_dir",
    "write_variable_cache",
]
