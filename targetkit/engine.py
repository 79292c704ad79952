"""Interface to the native build-graph engine.

The orchestration layer never executes the build itself: it emits targets,
build steps and installation rules into an :class:`EngineAdapter`.
:class:`RecordingEngine` keeps a deterministic in-memory representation of
that execution graph, which can be serialized or, for synthesized script
steps, executed locally.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Sequence
import heapq
import json

from .command_runner import CommandRunner
from .model import TargetKind
from .sources import GlobRecord


class StepAction:
    """Work performed by a synthesized build step."""

    def execute(self, runner: CommandRunner) -> None:
        raise NotImplementedError

    def describe(self) -> Dict[str, Any]:
        raise NotImplementedError


@dataclass(slots=True)
class BuildStep:
    name: str
    target: str
    outputs: tuple[Path, ...]
    action: StepAction
    main_dependency: Path | None = None
    depends: tuple[Path, ...] = ()
    target_dependencies: tuple[str, ...] = ()
    comment: str = ""


@dataclass(slots=True)
class InstallRule:
    kind: str
    source: str
    destination: str
    component: str
    rename: str | None = None
    export: str | None = None


@dataclass(slots=True)
class NativeTarget:
    uid: str
    kind: TargetKind
    sources: tuple[Path, ...]
    properties: Dict[str, Any] = field(default_factory=dict)
    link_libraries: List[str] = field(default_factory=list)


class EngineAdapter:
    """Abstract engine interface."""

    def add_native_target(
        self, uid: str, kind: TargetKind, sources: Sequence[Path], properties: Mapping[str, Any]
    ) -> None:
        raise NotImplementedError

    def add_custom_target(self, uid: str, sources: Sequence[Path]) -> None:
        raise NotImplementedError

    def add_build_step(self, step: BuildStep) -> None:
        raise NotImplementedError

    def add_target_dependency(self, uid: str, dependency: str) -> None:
        raise NotImplementedError

    def link_libraries(self, uid: str, libraries: Sequence[str]) -> None:
        raise NotImplementedError

    def add_install_rule(self, rule: InstallRule) -> None:
        raise NotImplementedError

    def add_clean_files(self, paths: Iterable[Path]) -> None:
        raise NotImplementedError

    def add_glob_check(self, record: GlobRecord) -> None:
        raise NotImplementedError


class RecordingEngine(EngineAdapter):
    """Engine adapter that records the execution graph in memory."""

    def __init__(self) -> None:
        self.native_targets: Dict[str, NativeTarget] = {}
        self.custom_targets: Dict[str, tuple[Path, ...]] = {}
        self.steps: List[BuildStep] = []
        self.dependencies: Dict[str, List[str]] = {}
        self.install_rules: List[InstallRule] = []
        self.clean_files: List[Path] = []
        self.glob_checks: Dict[str, GlobRecord] = {}

    def add_native_target(
        self, uid: str, kind: TargetKind, sources: Sequence[Path], properties: Mapping[str, Any]
    ) -> None:
        self.native_targets[uid] = NativeTarget(
            uid=uid, kind=kind, sources=tuple(sources), properties=dict(properties)
        )

    def add_custom_target(self, uid: str, sources: Sequence[Path]) -> None:
        self.custom_targets[uid] = tuple(sources)

    def add_build_step(self, step: BuildStep) -> None:
        if any(existing.name == step.name for existing in self.steps):
            raise ValueError(f"Build step '{step.name}' was already added")
        self.steps.append(step)

    def add_target_dependency(self, uid: str, dependency: str) -> None:
        deps = self.dependencies.setdefault(uid, [])
        if dependency not in deps:
            deps.append(dependency)

    def link_libraries(self, uid: str, libraries: Sequence[str]) -> None:
        native = self.native_targets.get(uid)
        if native is None:
            raise KeyError(f"Cannot link libraries to unknown native target '{uid}'")
        native.link_libraries.extend(libraries)

    def add_install_rule(self, rule: InstallRule) -> None:
        self.install_rules.append(rule)

    def add_clean_files(self, paths: Iterable[Path]) -> None:
        for path in paths:
            if path not in self.clean_files:
                self.clean_files.append(path)

    def add_glob_check(self, record: GlobRecord) -> None:
        self.glob_checks[record.uid] = record

    def steps_for(self, uid: str) -> List[BuildStep]:
        return [step for step in self.steps if step.target == uid]

    def stale_globs(self) -> List[str]:
        """UIDs of targets whose glob patterns now match a different file list."""
        return [uid for uid, record in self.glob_checks.items() if record.is_stale()]

    def ordered_steps(self) -> List[BuildStep]:
        """Return build steps such that each runs after the steps it depends on."""

        index = {step.name: position for position, step in enumerate(self.steps)}
        owners: Dict[str, List[str]] = {}
        for step in self.steps:
            owners.setdefault(step.target, []).append(step.name)

        upstream: Dict[str, set[str]] = {}
        for step in self.steps:
            deps: set[str] = set()
            targets = [*step.target_dependencies, *self.dependencies.get(step.target, [])]
            for dependency in targets:
                deps.update(name for name in owners.get(dependency, ()) if name != step.name)
            upstream[step.name] = deps

        dependents: Dict[str, List[str]] = {name: [] for name in index}
        indegree: Dict[str, int] = {}
        for name, deps in upstream.items():
            indegree[name] = len(deps)
            for dep in deps:
                dependents[dep].append(name)

        ready = [(index[name], name) for name, degree in indegree.items() if degree == 0]
        heapq.heapify(ready)
        order: List[BuildStep] = []
        while ready:
            _, name = heapq.heappop(ready)
            order.append(self.steps[index[name]])
            for dependent in dependents[name]:
                indegree[dependent] -= 1
                if indegree[dependent] == 0:
                    heapq.heappush(ready, (index[dependent], dependent))

        if len(order) != len(self.steps):
            blocked = sorted(name for name, degree in indegree.items() if degree > 0)
            raise ValueError(f"Circular dependency between build steps: {', '.join(blocked)}")
        return order

    def run(self, runner: CommandRunner) -> List[str]:
        """Execute all synthesized build steps in dependency order."""
        executed: List[str] = []
        for step in self.ordered_steps():
            step.action.execute(runner)
            executed.append(step.name)
        return executed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "native_targets": [
                {
                    "uid": native.uid,
                    "kind": native.kind.value,
                    "sources": [str(path) for path in native.sources],
                    "properties": {key: _jsonable(value) for key, value in native.properties.items()},
                    "link_libraries": list(native.link_libraries),
                }
                for native in self.native_targets.values()
            ],
            "custom_targets": {uid: [str(path) for path in paths] for uid, paths in self.custom_targets.items()},
            "steps": [
                {
                    "name": step.name,
                    "target": step.target,
                    "comment": step.comment,
                    "outputs": [str(path) for path in step.outputs],
                    "main_dependency": str(step.main_dependency) if step.main_dependency else None,
                    "depends": [str(path) for path in step.depends],
                    "target_dependencies": list(step.target_dependencies),
                    "action": step.action.describe(),
                }
                for step in self.steps
            ],
            "dependencies": {uid: list(deps) for uid, deps in self.dependencies.items()},
            "install": [
                {
                    "kind": rule.kind,
                    "source": rule.source,
                    "destination": rule.destination,
                    "component": rule.component,
                    "rename": rule.rename,
                    "export": rule.export,
                }
                for rule in self.install_rules
            ],
            "clean_files": [str(path) for path in self.clean_files],
            "glob_checks": {
                uid: {"patterns": list(record.patterns), "files": [str(path) for path in record.files]}
                for uid, record in self.glob_checks.items()
            },
        }

    def serialize(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


def _jsonable(value: Any) -> Any:
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    return value


__all__ = [
    "BuildStep",
    "EngineAdapter",
    "InstallRule",
    "NativeTarget",
    "RecordingEngine",
    "StepAction",
]
