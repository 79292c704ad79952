"""Lists of exported targets for downstream package configuration."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List
import json

from .locations import target_location
from .registry import TargetRegistry
from .settings import ProjectSettings


@dataclass(slots=True)
class ExportEntry:
    uid: str
    kind: str
    language: str
    build_location: str | None
    install_location: str | None


@dataclass(slots=True)
class ExportManifest:
    """Exported targets, split into installed targets and test-only targets.

    Test targets are only ever exported from the build tree.
    """

    main: List[ExportEntry] = field(default_factory=list)
    test: List[ExportEntry] = field(default_factory=list)

    @classmethod
    def from_registry(cls, registry: TargetRegistry, settings: ProjectSettings) -> "ExportManifest":
        manifest = cls()
        for target in registry:
            if target.imported or not target.exported:
                continue
            build_location = target_location(target, settings, install=False)
            install_location = None if target.is_test else target_location(target, settings, install=True)
            entry = ExportEntry(
                uid=target.uid,
                kind=target.kind.value,
                language=target.language.value,
                build_location=str(build_location) if build_location else None,
                install_location=str(install_location) if install_location else None,
            )
            (manifest.test if target.is_test else manifest.main).append(entry)
        return manifest

    def uids(self, *, test: bool = False) -> List[str]:
        return [entry.uid for entry in (self.test if test else self.main)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "main": [asdict(entry) for entry in self.main],
            "test": [asdict(entry) for entry in self.test],
        }

    def serialize(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


__all__ = ["ExportEntry", "ExportManifest"]
