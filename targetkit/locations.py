"""Build-tree and install-tree locations of target artifacts."""
from __future__ import annotations

from pathlib import Path

from .model import Target, TargetKind
from .settings import ProjectSettings

_NATIVE_NAMING = {
    TargetKind.EXECUTABLE: ("", ""),
    TargetKind.STATIC_LIBRARY: ("lib", ".a"),
    TargetKind.SHARED_LIBRARY: ("lib", ".so"),
    TargetKind.MODULE_LIBRARY: ("", ".so"),
    TargetKind.MEX: ("", ".mexa64"),
    TargetKind.MCC_EXECUTABLE: ("", ""),
    TargetKind.MCC_LIBRARY: ("", ".ctf"),
}


def default_affixes(kind: TargetKind) -> tuple[str, str]:
    """Default file name ``(PREFIX, SUFFIX)`` of artifacts of ``kind``."""
    return _NATIVE_NAMING.get(kind, ("", ""))


def artifact_name(target: Target) -> str:
    properties = target.properties
    return f"{properties.get('PREFIX', '')}{properties.get('OUTPUT_NAME', '')}{properties.get('SUFFIX', '')}"


def target_location(target: Target, settings: ProjectSettings, *, install: bool = False) -> Path | None:
    """Return where the artifact of ``target`` is located.

    Script libraries are located at their package root directory. Returns
    ``None`` for the install tree if the target is not installed.
    """

    properties = target.properties
    if target.imported:
        key = "IMPORTED_INSTALL_LOCATION" if install else "IMPORTED_LOCATION"
        location = properties.get(key) or properties.get("IMPORTED_LOCATION")
        return Path(location) if location else None

    if target.kind is TargetKind.SCRIPT_LIBRARY:
        name = str(properties.get("PREFIX", "")).rstrip("/")
    else:
        name = artifact_name(target)

    if install:
        destination = properties.get("INSTALL_DIRECTORY")
        if not destination:
            return None
        root = settings.install_prefix / destination
    else:
        root = Path(properties["OUTPUT_DIRECTORY"])
    return root / name if name else root


__all__ = ["artifact_name", "default_affixes", "target_location"]
