"""Declare build targets in several languages and synthesize their build steps."""
from __future__ import annotations

from .dispatcher import TargetOptions
from .errors import TargetError
from .model import Language, Target, TargetKind
from .project import Project
from .settings import ProjectSettings


def main(argv=None) -> int:
    from .cli import main as _main

    return _main(argv)


__all__ = [
    "Language",
    "Project",
    "ProjectSettings",
    "Target",
    "TargetError",
    "TargetKind",
    "TargetOptions",
    "main",
]
