"""Error taxonomy for target declaration, resolution and generation."""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, Sequence


class TargetError(Exception):
    """Base class for all errors raised while configuring targets.

    Every error is fatal to the current configuration run. The message names
    the offending target UID (if known) and lists any source files involved.
    """

    def __init__(
        self,
        message: str,
        *,
        uid: str | None = None,
        sources: Iterable[Path | str] | None = None,
    ) -> None:
        self.uid = uid
        self.sources: Sequence[str] = tuple(str(source) for source in (sources or ()))
        self.reason = message
        super().__init__(self._format())

    def _format(self) -> str:
        text = f"Target {self.uid}: {self.reason}" if self.uid else self.reason
        if self.sources:
            listing = "\n".join(f"  {source}" for source in self.sources)
            text = f"{text}\nGiven source code files:\n{listing}"
        return text


class IdentityError(TargetError):
    """Raised when a target name cannot be mapped to a unique UID."""


class NameCollision(IdentityError):
    pass


class InvalidName(IdentityError):
    pass


class ClassificationError(TargetError):
    """Raised when the programming language of sources cannot be determined."""


class AmbiguousLanguage(ClassificationError):
    pass


class UnknownLanguage(ClassificationError):
    pass


class NoSources(ClassificationError):
    pass


class DeclarationError(TargetError):
    """Raised for invalid combinations of declaration arguments."""


class ConflictingOptions(DeclarationError):
    pass


class MissingSources(DeclarationError):
    pass


class InvalidSources(DeclarationError):
    pass


class StaleSources(DeclarationError):
    pass


class DependencyError(TargetError):
    """Raised when a dependency expected to be a target cannot be found."""


class UnknownTarget(DependencyError):
    pass


class GenerationError(TargetError):
    """Raised when the build command of a deferred target cannot be synthesized."""


class PropertyError(TargetError):
    """Raised on invalid property updates."""


class ProtectedProperty(PropertyError):
    pass


class PhaseError(TargetError):
    """Raised when declaration and finalization are invoked out of order."""


__all__ = [
    "AmbiguousLanguage",
    "ClassificationError",
    "ConflictingOptions",
    "DeclarationError",
    "DependencyError",
    "GenerationError",
    "IdentityError",
    "InvalidName",
    "InvalidSources",
    "MissingSources",
    "NameCollision",
    "NoSources",
    "PhaseError",
    "PropertyError",
    "ProtectedProperty",
    "StaleSources",
    "TargetError",
    "UnknownLanguage",
    "UnknownTarget",
]
