"""Target data model shared by all orchestration components."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Sequence


class Language(str, Enum):
    CXX = "CXX"
    PYTHON = "PYTHON"
    JYTHON = "JYTHON"
    PERL = "PERL"
    BASH = "BASH"
    MATLAB = "MATLAB"
    UNKNOWN = "UNKNOWN"
    AMBIGUOUS = "AMBIGUOUS"

    @property
    def is_python(self) -> bool:
        return self in {Language.PYTHON, Language.JYTHON}

    @property
    def is_script(self) -> bool:
        return self not in {Language.CXX, Language.MATLAB, Language.AMBIGUOUS}

    @classmethod
    def parse(cls, value: "str | Language") -> "Language":
        """Case-insensitive lookup of a language tag."""
        if isinstance(value, Language):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError as exc:
            supported = ", ".join(member.value for member in cls if member is not cls.AMBIGUOUS)
            raise ValueError(f"Unsupported language '{value}'. Supported: {supported}") from exc


class TargetKind(str, Enum):
    EXECUTABLE = "EXECUTABLE"
    STATIC_LIBRARY = "STATIC_LIBRARY"
    SHARED_LIBRARY = "SHARED_LIBRARY"
    MODULE_LIBRARY = "MODULE_LIBRARY"
    SCRIPT_EXECUTABLE = "SCRIPT_EXECUTABLE"
    SCRIPT_LIBEXEC = "SCRIPT_LIBEXEC"
    SCRIPT_MODULE = "SCRIPT_MODULE"
    SCRIPT_LIBRARY = "SCRIPT_LIBRARY"
    MCC_EXECUTABLE = "MCC_EXECUTABLE"
    MCC_LIBRARY = "MCC_LIBRARY"
    MEX = "MEX"

    @property
    def is_native(self) -> bool:
        return self in _NATIVE_KINDS

    @property
    def is_script(self) -> bool:
        return self.value.startswith("SCRIPT_")

    @property
    def is_cross_compiled(self) -> bool:
        return self in {TargetKind.MCC_EXECUTABLE, TargetKind.MCC_LIBRARY, TargetKind.MEX}

    @property
    def generates_commands(self) -> bool:
        """Whether the build command is synthesized at finalization."""
        return not self.is_native

    @property
    def requires_link_closure(self) -> bool:
        """Whether implicit dependencies of linked libraries are pulled in eagerly."""
        return self is TargetKind.MEX

    @property
    def is_library(self) -> bool:
        return self in {
            TargetKind.STATIC_LIBRARY,
            TargetKind.SHARED_LIBRARY,
            TargetKind.MODULE_LIBRARY,
            TargetKind.SCRIPT_MODULE,
            TargetKind.SCRIPT_LIBRARY,
            TargetKind.MCC_LIBRARY,
            TargetKind.MEX,
        }

    @property
    def label(self) -> str:
        return self.value.lower().replace("_", " ")


_NATIVE_KINDS = frozenset(
    {
        TargetKind.EXECUTABLE,
        TargetKind.STATIC_LIBRARY,
        TargetKind.SHARED_LIBRARY,
        TargetKind.MODULE_LIBRARY,
    }
)


class TargetState(str, Enum):
    DECLARED = "declared"
    GENERATED = "generated"


@dataclass(slots=True)
class DependencyToken:
    """A link dependency as given by the user, plus its resolved UID (if any)."""

    token: str
    uid: str | None = None

    @property
    def resolved(self) -> bool:
        return self.uid is not None

    @property
    def value(self) -> str:
        return self.uid or self.token

    def bind(self, uid: str | None) -> None:
        # resolved entries never revert to unresolved
        if self.uid is None and uid is not None:
            self.uid = uid


@dataclass(slots=True)
class LinkDependencies:
    """Append-only ordered set of dependency tokens."""

    entries: List[DependencyToken] = field(default_factory=list)

    def __iter__(self) -> Iterator[DependencyToken]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, value: object) -> bool:
        return any(value in {entry.token, entry.uid} for entry in self.entries)

    def append(self, token: str, uid: str | None = None) -> bool:
        for entry in self.entries:
            if entry.token == token or (uid is not None and entry.uid == uid):
                entry.bind(uid)
                return False
        self.entries.append(DependencyToken(token=token, uid=uid))
        return True

    def values(self) -> List[str]:
        return [entry.value for entry in self.entries]


class Target:
    """A declared build target.

    ``uid``, ``kind`` and ``language`` are fixed at construction; all other
    metadata lives in the property map and is updated through
    :class:`~targetkit.properties.PropertyStore`.
    """

    __slots__ = (
        "_uid",
        "_kind",
        "_language",
        "sources",
        "build_dir",
        "source_dir",
        "binary_dir",
        "is_test",
        "imported",
        "properties",
        "link_dependencies",
        "state",
    )

    def __init__(
        self,
        uid: str,
        kind: TargetKind,
        language: Language,
        *,
        sources: Sequence[Path] = (),
        build_dir: Path | None = None,
        source_dir: Path | None = None,
        binary_dir: Path | None = None,
        is_test: bool = False,
        imported: bool = False,
        properties: Dict[str, Any] | None = None,
    ) -> None:
        self._uid = uid
        self._kind = kind
        self._language = language
        self.sources: tuple[Path, ...] = tuple(sources)
        self.build_dir = build_dir
        self.source_dir = source_dir
        self.binary_dir = binary_dir
        self.is_test = is_test
        self.imported = imported
        self.properties: Dict[str, Any] = dict(properties or {})
        self.link_dependencies = LinkDependencies()
        self.state = TargetState.GENERATED if imported or kind.is_native else TargetState.DECLARED

    @property
    def uid(self) -> str:
        return self._uid

    @property
    def kind(self) -> TargetKind:
        return self._kind

    @property
    def language(self) -> Language:
        return self._language

    @property
    def exported(self) -> bool:
        return bool(self.properties.get("EXPORT", False))

    @property
    def pending(self) -> bool:
        return self.state is TargetState.DECLARED

    def __repr__(self) -> str:
        return f"Target(uid={self._uid!r}, kind={self._kind.value}, language={self._language.value})"


__all__ = [
    "DependencyToken",
    "Language",
    "LinkDependencies",
    "Target",
    "TargetKind",
    "TargetState",
]
