"""Per-target property access with protection of structural metadata."""
from __future__ import annotations

from typing import Any, Iterable, List, Mapping

from .errors import PropertyError, ProtectedProperty, UnknownTarget
from .identity import IdentityResolver
from .model import Target
from .registry import TargetRegistry


class _NotSet:
    __slots__ = ()

    def __repr__(self) -> str:
        return "NOT_SET"

    def __bool__(self) -> bool:
        return False


NOT_SET: Any = _NotSet()

PROTECTED_PROPERTIES = frozenset(
    {
        "UID",
        "NAME",
        "TYPE",
        "KIND",
        "LANGUAGE",
        "SOURCES",
        "BUILD_DIRECTORY",
        "SOURCE_DIRECTORY",
        "BINARY_DIRECTORY",
        "TEST",
        "IMPORTED",
        "LINK_DEPENDS",
    }
)
"""Keys managed by dedicated accessors; they cannot be set in bulk.

Property names are case-insensitive and stored upper-case.
"""


class PropertyStore:
    def __init__(self, registry: TargetRegistry, identity: IdentityResolver) -> None:
        self._registry = registry
        self._identity = identity

    def target(self, name: str) -> Target:
        uid = self._identity.resolve(name)
        if uid is None:
            raise UnknownTarget("Unknown build target", uid=self._identity.make_uid(name))
        return self._registry.require(uid)

    def get(self, name: str, key: str) -> Any:
        target = self.target(name)
        key = key.upper()
        derived = self._derived(target)
        if key in derived:
            return derived[key]
        return target.properties.get(key, NOT_SET)

    def set_many(self, names: str | Iterable[str], values: Mapping[str, Any]) -> None:
        """Set ``values`` on every named target, or on none of them."""
        if isinstance(names, str):
            names = [names]
        targets: List[Target] = [self.target(name) for name in names]
        if not targets:
            raise PropertyError("No target specified")
        normalized = {str(key).upper(): value for key, value in values.items()}
        if len(normalized) != len(values):
            raise PropertyError("Property names differ only in case", uid=targets[0].uid)
        for key in normalized:
            if not key:
                raise PropertyError("Empty property name given", uid=targets[0].uid)
            if key in PROTECTED_PROPERTIES:
                raise ProtectedProperty(
                    f"Property {key} is read-only and can only be changed through its dedicated accessor",
                    uid=targets[0].uid,
                )
        for target in targets:
            target.properties.update(normalized)

    def _derived(self, target: Target) -> dict[str, Any]:
        return {
            "UID": target.uid,
            "NAME": self._identity.short_name(target.uid),
            "TYPE": target.kind.value,
            "KIND": target.kind.value,
            "LANGUAGE": target.language.value,
            "SOURCES": list(target.sources),
            "BUILD_DIRECTORY": target.build_dir,
            "SOURCE_DIRECTORY": target.source_dir,
            "BINARY_DIRECTORY": target.binary_dir,
            "TEST": target.is_test,
            "IMPORTED": target.imported,
            "LINK_DEPENDS": target.link_dependencies.values(),
        }
