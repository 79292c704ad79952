"""Mapping between user-facing target names and project-qualified UIDs.

A target named ``foo`` declared in a project whose namespace is ``proj``
receives the UID ``proj.foo``. Names with a leading dot (``.other.foo``)
are taken as fully qualified UIDs, e.g. to refer to targets imported from
another project.
"""
from __future__ import annotations

import re

from .errors import InvalidName, NameCollision
from .model import TargetKind
from .registry import TargetRegistry

_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_+.-]+$")

RESERVED_NAMES = frozenset(
    {
        "all",
        "clean",
        "depend",
        "doc",
        "help",
        "install",
        "package",
        "package_source",
        "test",
        "uninstall",
    }
)


class IdentityResolver:
    def __init__(self, namespace: str, registry: TargetRegistry) -> None:
        if not namespace:
            raise ValueError("Target namespace must not be empty")
        self.namespace = namespace
        self._registry = registry

    def make_uid(self, name: str) -> str:
        if name.startswith("."):
            return name[1:]
        if self.is_qualified(name):
            return name
        return f"{self.namespace}.{name}"

    def short_name(self, uid: str) -> str:
        prefix = f"{self.namespace}."
        if uid.startswith(prefix):
            return uid[len(prefix):]
        return uid

    def is_qualified(self, token: str) -> bool:
        """Whether ``token`` explicitly names a target UID rather than an opaque reference."""
        return token.startswith(".") or token.startswith(f"{self.namespace}.")

    def check_name(self, name: str) -> None:
        if not name:
            raise InvalidName("Target name must not be empty")
        if name.lower() in RESERVED_NAMES:
            raise InvalidName(f"Target name '{name}' is reserved and cannot be used")
        if not _NAME_PATTERN.match(name) or name.startswith(".") or name.endswith("."):
            raise InvalidName(
                f"Invalid target name '{name}'. Target names may only contain "
                "letters, digits and the characters '_', '+', '.' and '-'"
            )

    def resolve(self, name: str) -> str | None:
        """Return the UID of the target referred to by ``name``, if it is known."""
        if not name:
            return None
        if name.startswith("."):
            uid = name[1:]
            return uid if self._registry.known(uid) else None
        if self._registry.known(name):
            return name
        uid = f"{self.namespace}.{name}"
        return uid if self._registry.known(uid) else None

    def register(self, name: str, kind: TargetKind) -> str:
        """Validate ``name`` and reserve the UID a new target of ``kind`` will use.

        The UID resolves from here on. It is bound to the target once the
        target is added to the registry, or dropped with ``release``.
        """
        self.check_name(name)
        uid = self.make_uid(name)
        self._registry.reserve(uid, kind)
        return uid
