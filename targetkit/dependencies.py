"""Resolution of target dependencies and transitive link closure."""
from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Dict, Iterable, List, Mapping, Sequence
import os
import re

from .errors import UnknownTarget
from .model import Target

if TYPE_CHECKING:
    from .console import Console
    from .engine import EngineAdapter
    from .identity import IdentityResolver
    from .registry import TargetRegistry

LINK_SIGIL = "-l"

_IGNORED_TOKENS = frozenset({"", "general"})
_LIBRARY_SUFFIX = re.compile(r"(\.so(\.[0-9]+)*|\.a|\.dylib|\.lib|\.dll)$")


class DependencyMatching(str, Enum):
    """How two dependency tokens are considered to name the same library."""

    EXACT = "exact"
    SIGIL = "sigil"
    LIBRARY_NAME = "library-name"

    def normalize(self, token: str) -> str:
        if self is DependencyMatching.EXACT:
            return token
        if token.startswith(LINK_SIGIL):
            token = token[len(LINK_SIGIL):]
        if self is DependencyMatching.SIGIL:
            return token
        name = os.path.basename(token)
        name = _LIBRARY_SUFFIX.sub("", name)
        if name.startswith("lib") and len(name) > 3:
            name = name[3:]
        return name


class DependencyResolver:
    """Records dependencies of targets and computes implicit link closures.

    Tokens that name a registered target are bound to its UID, all other
    tokens are passed through unchanged as references to external
    libraries. Tokens written as qualified UIDs must resolve.
    """

    def __init__(
        self,
        registry: "TargetRegistry",
        identity: "IdentityResolver",
        engine: "EngineAdapter",
        console: "Console",
        *,
        matching: DependencyMatching = DependencyMatching.SIGIL,
        implicit_dependencies: Mapping[str, Sequence[str]] | None = None,
    ) -> None:
        self._registry = registry
        self._identity = identity
        self._engine = engine
        self._console = console
        self.matching = matching
        self._implicit: Dict[str, List[str]] = {}
        for token, dependencies in (implicit_dependencies or {}).items():
            self.set_implicit_dependencies(token, dependencies)

    def set_implicit_dependencies(self, token: str, dependencies: Iterable[str]) -> None:
        """Record the libraries an external library ``token`` pulls in when linked."""
        self._implicit[self.matching.normalize(token)] = [dep for dep in dependencies if dep]

    def resolve_token(self, token: str, *, owner: str | None = None) -> str | None:
        uid = self._identity.resolve(token)
        if uid is None and self._identity.is_qualified(token):
            raise UnknownTarget(f"Unknown target '{token}' given as dependency", uid=owner)
        return uid

    def add_dependencies(self, target: Target, tokens: Iterable[str]) -> List[str]:
        """Add build-order dependencies of ``target`` onto other targets."""
        added: List[str] = []
        for token in tokens:
            if not token:
                continue
            uid = self._identity.resolve(token)
            if uid is None:
                raise UnknownTarget(f"Unknown target '{token}' given as dependency", uid=target.uid)
            if uid == target.uid:
                continue
            self._engine.add_target_dependency(target.uid, uid)
            added.append(uid)
        return added

    def add_link_libraries(self, target: Target, tokens: Iterable[str]) -> List[str]:
        """Add link dependencies to ``target`` and return the newly added values."""

        added: List[str] = []
        for token in tokens:
            if token in _IGNORED_TOKENS:
                continue
            uid = self.resolve_token(token, owner=target.uid)
            if uid == target.uid:
                continue
            if target.link_dependencies.append(token, uid):
                added.append(uid or token)

        if target.kind.is_native:
            if added:
                self._engine.link_libraries(target.uid, added)
        elif target.kind.requires_link_closure:
            for value in self.closure(target.link_dependencies.values(), owner=target.uid):
                if target.link_dependencies.append(value, self._identity.resolve(value)):
                    added.append(value)
        if added:
            self._console.debug(f"Link dependencies of {target.uid}: {', '.join(added)}")
        return added

    def bind_pending(self, target: Target) -> None:
        """Bind tokens to targets that were declared after the dependency was added."""
        for entry in target.link_dependencies:
            if not entry.resolved:
                entry.bind(self.resolve_token(entry.token, owner=target.uid))

    def implicit_dependencies_of(self, token: str) -> List[str]:
        uid = self._identity.resolve(token)
        if uid is not None:
            return self._registry.require(uid).link_dependencies.values()
        return list(self._implicit.get(self.matching.normalize(token), ()))

    def closure(self, tokens: Iterable[str], *, owner: str | None = None) -> List[str]:
        """Return ``tokens`` plus everything they implicitly depend on, sorted.

        The computation repeats until a pass adds no new entry. Duplicates
        (after normalization) and references back to ``owner`` are dropped.
        """

        found: Dict[str, str] = {}
        if owner is not None:
            found[self.matching.normalize(owner)] = ""

        def _add(token: str) -> bool:
            if token in _IGNORED_TOKENS:
                return False
            value = self._identity.resolve(token) or token
            key = self.matching.normalize(value)
            if key in found:
                return False
            found[key] = value
            return True

        for token in tokens:
            _add(token)

        changed = True
        while changed:
            changed = False
            for value in [value for value in found.values() if value]:
                for dependency in self.implicit_dependencies_of(value):
                    if _add(dependency):
                        changed = True

        return sorted(value for value in found.values() if value)

    def target_closure(self, target: Target) -> List[Target]:
        """Declared targets ``target`` links against, directly or through other targets."""

        self.bind_pending(target)
        values = self.closure(target.link_dependencies.values(), owner=target.uid)
        return [self._registry.require(value) for value in values if value in self._registry]


__all__ = ["DependencyMatching", "DependencyResolver", "LINK_SIGIL"]
