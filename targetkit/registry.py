"""Run-scoped registry of declared and imported targets."""
from __future__ import annotations

from typing import Dict, Iterator, List

from .errors import NameCollision, UnknownTarget
from .model import Target, TargetKind


class TargetRegistry:
    """Ordered map of UID to :class:`Target` for one configuration run."""

    def __init__(self) -> None:
        self._targets: Dict[str, Target] = {}
        self._reserved: Dict[str, TargetKind] = {}
        self.include_directories: List[str] = []
        self.finalized = False

    def __contains__(self, uid: object) -> bool:
        return uid in self._targets

    def __iter__(self) -> Iterator[Target]:
        return iter(list(self._targets.values()))

    def __len__(self) -> int:
        return len(self._targets)

    def add(self, target: Target) -> Target:
        existing = self._targets.get(target.uid)
        if existing is not None:
            raise NameCollision(
                f"Name already used by {existing.kind.label} target; cannot add {target.kind.label} target",
                uid=target.uid,
            )
        self._reserved.pop(target.uid, None)
        self._targets[target.uid] = target
        return target

    def known(self, uid: str) -> bool:
        """Whether ``uid`` names a registered target or one being declared."""
        return uid in self._targets or uid in self._reserved

    def kind_of(self, uid: str) -> TargetKind | None:
        target = self._targets.get(uid)
        if target is not None:
            return target.kind
        return self._reserved.get(uid)

    def reserve(self, uid: str, kind: TargetKind) -> None:
        existing = self.kind_of(uid)
        if existing is not None:
            raise NameCollision(
                f"Cannot add {kind.label} target, name already used by {existing.label} target",
                uid=uid,
            )
        self._reserved[uid] = kind

    def release(self, uid: str) -> None:
        """Drop the reservation of a declaration that failed."""
        self._reserved.pop(uid, None)

    def get(self, uid: str) -> Target | None:
        return self._targets.get(uid)

    def require(self, uid: str) -> Target:
        target = self._targets.get(uid)
        if target is None:
            raise UnknownTarget("Unknown build target", uid=uid)
        return target

    def pending(self) -> List[Target]:
        return [target for target in self._targets.values() if target.pending]

    def uids(self) -> List[str]:
        return list(self._targets)
