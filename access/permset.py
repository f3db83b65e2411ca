"""
Effective permission sets.

A user's effective permissions are either a concrete set of permission
names or the ``admin`` wildcard which stands for every permission.  The
two cases are kept apart by :class:`PermissionSet` so that a set can never
contain ``admin`` alongside other names: building one from any iterable
that mentions ``admin`` collapses it to the wildcard.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, List

ADMIN = 'admin'


@dataclass(frozen=True)
class PermissionSet:
    names: FrozenSet[str] = field(default_factory=frozenset)
    admin_all: bool = False

    @classmethod
    def of(cls, *sources: Iterable[str]) -> 'PermissionSet':
        """Union every source, collapsing to the wildcard if ``admin`` appears."""
        names: set[str] = set()
        for source in sources:
            for name in source or ():
                if not isinstance(name, str) or not name:
                    continue
                if name == ADMIN:
                    return cls.admin()
                names.add(name)
        return cls(names=frozenset(names))

    @classmethod
    def admin(cls) -> 'PermissionSet':
        return cls(names=frozenset(), admin_all=True)

    @classmethod
    def empty(cls) -> 'PermissionSet':
        return cls()

    def allows(self, permission: str) -> bool:
        return self.admin_all or permission in self.names

    def allows_any(self, permissions: Iterable[str]) -> bool:
        if self.admin_all:
            return True
        return any(p in self.names for p in permissions)

    def allows_all(self, permissions: Iterable[str]) -> bool:
        if self.admin_all:
            return True
        return all(p in self.names for p in permissions)

    def to_list(self) -> List[str]:
        """Storage form: ``["admin"]`` or the sorted names."""
        if self.admin_all:
            return [ADMIN]
        return sorted(self.names)

    def __contains__(self, permission: str) -> bool:
        return self.allows(permission)

    def __len__(self) -> int:
        return 1 if self.admin_all else len(self.names)

    def __bool__(self) -> bool:
        return self.admin_all or bool(self.names)
