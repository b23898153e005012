"""Tenant scope resolution.

This is the only module that decides which library ids a principal may touch.
Every query that lists or loads tenant data asks :func:`resolve_scope` for a
:class:`LibraryScope` and applies it with :meth:`LibraryScope.filter`; nothing
else compares library ids against a principal's memberships.
"""
import enum
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from sqlalchemy import false, true

from virtualib.models.user import ROLE_ADMIN, ROLE_LIBRARIAN, ROLE_USER, User


class ScopeKind(str, enum.Enum):
    READ = "read"
    WRITE = "write"
    OWNER = "owner"


@dataclass(frozen=True)
class Principal:
    """Authenticated identity with its role and library memberships resolved up front."""
    id: int
    role: str
    owned_library_ids: FrozenSet[int] = frozenset()
    assigned_library_ids: FrozenSet[int] = frozenset()
    user: Optional[User] = field(default=None, compare=False, repr=False)

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(
            id=user.id,
            role=user.role_name,
            owned_library_ids=frozenset(library.id for library in user.owned_libraries),
            assigned_library_ids=frozenset(library.id for library in user.libraries),
            user=user,
        )

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_librarian(self) -> bool:
        return self.role == ROLE_LIBRARIAN

    @property
    def is_user(self) -> bool:
        return self.role == ROLE_USER


@dataclass(frozen=True)
class LibraryScope:
    """A set of library ids, or ``None`` for the unrestricted (admin) scope."""
    library_ids: Optional[FrozenSet[int]]

    @property
    def unrestricted(self) -> bool:
        return self.library_ids is None

    def allows(self, library_id: Optional[int]) -> bool:
        if self.library_ids is None:
            return True
        return library_id in self.library_ids

    def intersects(self, library_ids) -> bool:
        """True when at least one of ``library_ids`` is in scope."""
        if self.library_ids is None:
            return True
        return not self.library_ids.isdisjoint(library_ids)

    def filter(self, column):
        """SQL predicate restricting ``column`` (a library id column) to this scope."""
        if self.library_ids is None:
            return true()
        if not self.library_ids:
            return false()
        return column.in_(sorted(self.library_ids))

    def narrowed_to(self, library_id: Optional[int]) -> "LibraryScope":
        """Intersect with a single requested library (used for ``?library_id=`` filters)."""
        if library_id is None:
            return self
        if self.allows(library_id):
            return LibraryScope(frozenset({library_id}))
        return LibraryScope(frozenset())


UNRESTRICTED = LibraryScope(None)
EMPTY = LibraryScope(frozenset())


def owned(principal: Principal) -> FrozenSet[int]:
    # Ownership is only meaningful for librarians
    if principal.is_librarian:
        return principal.owned_library_ids
    return frozenset()


def assigned(principal: Principal) -> FrozenSet[int]:
    return principal.assigned_library_ids


def visible(principal: Principal) -> FrozenSet[int]:
    return owned(principal) | assigned(principal)


def resolve_scope(principal: Principal, kind: ScopeKind = ScopeKind.READ) -> LibraryScope:
    """Return the library predicate for ``principal`` performing an operation of ``kind``.

    * admin: unrestricted for every kind.
    * librarian: read and write cover owned + assigned libraries; owner-only
      operations cover owned libraries.
    * user: read and write cover assigned libraries (writes are further limited
      to the user's own records by the caller); owner-only operations are empty.
    """
    kind = ScopeKind(kind)
    if principal.is_admin:
        return UNRESTRICTED
    if kind is ScopeKind.OWNER:
        return LibraryScope(owned(principal))
    if principal.is_librarian or principal.is_user:
        return LibraryScope(visible(principal))
    return EMPTY
