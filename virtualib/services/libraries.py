import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from virtualib.errors import ConstraintViolation, Forbidden, NotFound
from virtualib.models.book import Book, Category
from virtualib.config import settings as app_settings
from virtualib.models.library import Library, LibrarySettings, library_member
from virtualib.models.user import ROLE_LIBRARIAN, User
from virtualib.schemas.library import LibraryCreate, LibraryUpdate
from virtualib.services.access import authorize, ensure_in_scope
from virtualib.services.scope import Principal, ScopeKind, resolve_scope

logger = logging.getLogger(__name__)


def _count_by_library(db: Session, column, library_ids: List[int]) -> Dict[int, int]:
    rows = db.query(column, func.count()).filter(column.in_(library_ids)).group_by(column).all()
    return {library_id: count for library_id, count in rows}


def library_counts(db: Session, library_ids: List[int]) -> Dict[int, dict]:
    """Member, book and category counts per library id."""
    if not library_ids:
        return {}
    members = _count_by_library(db, library_member.c.library_id, library_ids)
    books = _count_by_library(db, Book.library_id, library_ids)
    categories = _count_by_library(db, Category.library_id, library_ids)
    return {
        library_id: {
            "members": members.get(library_id, 0),
            "books": books.get(library_id, 0),
            "categories": categories.get(library_id, 0),
        }
        for library_id in library_ids
    }


def list_libraries(db: Session, principal: Principal) -> List[Tuple[Library, dict]]:
    authorize(principal, "list_libraries")
    scope = resolve_scope(principal, ScopeKind.READ)
    libraries = db.query(Library).options(joinedload(Library.owner)).filter(
        scope.filter(Library.id)
    ).order_by(Library.name, Library.id).all()
    counts = library_counts(db, [library.id for library in libraries])
    return [(library, counts[library.id]) for library in libraries]


def get_library(db: Session, principal: Principal, library_id: int, kind: ScopeKind = ScopeKind.READ) -> Library:
    authorize(principal, "get_library")
    library = db.query(Library).options(joinedload(Library.owner)).filter(Library.id == library_id).first()
    if library is None:
        raise NotFound("Library not found")
    ensure_in_scope(principal, library.id, kind, "Library")
    return library


def _resolve_owner(db: Session, owner_id: int) -> User:
    owner = db.query(User).filter(User.id == owner_id, User.deleted_at.is_(None)).first()
    if owner is None:
        raise NotFound("Owner not found")
    if owner.role_name != ROLE_LIBRARIAN:
        raise ConstraintViolation(
            "Library owner must be a librarian",
            errors=[{"path": "owner_id", "message": "Only librarians can own a library"}],
        )
    return owner


def create_library(db: Session, principal: Principal, payload: LibraryCreate) -> Library:
    """Create a library together with its settings row.

    Librarians always own the libraries they create. Admins may hand the new
    library to a librarian through ``owner_id``.
    """
    authorize(principal, "create_library")
    if principal.is_admin:
        owner_id = _resolve_owner(db, payload.owner_id).id if payload.owner_id is not None else None
    else:
        owner_id = principal.id

    library = Library(name=payload.name, description=payload.description, owner_id=owner_id)
    library.settings = LibrarySettings(email_provider="smtp", overdue_days=app_settings.default_overdue_days)
    db.add(library)
    db.commit()
    logger.info(f"Library {library.id} '{library.name}' created by user {principal.id} (owner {owner_id})")
    return _reload(db, library.id)


def _reload(db: Session, library_id: int) -> Library:
    # The creating librarian's principal predates the new ownership
    return db.query(Library).options(joinedload(Library.owner)).filter(Library.id == library_id).one()


def update_library(db: Session, principal: Principal, library_id: int, payload: LibraryUpdate) -> Library:
    authorize(principal, "update_library")
    library = get_library(db, principal, library_id, ScopeKind.OWNER)
    data = payload.model_dump(exclude_unset=True)

    if "owner_id" in data:
        owner_id = data.pop("owner_id")
        if owner_id != library.owner_id:
            if not principal.is_admin:
                raise Forbidden("Forbidden: only an admin can change a library's owner")
            library.owner_id = _resolve_owner(db, owner_id).id if owner_id is not None else None
            logger.info(f"Library {library.id} owner changed to {library.owner_id}")

    for field, value in data.items():
        if field == "name" and value is None:
            continue
        setattr(library, field, value)

    db.commit()
    return _reload(db, library.id)


def delete_library(db: Session, principal: Principal, library_id: int) -> None:
    """Delete a library and everything it owns."""
    authorize(principal, "delete_library")
    library = get_library(db, principal, library_id, ScopeKind.OWNER)
    db.delete(library)
    db.commit()
    logger.info(f"Library {library_id} deleted by user {principal.id}")


def counts_for(db: Session, library: Library) -> dict:
    return library_counts(db, [library.id])[library.id]


def first_library_id(db: Session, principal: Principal) -> Optional[int]:
    """The library a principal means when they do not name one.

    Owned libraries come first, then assigned ones; admins fall back to the
    lowest library id.
    """
    scope_owned = resolve_scope(principal, ScopeKind.OWNER)
    if principal.is_librarian and scope_owned.library_ids:
        return min(scope_owned.library_ids)
    if principal.assigned_library_ids:
        return min(principal.assigned_library_ids)
    if principal.is_admin:
        return db.query(func.min(Library.id)).scalar()
    return None
