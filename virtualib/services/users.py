import logging
from typing import List

from sqlalchemy.orm import Session, joinedload, selectinload

from virtualib.errors import Conflict, Forbidden, NotFound, ValidationFailed
from virtualib.models.library import Library
from virtualib.models.user import ROLE_ADMIN, ROLE_USER, Role, User
from virtualib.schemas.user import UserCreate, UserUpdate
from virtualib.services.access import authorize
from virtualib.services.auth import get_password_hash
from virtualib.services.scope import Principal, ScopeKind, resolve_scope
from virtualib.utils.timezone import now_local

logger = logging.getLogger(__name__)


def _user_query(db: Session):
    return db.query(User).options(joinedload(User.role), selectinload(User.libraries))


def _visible_user_filter(principal: Principal):
    """Librarians see non-admin users sharing at least one of their libraries."""
    scope = resolve_scope(principal, ScopeKind.READ)
    return User.libraries.any(scope.filter(Library.id))


def list_users(db: Session, principal: Principal, include_deleted: bool = False) -> List[User]:
    authorize(principal, "list_users")
    query = _user_query(db)
    if not principal.is_admin:
        query = query.join(Role).filter(Role.role_name != ROLE_ADMIN, _visible_user_filter(principal))
    if not include_deleted:
        query = query.filter(User.deleted_at.is_(None))
    return query.order_by(User.name, User.surname, User.id).all()


def get_user(db: Session, principal: Principal, user_id: int) -> User:
    authorize(principal, "get_user")
    user = _user_query(db).filter(User.id == user_id).first()
    if user is None:
        raise NotFound("User not found")
    if principal.is_admin:
        return user
    member_of = {library.id for library in user.libraries}
    if user.role_name == ROLE_ADMIN or not resolve_scope(principal, ScopeKind.READ).intersects(member_of):
        raise NotFound("User not found")
    return user


def _ensure_manageable(principal: Principal, user: User) -> None:
    """Librarians only manage users who belong to a library they own."""
    if principal.is_admin:
        return
    member_of = {library.id for library in user.libraries}
    if user.role_name != ROLE_USER or not resolve_scope(principal, ScopeKind.OWNER).intersects(member_of):
        raise Forbidden("Forbidden: you can only manage users of libraries you own")


def _load_role(db: Session, role_id: int) -> Role:
    role = db.get(Role, role_id)
    if role is None:
        raise ValidationFailed("Invalid role", errors=[{"path": "role_id", "message": "Unknown role"}])
    return role


def _load_libraries(db: Session, principal: Principal, library_ids) -> List[Library]:
    wanted = set(library_ids or [])
    if not wanted:
        return []
    if not principal.is_admin:
        owner_scope = resolve_scope(principal, ScopeKind.OWNER)
        foreign = sorted(library_id for library_id in wanted if not owner_scope.allows(library_id))
        if foreign:
            raise Forbidden(f"Forbidden: you do not own libraries {foreign}")
    libraries = db.query(Library).filter(Library.id.in_(wanted)).all()
    missing = wanted - {library.id for library in libraries}
    if missing:
        raise ValidationFailed(
            "Unknown libraries",
            errors=[{"path": "library_ids", "message": f"Library {library_id} does not exist"}
                    for library_id in sorted(missing)],
        )
    return libraries


def _ensure_email_free(db: Session, email: str, exclude_user_id: int = None) -> None:
    query = db.query(User).filter(User.email == email)
    if exclude_user_id is not None:
        query = query.filter(User.id != exclude_user_id)
    existing = query.first()
    if existing is None:
        return
    if existing.deleted_at is not None:
        raise Conflict("This email belongs to a deleted account; ask an admin to restore it")
    raise Conflict("Email already registered")


def create_user(db: Session, principal: Principal, payload: UserCreate) -> User:
    authorize(principal, "create_user")
    role = _load_role(db, payload.role_id)
    if not principal.is_admin:
        if role.role_name != ROLE_USER:
            raise Forbidden("Forbidden: librarians can only create standard users")
        if not payload.library_ids:
            raise ValidationFailed(
                "A library is required",
                errors=[{"path": "library_ids", "message": "Assign the user to at least one of your libraries"}],
            )
    libraries = _load_libraries(db, principal, payload.library_ids)
    _ensure_email_free(db, payload.email)

    user = User(
        name=payload.name,
        surname=payload.surname,
        email=payload.email,
        phone=payload.phone,
        role_id=role.id,
        password_hash=get_password_hash(payload.password),
        is_active=True,
    )
    user.libraries = libraries
    db.add(user)
    db.commit()
    logger.info(f"User {user.id} ({role.role_name}) created by user {principal.id}")
    return get_user(db, principal, user.id)


def update_user(db: Session, principal: Principal, user_id: int, payload: UserUpdate) -> User:
    authorize(principal, "update_user")
    user = get_user(db, principal, user_id)
    _ensure_manageable(principal, user)
    data = payload.model_dump(exclude_unset=True)

    role_id = data.pop("role_id", None)
    if role_id is not None and role_id != user.role_id:
        if not principal.is_admin:
            raise Forbidden("Forbidden: only an admin can change roles")
        user.role = _load_role(db, role_id)

    library_ids = data.pop("library_ids", None)
    if library_ids is not None:
        libraries = _load_libraries(db, principal, library_ids)
        if not principal.is_admin:
            # Memberships in libraries the librarian does not own are kept
            owner_scope = resolve_scope(principal, ScopeKind.OWNER)
            libraries += [library for library in user.libraries if not owner_scope.allows(library.id)]
        user.libraries = libraries

    email = data.pop("email", None)
    if email is not None and email != user.email:
        _ensure_email_free(db, email, exclude_user_id=user.id)
        user.email = email

    password = data.pop("password", None)
    if password:
        user.password_hash = get_password_hash(password)

    for field, value in data.items():
        if value is None and field in ("name", "surname", "is_active"):
            continue
        setattr(user, field, value)

    db.commit()
    logger.info(f"User {user.id} updated by user {principal.id}")
    return _user_query(db).filter(User.id == user.id).one()


def delete_user(db: Session, principal: Principal, user_id: int) -> None:
    """Soft delete: the account is deactivated and hidden, its history is kept."""
    authorize(principal, "delete_user")
    if user_id == principal.id:
        raise Forbidden("Forbidden: you cannot delete your own account")
    user = get_user(db, principal, user_id)
    _ensure_manageable(principal, user)
    user.deleted_at = now_local()
    user.is_active = False
    db.commit()
    logger.info(f"User {user_id} deleted by user {principal.id}")


def list_roles(db: Session, principal: Principal) -> List[Role]:
    authorize(principal, "list_roles")
    return db.query(Role).order_by(Role.id).all()
