"""Authorization gate: per-operation role check plus per-resource scope check."""
import logging
from typing import Optional

from virtualib.errors import Forbidden, NotFound
from virtualib.models.user import ROLE_ADMIN, ROLE_LIBRARIAN, ROLE_USER
from virtualib.services.scope import Principal, ScopeKind, resolve_scope
from virtualib.services.transitions import Actor

logger = logging.getLogger(__name__)

ALL_ROLES = frozenset({ROLE_ADMIN, ROLE_LIBRARIAN, ROLE_USER})
MANAGERS = frozenset({ROLE_ADMIN, ROLE_LIBRARIAN})
ADMIN_ONLY = frozenset({ROLE_ADMIN})

# Which roles may invoke an operation at all
OPERATION_ROLES = {
    # libraries
    "list_libraries": ALL_ROLES,
    "get_library": ALL_ROLES,
    "create_library": MANAGERS,
    "update_library": MANAGERS,
    "delete_library": MANAGERS,
    # categories
    "list_categories": ALL_ROLES,
    "create_category": MANAGERS,
    "update_category": MANAGERS,
    "delete_category": MANAGERS,
    # books
    "list_books": ALL_ROLES,
    "get_book": ALL_ROLES,
    "create_book": MANAGERS,
    "update_book": MANAGERS,
    "delete_book": MANAGERS,
    "restore_book": MANAGERS,
    "generate_summary": MANAGERS,
    # borrow requests
    "list_requests": ALL_ROLES,
    "request_borrow": frozenset({ROLE_USER}),
    "approve_borrow": MANAGERS,
    "reject_borrow": MANAGERS,
    "cancel_borrow": ALL_ROLES,
    # loans
    "list_loans": ALL_ROLES,
    "get_loan": ALL_ROLES,
    "assign_loan": MANAGERS,
    "request_return": ALL_ROLES,
    "cancel_return_request": ALL_ROLES,
    "approve_return": MANAGERS,
    "reject_return": MANAGERS,
    # users
    "list_users": MANAGERS,
    "get_user": MANAGERS,
    "create_user": MANAGERS,
    "update_user": MANAGERS,
    "delete_user": MANAGERS,
    # settings and misc
    "manage_settings": ADMIN_ONLY,
    "send_test_email": ADMIN_ONLY,
    "view_dashboard": ALL_ROLES,
    "list_roles": ALL_ROLES,
}


def authorize(principal: Principal, operation: str) -> None:
    """Role gate. Raises Forbidden when the principal's role may not run ``operation``."""
    allowed = OPERATION_ROLES.get(operation)
    if allowed is None:
        raise KeyError(f"Unknown operation: {operation}")
    if principal.role not in allowed:
        logger.info(f"Role {principal.role} denied {operation} (user {principal.id})")
        raise Forbidden()


def ensure_in_scope(principal: Principal, library_id: Optional[int], kind: ScopeKind = ScopeKind.READ,
                    resource: str = "Resource") -> None:
    """Resource gate.

    Resources outside the principal's visible libraries look exactly like
    missing ones.  A resource the principal can see but not modify with
    ``kind`` is Forbidden, since its existence is already known to them.
    """
    if not resolve_scope(principal, ScopeKind.READ).allows(library_id):
        raise NotFound(f"{resource} not found")
    if kind is not ScopeKind.READ and not resolve_scope(principal, kind).allows(library_id):
        raise Forbidden(f"Forbidden: you do not manage this {resource.lower()}'s library")


def ensure_actor(principal: Principal, library_id: int, owner_id: int, actor: Actor, resource: str) -> None:
    """Check that ``principal`` may act as ``actor`` on a request or loan.

    Admins act as anyone.  Standard users only ever see their own records.
    Librarians manage records of their libraries but act as the borrower
    only on records they created themselves.
    """
    if principal.is_admin:
        return
    if principal.is_user:
        if owner_id != principal.id or not resolve_scope(principal, ScopeKind.READ).allows(library_id):
            raise NotFound(f"{resource} not found")
        if actor is Actor.MANAGER:
            raise Forbidden()
        return
    ensure_in_scope(principal, library_id, ScopeKind.WRITE, resource)
    if actor is Actor.BORROWER and owner_id != principal.id:
        raise Forbidden("Forbidden: only the borrower can do this")


def ensure_library_writable(principal: Principal, library_id: int, kind: ScopeKind = ScopeKind.WRITE) -> None:
    """Gate for payloads that *target* a library (create calls).

    The caller named the library explicitly, so refusing is reported as
    Forbidden rather than Not Found.
    """
    if not resolve_scope(principal, kind).allows(library_id):
        raise Forbidden("Forbidden: you do not manage this library")
