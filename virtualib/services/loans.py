import logging
from datetime import timedelta
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from virtualib.errors import Conflict, ConstraintViolation, NotFound, ValidationFailed
from virtualib.models.loan import Loan
from virtualib.models.user import User
from virtualib.schemas.loan import LoanCreate
from virtualib.services.access import authorize, ensure_actor
from virtualib.services.borrow_requests import open_loan_for
from virtualib.services.catalog import get_book
from virtualib.services.library_settings import overdue_days_for
from virtualib.services.scope import Principal, ScopeKind, resolve_scope
from virtualib.services.transitions import LOAN_MACHINE, Actor, LoanEvent, apply_transition
from virtualib.utils.timezone import now_local

logger = logging.getLogger(__name__)


def _loan_query(db: Session):
    return db.query(Loan).options(joinedload(Loan.book), joinedload(Loan.user))


def list_loans(db: Session, principal: Principal, status: Optional[str] = None) -> List[Loan]:
    """Open loans in scope, newest first. Standard users only get their own."""
    authorize(principal, "list_loans")
    scope = resolve_scope(principal, ScopeKind.READ)
    query = _loan_query(db).filter(scope.filter(Loan.library_id))
    if principal.is_user:
        query = query.filter(Loan.user_id == principal.id)
    if status:
        if status not in LOAN_MACHINE.states:
            raise ValidationFailed("Invalid status", errors=[{"path": "status", "message": f"Unknown loan status {status}"}])
        query = query.filter(Loan.status == status)
    else:
        query = query.filter(Loan.returned_at.is_(None))
    return query.order_by(Loan.borrowed_at.desc(), Loan.id.desc()).all()


def get_loan(db: Session, principal: Principal, loan_id: int) -> Loan:
    authorize(principal, "get_loan")
    loan = _loan_query(db).filter(Loan.id == loan_id).first()
    if loan is None:
        raise NotFound("Loan not found")
    if principal.is_user:
        ensure_actor(principal, loan.library_id, loan.user_id, Actor.BORROWER, "Loan")
    elif not resolve_scope(principal, ScopeKind.READ).allows(loan.library_id):
        raise NotFound("Loan not found")
    return loan


def assign_loan(db: Session, principal: Principal, payload: LoanCreate) -> Loan:
    """Lend a book directly to a member of its library, without a request."""
    authorize(principal, "assign_loan")
    book = get_book(db, principal, payload.book_id, ScopeKind.WRITE)
    if book.disabled:
        raise ConstraintViolation("Disabled books cannot be lent")

    borrower = db.query(User).filter(User.id == payload.user_id, User.deleted_at.is_(None)).first()
    if borrower is None:
        raise NotFound("User not found")
    if book.library_id not in {library.id for library in borrower.libraries}:
        raise ConstraintViolation(
            "Borrower is not a member of the book's library",
            errors=[{"path": "user_id", "message": "User is not assigned to this library"}],
        )
    if open_loan_for(db, book.id) is not None:
        raise Conflict("Book is already on loan")

    now = now_local()
    due_at = payload.due_date or now + timedelta(days=overdue_days_for(db, book.library_id))
    loan = Loan(
        library_id=book.library_id,
        book_id=book.id,
        user_id=borrower.id,
        borrowed_at=now,
        due_at=due_at,
        status=LOAN_MACHINE.initial,
    )
    db.add(loan)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("Book is already on loan")
    logger.info(f"Loan {loan.id} of book {book.id} assigned to user {borrower.id} by user {principal.id}")
    return _loan_query(db).filter(Loan.id == loan.id).one()


def _transition(db: Session, principal: Principal, loan_id: int, event: LoanEvent, **changes) -> Loan:
    actor = LOAN_MACHINE.actor_for(event)
    loan = db.query(Loan).filter(Loan.id == loan_id).first()
    if loan is None:
        raise NotFound("Loan not found")
    ensure_actor(principal, loan.library_id, loan.user_id, actor, "Loan")
    target = apply_transition(db, Loan, loan, LOAN_MACHINE, event, actor, **changes)
    db.commit()
    logger.info(f"Loan {loan_id} moved to {target} by user {principal.id}")
    return _loan_query(db).filter(Loan.id == loan_id).one()


def request_return(db: Session, principal: Principal, loan_id: int) -> Loan:
    authorize(principal, "request_return")
    return _transition(db, principal, loan_id, LoanEvent.REQUEST_RETURN)


def cancel_return_request(db: Session, principal: Principal, loan_id: int) -> Loan:
    authorize(principal, "cancel_return_request")
    return _transition(db, principal, loan_id, LoanEvent.CANCEL_RETURN_REQUEST)


def approve_return(db: Session, principal: Principal, loan_id: int) -> Loan:
    """Close the loan; the book becomes available again."""
    authorize(principal, "approve_return")
    return _transition(db, principal, loan_id, LoanEvent.APPROVE_RETURN, returned_at=now_local())


def reject_return(db: Session, principal: Principal, loan_id: int) -> Loan:
    authorize(principal, "reject_return")
    return _transition(db, principal, loan_id, LoanEvent.REJECT_RETURN)
