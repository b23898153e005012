"""Borrow requests and the unified borrow/return request feed."""
import heapq
import logging
from datetime import timedelta
from typing import Iterator, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from virtualib.config import settings
from virtualib.errors import Conflict, DuplicateRequest, NotFound, ValidationFailed
from virtualib.models.borrow_request import BorrowRequest, RequestStatus
from virtualib.models.loan import Loan, LoanStatus
from virtualib.schemas.refs import BookRef, UserRef
from virtualib.schemas.request import RequestFeedEntry
from virtualib.services.access import authorize, ensure_actor
from virtualib.services.catalog import get_book
from virtualib.services.library_settings import overdue_days_for
from virtualib.services.scope import Principal, ScopeKind, resolve_scope
from virtualib.services.transitions import BORROW_REQUEST_MACHINE, Actor, BorrowEvent, apply_transition
from virtualib.utils.timezone import now_local

logger = logging.getLogger(__name__)

FEED_KINDS = ("borrow", "return")
# Loan states that show up in the feed as return requests
RETURN_FEED_STATES = (
    LoanStatus.RETURN_REQUESTED.value,
    LoanStatus.RETURNED.value,
    LoanStatus.RETURN_REJECTED.value,
)


def open_loan_for(db: Session, book_id: int) -> Optional[Loan]:
    return db.query(Loan).filter(Loan.book_id == book_id, Loan.returned_at.is_(None)).first()


def create_request(db: Session, principal: Principal, book_id: int) -> BorrowRequest:
    authorize(principal, "request_borrow")
    book = get_book(db, principal, book_id)

    if not settings.allow_requests_on_loaned_books and open_loan_for(db, book.id) is not None:
        raise Conflict("Book is currently unavailable (on loan)")

    pending = db.query(BorrowRequest).filter(
        BorrowRequest.book_id == book.id,
        BorrowRequest.user_id == principal.id,
        BorrowRequest.status == RequestStatus.PENDING.value,
    ).first()
    if pending is not None:
        raise DuplicateRequest()

    request = BorrowRequest(
        library_id=book.library_id,
        book_id=book.id,
        user_id=principal.id,
        status=BORROW_REQUEST_MACHINE.initial,
        requested_at=now_local(),
    )
    db.add(request)
    try:
        db.commit()
    except IntegrityError:
        # A concurrent duplicate got there first
        db.rollback()
        raise DuplicateRequest()
    db.refresh(request)
    logger.info(f"Borrow request {request.id} filed by user {principal.id} for book {book.id}")
    return request


def _load_request(db: Session, principal: Principal, request_id: int, actor: Actor) -> BorrowRequest:
    request = db.query(BorrowRequest).filter(BorrowRequest.id == request_id).first()
    if request is None:
        raise NotFound("Request not found")
    ensure_actor(principal, request.library_id, request.user_id, actor, "Request")
    return request


def approve_request(db: Session, principal: Principal, request_id: int) -> Tuple[BorrowRequest, Loan]:
    """Approve a pending request and open the loan in one transaction.

    The open-loan check is repeated here, and the partial unique index on
    open loans settles any approval that races past it.
    """
    authorize(principal, "approve_borrow")
    request = _load_request(db, principal, request_id, Actor.MANAGER)
    BORROW_REQUEST_MACHINE.target(request.status, BorrowEvent.APPROVE, Actor.MANAGER)

    if open_loan_for(db, request.book_id) is not None:
        raise Conflict("Book is currently on loan")

    now = now_local()
    apply_transition(db, BorrowRequest, request, BORROW_REQUEST_MACHINE, BorrowEvent.APPROVE, Actor.MANAGER,
                     decided_at=now)
    days = overdue_days_for(db, request.library_id)
    loan = Loan(
        library_id=request.library_id,
        book_id=request.book_id,
        user_id=request.user_id,
        borrowed_at=now,
        due_at=now + timedelta(days=days),
        status=LoanStatus.ACTIVE.value,
    )
    db.add(loan)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning(f"Approval of request {request_id} lost the race for book {request.book_id}")
        raise Conflict("Book is currently on loan")

    db.refresh(request)
    db.refresh(loan)
    logger.info(f"Borrow request {request.id} approved by user {principal.id}; loan {loan.id} due {loan.due_at}")
    return request, loan


def reject_request(db: Session, principal: Principal, request_id: int) -> BorrowRequest:
    authorize(principal, "reject_borrow")
    request = _load_request(db, principal, request_id, Actor.MANAGER)
    apply_transition(db, BorrowRequest, request, BORROW_REQUEST_MACHINE, BorrowEvent.REJECT, Actor.MANAGER,
                     decided_at=now_local())
    db.commit()
    db.refresh(request)
    logger.info(f"Borrow request {request.id} rejected by user {principal.id}")
    return request


def decide_request(db: Session, principal: Principal, request_id: int, status: str) -> Tuple[BorrowRequest, Optional[Loan]]:
    if status == RequestStatus.APPROVED.value:
        return approve_request(db, principal, request_id)
    # RequestDecision only lets approved or rejected through
    return reject_request(db, principal, request_id), None


def cancel_request(db: Session, principal: Principal, request_id: int) -> BorrowRequest:
    authorize(principal, "cancel_borrow")
    request = _load_request(db, principal, request_id, Actor.BORROWER)
    apply_transition(db, BorrowRequest, request, BORROW_REQUEST_MACHINE, BorrowEvent.CANCEL, Actor.BORROWER,
                     decided_at=now_local())
    db.commit()
    db.refresh(request)
    logger.info(f"Borrow request {request.id} cancelled by user {principal.id}")
    return request


def _feed_entry(kind: str, row, date) -> RequestFeedEntry:
    return RequestFeedEntry(
        kind=kind,
        id=row.id,
        status=row.status,
        date=date,
        library_id=row.library_id,
        book=BookRef.model_validate(row.book) if row.book else None,
        user=UserRef.model_validate(row.user) if row.user else None,
    )


def _borrow_entries(db: Session, principal: Principal, status: Optional[str]) -> Iterator[RequestFeedEntry]:
    scope = resolve_scope(principal, ScopeKind.READ)
    query = db.query(BorrowRequest).options(
        joinedload(BorrowRequest.book), joinedload(BorrowRequest.user)
    ).filter(scope.filter(BorrowRequest.library_id))
    if principal.is_user:
        query = query.filter(BorrowRequest.user_id == principal.id)
    if status:
        query = query.filter(BorrowRequest.status == status)
    for request in query.order_by(BorrowRequest.requested_at.desc(), BorrowRequest.id.desc()):
        yield _feed_entry("borrow", request, request.requested_at)


def _return_entries(db: Session, principal: Principal, status: Optional[str]) -> Iterator[RequestFeedEntry]:
    scope = resolve_scope(principal, ScopeKind.READ)
    query = db.query(Loan).options(
        joinedload(Loan.book), joinedload(Loan.user)
    ).filter(scope.filter(Loan.library_id), Loan.status.in_(RETURN_FEED_STATES))
    if principal.is_user:
        query = query.filter(Loan.user_id == principal.id)
    if status:
        query = query.filter(Loan.status == status)
    # updated_at is when the return was requested or decided
    for loan in query.order_by(Loan.updated_at.desc(), Loan.id.desc()):
        yield _feed_entry("return", loan, loan.updated_at or loan.borrowed_at)


def _feed_key(entry: RequestFeedEntry):
    return (entry.date.timestamp() if entry.date else 0.0, entry.id)


def list_request_feed(db: Session, principal: Principal, kind: Optional[str] = None,
                      status: Optional[str] = None) -> List[RequestFeedEntry]:
    """Borrow requests and return requests merged into one newest-first stream."""
    authorize(principal, "list_requests")
    if kind is not None and kind not in FEED_KINDS:
        raise ValidationFailed("Invalid kind", errors=[{"path": "kind", "message": "Must be borrow or return"}])

    producers = []
    if kind in (None, "borrow"):
        producers.append(_borrow_entries(db, principal, status))
    if kind in (None, "return"):
        producers.append(_return_entries(db, principal, status))
    return list(heapq.merge(*producers, key=_feed_key, reverse=True))
