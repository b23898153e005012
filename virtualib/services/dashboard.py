"""Dashboard statistics.

Every figure is computed by its own job on its own session so the jobs can
run side by side in the threadpool; :meth:`DashboardAggregator.collect` fans
them out and gathers the results.
"""
import asyncio
import logging
from typing import Callable, Dict, List

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload, sessionmaker
from starlette.concurrency import run_in_threadpool

from virtualib.models.book import Book, Category, book_category
from virtualib.models.borrow_request import BorrowRequest, RequestStatus
from virtualib.models.library import Library
from virtualib.models.loan import Loan
from virtualib.models.user import User
from virtualib.schemas.dashboard import CategoryCount, DashboardStats, PopularBook, RecentRequest
from virtualib.services.access import authorize
from virtualib.services.scope import LibraryScope, Principal, ScopeKind, resolve_scope

logger = logging.getLogger(__name__)

TOP_N = 5


def count_books(db: Session, scope: LibraryScope, principal: Principal) -> int:
    return db.query(func.count(Book.id)).filter(scope.filter(Book.library_id), Book.deleted_at.is_(None)).scalar()


def count_users(db: Session, scope: LibraryScope, principal: Principal) -> int:
    query = db.query(func.count(User.id)).filter(User.deleted_at.is_(None))
    if not scope.unrestricted:
        query = query.filter(User.libraries.any(scope.filter(Library.id)))
    return query.scalar()


def count_active_loans(db: Session, scope: LibraryScope, principal: Principal) -> int:
    return db.query(func.count(Loan.id)).filter(scope.filter(Loan.library_id), Loan.returned_at.is_(None)).scalar()


def count_loans(db: Session, scope: LibraryScope, principal: Principal) -> int:
    return db.query(func.count(Loan.id)).filter(scope.filter(Loan.library_id)).scalar()


def count_requests_by_status(db: Session, scope: LibraryScope, principal: Principal) -> Dict[str, int]:
    rows = db.query(BorrowRequest.status, func.count(BorrowRequest.id)).filter(
        scope.filter(BorrowRequest.library_id)
    ).group_by(BorrowRequest.status).all()
    counts = {status.value: 0 for status in RequestStatus}
    counts.update({status: count for status, count in rows})
    return counts


def count_libraries(db: Session, scope: LibraryScope, principal: Principal) -> int:
    return db.query(func.count(Library.id)).filter(scope.filter(Library.id)).scalar()


def count_categories(db: Session, scope: LibraryScope, principal: Principal) -> int:
    return db.query(func.count(Category.id)).filter(scope.filter(Category.library_id)).scalar()


def books_by_category(db: Session, scope: LibraryScope, principal: Principal) -> List[CategoryCount]:
    rows = db.query(Category.name, func.count(Book.id)).join(
        book_category, book_category.c.category_id == Category.id
    ).join(
        Book, Book.id == book_category.c.book_id
    ).filter(
        scope.filter(Category.library_id), Book.deleted_at.is_(None)
    ).group_by(Category.id, Category.name).order_by(func.count(Book.id).desc(), Category.name).all()
    return [CategoryCount(name=name, value=count) for name, count in rows]


def popular_books(db: Session, scope: LibraryScope, principal: Principal) -> List[PopularBook]:
    # Scoped on the book's library so titles from other tenants never appear
    loan_count = func.count(Loan.id).label("loan_count")
    rows = db.query(Book.id, Book.title, Book.author, Book.cover_url, loan_count).join(
        Loan, Loan.book_id == Book.id
    ).filter(
        scope.filter(Book.library_id), Book.deleted_at.is_(None)
    ).group_by(Book.id, Book.title, Book.author, Book.cover_url).order_by(
        loan_count.desc(), Book.title
    ).limit(TOP_N).all()
    return [
        PopularBook(id=book_id, title=title, author=author, cover_url=cover_url, loan_count=count)
        for book_id, title, author, cover_url, count in rows
    ]


def recent_requests(db: Session, scope: LibraryScope, principal: Principal) -> List[RecentRequest]:
    query = db.query(BorrowRequest).options(
        joinedload(BorrowRequest.user), joinedload(BorrowRequest.book)
    ).filter(scope.filter(BorrowRequest.library_id))
    if principal.is_user:
        query = query.filter(BorrowRequest.user_id == principal.id)
    requests = query.order_by(BorrowRequest.requested_at.desc(), BorrowRequest.id.desc()).limit(TOP_N).all()
    return [
        RecentRequest(
            id=request.id,
            status=request.status,
            requested_at=request.requested_at,
            user_name=request.user.full_name,
            user_email=request.user.email,
            book_title=request.book.title,
            book_author=request.book.author,
        )
        for request in requests
    ]


JOBS: Dict[str, Callable] = {
    "total_books": count_books,
    "total_users": count_users,
    "active_loans": count_active_loans,
    "total_loans": count_loans,
    "requests": count_requests_by_status,
    "total_libraries": count_libraries,
    "total_categories": count_categories,
    "books_by_category": books_by_category,
    "popular_books": popular_books,
    "recent_requests": recent_requests,
}


class DashboardAggregator:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def _run(self, job: Callable, scope: LibraryScope, principal: Principal):
        db = self.session_factory()
        try:
            return job(db, scope, principal)
        finally:
            db.close()

    async def collect(self, principal: Principal) -> DashboardStats:
        authorize(principal, "view_dashboard")
        scope = resolve_scope(principal, ScopeKind.READ)
        names = list(JOBS)
        results = await asyncio.gather(
            *(run_in_threadpool(self._run, JOBS[name], scope, principal) for name in names)
        )
        values = dict(zip(names, results))
        requests = values.pop("requests")
        logger.debug(f"Dashboard computed for user {principal.id} over {len(names)} jobs")
        return DashboardStats(
            pending_requests=requests[RequestStatus.PENDING.value],
            accepted_requests=requests[RequestStatus.APPROVED.value],
            rejected_requests=requests[RequestStatus.REJECTED.value],
            cancelled_requests=requests[RequestStatus.CANCELLED.value],
            **values,
        )


def aggregator_for(db: Session) -> DashboardAggregator:
    """Aggregator whose sessions share ``db``'s engine."""
    return DashboardAggregator(sessionmaker(autocommit=False, autoflush=False, bind=db.get_bind()))
