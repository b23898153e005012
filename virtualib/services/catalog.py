"""Books and categories, scoped by tenant."""
import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload, selectinload

from virtualib.errors import ConstraintViolation, ExternalServiceError, Forbidden, NotFound
from virtualib.models.book import Book, Category, book_category
from virtualib.models.borrow_request import BorrowRequest, RequestStatus
from virtualib.models.library import Library
from virtualib.models.loan import Loan
from virtualib.schemas.book import BookCreate, BookUpdate
from virtualib.schemas.category import CategoryCreate, CategoryUpdate
from virtualib.services.access import authorize, ensure_in_scope, ensure_library_writable
from virtualib.services.scope import Principal, ScopeKind, resolve_scope
from virtualib.utils.timezone import now_local

logger = logging.getLogger(__name__)

# Columns that may not be cleared through an update
REQUIRED_BOOK_FIELDS = {"title", "author", "isbn", "publish_year", "publisher"}


def _book_query(db: Session):
    return db.query(Book).options(
        joinedload(Book.library),
        selectinload(Book.categories),
        selectinload(Book.loans),
    )


def list_books(db: Session, principal: Principal, library_id: Optional[int] = None,
               search: Optional[str] = None) -> List[Book]:
    """Books in the principal's visible libraries. Standard users never see disabled books."""
    authorize(principal, "list_books")
    scope = resolve_scope(principal, ScopeKind.READ).narrowed_to(library_id)
    query = _book_query(db).filter(scope.filter(Book.library_id))

    if principal.is_user:
        query = query.filter(Book.deleted_at.is_(None))

    if search:
        search_term = f"%{search}%"
        query = query.filter(
            or_(
                Book.title.ilike(search_term),
                Book.author.ilike(search_term),
                Book.isbn.ilike(search_term)
            )
        )

    return query.order_by(Book.created_at.desc(), Book.id.desc()).all()


def get_book(db: Session, principal: Principal, book_id: int, kind: ScopeKind = ScopeKind.READ) -> Book:
    book = _book_query(db).filter(Book.id == book_id).first()
    if book is None:
        raise NotFound("Book not found")
    ensure_in_scope(principal, book.library_id, kind, "Book")
    if principal.is_user and book.deleted_at is not None:
        raise NotFound("Book not found")
    return book


def _resolve_categories(db: Session, library_id: int, category_ids) -> List[Category]:
    wanted = set(category_ids or [])
    if not wanted:
        return []
    categories = db.query(Category).filter(Category.id.in_(wanted)).all()
    missing = wanted - {category.id for category in categories}
    if missing:
        raise ConstraintViolation(
            "Unknown categories",
            errors=[{"path": "category_ids", "message": f"Category {category_id} does not exist"}
                    for category_id in sorted(missing)],
        )
    foreign = [category.id for category in categories if category.library_id != library_id]
    if foreign:
        raise ConstraintViolation(
            "Categories must belong to the book's library",
            errors=[{"path": "category_ids", "message": f"Category {category_id} belongs to another library"}
                    for category_id in sorted(foreign)],
        )
    return categories


async def create_book(db: Session, principal: Principal, payload: BookCreate, summarizer=None) -> Book:
    """Create a book in ``payload.library_id``.

    Missing summaries are filled in by ``summarizer`` when one is configured;
    a summarizer failure only costs the summaries.
    """
    authorize(principal, "create_book")
    ensure_library_writable(principal, payload.library_id)
    if db.get(Library, payload.library_id) is None:
        raise NotFound("Library not found")

    categories = _resolve_categories(db, payload.library_id, payload.category_ids)
    data = payload.model_dump(exclude={"category_ids"})

    if not data.get("summary_tr") and not data.get("summary_en") and summarizer is not None and summarizer.enabled:
        try:
            generated = await summarizer.generate(data["title"], data["author"])
            data["summary_tr"] = generated.get("summary_tr") or None
            data["summary_en"] = generated.get("summary_en") or None
        except ExternalServiceError as e:
            logger.warning(f"Summary generation failed for '{data['title']}', continuing without: {e.message}")

    book = Book(**data)
    book.categories = categories
    db.add(book)
    db.commit()
    logger.info(f"Book {book.id} created in library {book.library_id} by user {principal.id}")
    return get_book(db, principal, book.id)


def _ensure_can_move(principal: Principal, source_library_id: int, target_library_id: int) -> None:
    if principal.is_admin:
        return
    owner_scope = resolve_scope(principal, ScopeKind.OWNER)
    if not (owner_scope.allows(source_library_id) and owner_scope.allows(target_library_id)):
        raise Forbidden("Forbidden: only the owner of both libraries can move a book")


def update_book(db: Session, principal: Principal, book_id: int, payload: BookUpdate) -> Book:
    authorize(principal, "update_book")
    book = get_book(db, principal, book_id, ScopeKind.WRITE)
    data = payload.model_dump(exclude_unset=True)
    target_library_id = data.pop("library_id", None)
    category_ids = data.pop("category_ids", None)

    if target_library_id is not None and target_library_id != book.library_id:
        _ensure_can_move(principal, book.library_id, target_library_id)
        if db.get(Library, target_library_id) is None:
            raise NotFound("Library not found")
        source_library_id = book.library_id
        book.library_id = target_library_id
        if category_ids is None:
            book.categories = []
        # Work in progress follows the book so the new library's staff can finish it
        db.query(Loan).filter(Loan.book_id == book.id, Loan.returned_at.is_(None)).update(
            {"library_id": target_library_id}, synchronize_session=False)
        db.query(BorrowRequest).filter(
            BorrowRequest.book_id == book.id,
            BorrowRequest.status == RequestStatus.PENDING.value,
        ).update({"library_id": target_library_id}, synchronize_session=False)
        logger.info(f"Book {book.id} moved from library {source_library_id} to {target_library_id}")

    if category_ids is not None:
        book.categories = _resolve_categories(db, book.library_id, category_ids)

    for field, value in data.items():
        if value is None and field in REQUIRED_BOOK_FIELDS:
            continue
        setattr(book, field, value)

    db.commit()
    db.expire_all()
    return get_book(db, principal, book_id)


def delete_book(db: Session, principal: Principal, book_id: int, hard: bool = False) -> None:
    """Soft delete (disable) a book, or remove it with its loan and request history."""
    authorize(principal, "delete_book")
    book = get_book(db, principal, book_id, ScopeKind.WRITE)
    if hard:
        db.delete(book)
        logger.info(f"Book {book_id} permanently deleted by user {principal.id}")
    else:
        book.deleted_at = now_local()
        logger.info(f"Book {book_id} disabled by user {principal.id}")
    db.commit()


def restore_book(db: Session, principal: Principal, book_id: int) -> Book:
    authorize(principal, "restore_book")
    book = get_book(db, principal, book_id, ScopeKind.WRITE)
    book.deleted_at = None
    db.commit()
    logger.info(f"Book {book_id} restored by user {principal.id}")
    return get_book(db, principal, book_id)


def list_categories(db: Session, principal: Principal, library_id: Optional[int] = None) -> List[Tuple[Category, int]]:
    """Categories in scope, each with the number of books attached to it."""
    authorize(principal, "list_categories")
    scope = resolve_scope(principal, ScopeKind.READ).narrowed_to(library_id)
    categories = db.query(Category).filter(scope.filter(Category.library_id)).order_by(Category.name, Category.id).all()
    counts = _category_book_counts(db, [category.id for category in categories])
    return [(category, counts.get(category.id, 0)) for category in categories]


def _category_book_counts(db: Session, category_ids: List[int]) -> Dict[int, int]:
    if not category_ids:
        return {}
    rows = db.query(book_category.c.category_id, func.count(book_category.c.book_id)).filter(
        book_category.c.category_id.in_(category_ids)
    ).group_by(book_category.c.category_id).all()
    return {category_id: count for category_id, count in rows}


def get_category(db: Session, principal: Principal, category_id: int, kind: ScopeKind = ScopeKind.READ) -> Category:
    category = db.query(Category).filter(Category.id == category_id).first()
    if category is None:
        raise NotFound("Category not found")
    ensure_in_scope(principal, category.library_id, kind, "Category")
    return category


def category_book_count(db: Session, category: Category) -> int:
    return _category_book_counts(db, [category.id]).get(category.id, 0)


def create_category(db: Session, principal: Principal, payload: CategoryCreate) -> Category:
    authorize(principal, "create_category")
    ensure_library_writable(principal, payload.library_id)
    if db.get(Library, payload.library_id) is None:
        raise NotFound("Library not found")
    category = Category(name=payload.name, library_id=payload.library_id)
    db.add(category)
    db.commit()
    db.refresh(category)
    logger.info(f"Category {category.id} created in library {category.library_id}")
    return category


def update_category(db: Session, principal: Principal, category_id: int, payload: CategoryUpdate) -> Category:
    authorize(principal, "update_category")
    category = get_category(db, principal, category_id, ScopeKind.WRITE)
    category.name = payload.name
    db.commit()
    db.refresh(category)
    return category


def delete_category(db: Session, principal: Principal, category_id: int) -> None:
    """Delete a category; books keep existing and simply lose the tag."""
    authorize(principal, "delete_category")
    category = get_category(db, principal, category_id, ScopeKind.WRITE)
    db.delete(category)
    db.commit()
    logger.info(f"Category {category_id} deleted by user {principal.id}")
