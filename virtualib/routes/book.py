from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from virtualib.config import settings
from virtualib.database import get_db
from virtualib.schemas.book import BookCreate, BookUpdate, BookResponse, SummaryRequest, SummaryResponse
from virtualib.services import catalog
from virtualib.services.access import authorize
from virtualib.services.auth import get_current_principal
from virtualib.services.scope import Principal
from virtualib.services.summarizer import BookSummarizer, get_summarizer

router = APIRouter(prefix=f"{settings.api_prefix}/books", tags=["Books"])

@router.get("", response_model=List[BookResponse])
def get_books(
    library_id: Optional[int] = Query(None, description="Filter by library"),
    search: Optional[str] = Query(None, description="Search by title, author, or ISBN"),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Get list of books with optional search and filter."""
    books = catalog.list_books(db, principal, library_id=library_id, search=search)
    return [BookResponse.model_validate(book) for book in books]

@router.post("/generate-summary", response_model=SummaryResponse)
async def generate_summary(
    summary_data: SummaryRequest,
    principal: Principal = Depends(get_current_principal),
    summarizer: BookSummarizer = Depends(get_summarizer)
):
    """Generate Turkish and English summaries for a title and author."""
    authorize(principal, "generate_summary")
    summaries = await summarizer.generate(summary_data.name, summary_data.author)
    return SummaryResponse(**summaries)

@router.get("/{book_id}", response_model=BookResponse)
def get_book(
    book_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Get book details by ID."""
    return BookResponse.model_validate(catalog.get_book(db, principal, book_id))

@router.post("", response_model=BookResponse, status_code=status.HTTP_201_CREATED)
async def create_book(
    book_data: BookCreate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    summarizer: BookSummarizer = Depends(get_summarizer)
):
    """Create a book. Summaries are generated when none are given and a summarizer is configured."""
    book = await catalog.create_book(db, principal, book_data, summarizer)
    return BookResponse.model_validate(book)

@router.put("/{book_id}", response_model=BookResponse)
def update_book(
    book_id: int,
    book_data: BookUpdate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    return BookResponse.model_validate(catalog.update_book(db, principal, book_id, book_data))

@router.delete("/{book_id}")
def delete_book(
    book_id: int,
    type: str = Query("soft", pattern="^(soft|hard)$", description="soft disables the book, hard removes it"),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    catalog.delete_book(db, principal, book_id, hard=(type == "hard"))
    if type == "hard":
        return {"message": "Book permanently deleted", "id": book_id}
    return {"message": "Book disabled", "id": book_id}

@router.post("/{book_id}/restore", response_model=BookResponse)
def restore_book(
    book_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Re-enable a soft deleted book."""
    return BookResponse.model_validate(catalog.restore_book(db, principal, book_id))
