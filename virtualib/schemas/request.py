from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from virtualib.schemas.refs import BookRef, UserRef

class BorrowRequestCreate(BaseModel):
    book_id: int

class RequestDecision(BaseModel):
    status: str = Field(..., pattern="^(approved|rejected)$")

class BorrowRequestResponse(BaseModel):
    id: int
    library_id: int
    book_id: int
    user_id: int
    status: str
    requested_at: Optional[datetime] = None
    decided_at: Optional[datetime] = None
    loan_id: Optional[int] = None

    class Config:
        from_attributes = True

class RequestFeedEntry(BaseModel):
    """One row of the unified borrow/return history."""
    kind: str
    id: int
    status: str
    date: Optional[datetime] = None
    library_id: int
    book: Optional[BookRef] = None
    user: Optional[UserRef] = None
