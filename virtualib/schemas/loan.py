from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from virtualib.schemas.refs import BookRef, UserRef

class LoanCreate(BaseModel):
    book_id: int
    user_id: int
    due_date: Optional[datetime] = None

class LoanResponse(BaseModel):
    id: int
    library_id: int
    book_id: int
    user_id: int
    borrowed_at: datetime
    due_at: datetime
    returned_at: Optional[datetime] = None
    status: str
    book: Optional[BookRef] = None
    user: Optional[UserRef] = None

    class Config:
        from_attributes = True
