from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from virtualib.schemas.refs import CategoryRef, LibraryRef

class BookBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    original_title: Optional[str] = Field(None, max_length=255)
    author: str = Field(..., min_length=1, max_length=255)
    isbn: str = Field(..., min_length=10, max_length=20)
    publish_year: int
    publisher: str = Field(..., min_length=1, max_length=255)
    cover_url: Optional[str] = Field(None, max_length=500)
    summary_tr: Optional[str] = None
    summary_en: Optional[str] = None

class BookCreate(BookBase):
    library_id: int
    category_ids: List[int] = []

class BookUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    original_title: Optional[str] = Field(None, max_length=255)
    author: Optional[str] = Field(None, min_length=1, max_length=255)
    isbn: Optional[str] = Field(None, min_length=10, max_length=20)
    publish_year: Optional[int] = None
    publisher: Optional[str] = Field(None, min_length=1, max_length=255)
    cover_url: Optional[str] = Field(None, max_length=500)
    summary_tr: Optional[str] = None
    summary_en: Optional[str] = None
    library_id: Optional[int] = None
    category_ids: Optional[List[int]] = None

class BookResponse(BookBase):
    id: int
    library_id: int
    library: Optional[LibraryRef] = None
    categories: List[CategoryRef] = []
    available: bool = True
    disabled: bool = False
    deleted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class SummaryRequest(BaseModel):
    name: str = Field(..., min_length=1)
    author: str = Field(..., min_length=1)

class SummaryResponse(BaseModel):
    summary_tr: str
    summary_en: str
