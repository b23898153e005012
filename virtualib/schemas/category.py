from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    library_id: int

class CategoryUpdate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)

class CategoryResponse(BaseModel):
    id: int
    name: str
    library_id: int
    book_count: int = 0
    created_at: Optional[datetime] = None

    @classmethod
    def from_category(cls, category, book_count: int = 0) -> "CategoryResponse":
        return cls(
            id=category.id,
            name=category.name,
            library_id=category.library_id,
            book_count=book_count,
            created_at=category.created_at,
        )
