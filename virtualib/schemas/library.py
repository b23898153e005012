from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from virtualib.schemas.refs import UserRef

class LibraryBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None

class LibraryCreate(LibraryBase):
    # Only honoured for admins; librarians always own what they create
    owner_id: Optional[int] = None

class LibraryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    owner_id: Optional[int] = None

class LibraryResponse(LibraryBase):
    id: int
    owner_id: Optional[int] = None
    owner: Optional[UserRef] = None
    member_count: int = 0
    book_count: int = 0
    category_count: int = 0
    created_at: Optional[datetime] = None

    @classmethod
    def from_library(cls, library, counts: Optional[dict] = None) -> "LibraryResponse":
        counts = counts or {}
        return cls(
            id=library.id,
            name=library.name,
            description=library.description,
            owner_id=library.owner_id,
            owner=UserRef.model_validate(library.owner) if library.owner else None,
            member_count=counts.get("members", 0),
            book_count=counts.get("books", 0),
            category_count=counts.get("categories", 0),
            created_at=library.created_at,
        )
