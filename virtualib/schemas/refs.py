from pydantic import BaseModel
from typing import Optional

class LibraryRef(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True

class CategoryRef(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True

class BookRef(BaseModel):
    id: int
    title: str
    author: str
    cover_url: Optional[str] = None

    class Config:
        from_attributes = True

class UserRef(BaseModel):
    id: int
    name: str
    surname: str
    email: str

    class Config:
        from_attributes = True
