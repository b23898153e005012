from pydantic import BaseModel, EmailStr, Field
from typing import List, Optional
from datetime import datetime
from virtualib.schemas.refs import LibraryRef

class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    surname: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=20)
    role_id: int
    library_ids: List[int] = []
    password: str = Field(..., min_length=6)

class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    surname: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=20)
    role_id: Optional[int] = None
    library_ids: Optional[List[int]] = None
    password: Optional[str] = Field(None, min_length=6)
    is_active: Optional[bool] = None

class UserResponse(BaseModel):
    id: int
    name: str
    surname: str
    email: str
    phone: Optional[str] = None
    role: str
    is_active: bool
    libraries: List[LibraryRef] = []
    created_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    @classmethod
    def from_user(cls, user) -> "UserResponse":
        return cls(
            id=user.id,
            name=user.name,
            surname=user.surname,
            email=user.email,
            phone=user.phone,
            role=user.role_name,
            is_active=user.is_active,
            libraries=[LibraryRef.model_validate(library) for library in user.libraries],
            created_at=user.created_at,
            deleted_at=user.deleted_at,
        )
