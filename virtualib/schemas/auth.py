from pydantic import BaseModel, EmailStr
from typing import List, Optional
from virtualib.schemas.refs import LibraryRef

class UserLogin(BaseModel):
    email: EmailStr
    password: str

class UserSummary(BaseModel):
    id: int
    name: str
    surname: str
    email: str
    role: str
    libraries: List[LibraryRef] = []
    owned_libraries: List[LibraryRef] = []

    @classmethod
    def from_user(cls, user) -> "UserSummary":
        return cls(
            id=user.id,
            name=user.name,
            surname=user.surname,
            email=user.email,
            role=user.role_name,
            libraries=[LibraryRef.model_validate(library) for library in user.libraries],
            owned_libraries=[LibraryRef.model_validate(library) for library in user.owned_libraries],
        )

class Token(BaseModel):
    token: str
    token_type: str = "bearer"
    user: UserSummary

class RoleResponse(BaseModel):
    id: int
    role_name: str

    class Config:
        from_attributes = True
