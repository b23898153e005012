from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List
from virtualib.config import settings
from virtualib.database import get_db
from virtualib.schemas.user import UserCreate, UserUpdate, UserResponse
from virtualib.services import users
from virtualib.services.auth import get_current_principal
from virtualib.services.scope import Principal

router = APIRouter(prefix=f"{settings.api_prefix}/users", tags=["Users"])

@router.get("", response_model=List[UserResponse])
def list_users(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Users the caller may manage. Librarians only see members of their libraries."""
    return [UserResponse.from_user(user) for user in users.list_users(db, principal)]

@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    user_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    return UserResponse.from_user(users.get_user(db, principal, user_id))

@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    user_data: UserCreate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    return UserResponse.from_user(users.create_user(db, principal, user_data))

@router.put("/{user_id}", response_model=UserResponse)
def update_user(
    user_id: int,
    user_data: UserUpdate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    return UserResponse.from_user(users.update_user(db, principal, user_id, user_data))

@router.delete("/{user_id}")
def delete_user(
    user_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Deactivate and hide a user. Their loan history is kept."""
    users.delete_user(db, principal, user_id)
    return {"message": "User deleted successfully", "id": user_id}
