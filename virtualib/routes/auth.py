from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from virtualib.config import settings
from virtualib.database import get_db
from virtualib.schemas.auth import UserLogin, UserSummary, Token
from virtualib.services.auth import authenticate_user, get_current_principal, issue_token_for
from virtualib.services.scope import Principal

router = APIRouter(prefix=f"{settings.api_prefix}/auth", tags=["Authentication"])

@router.post("/login", response_model=Token)
def login(user_data: UserLogin, db: Session = Depends(get_db)):
    """Login and get access token."""
    user = authenticate_user(db, user_data.email, user_data.password)
    return Token(token=issue_token_for(user), token_type="bearer", user=UserSummary.from_user(user))

@router.get("/me", response_model=UserSummary)
def get_current_user_info(principal: Principal = Depends(get_current_principal)):
    """Get current authenticated user information."""
    return UserSummary.from_user(principal.user)
