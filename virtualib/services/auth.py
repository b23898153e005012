import logging
from datetime import timedelta
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session, joinedload, selectinload
from virtualib.config import settings
from virtualib.database import get_db
from virtualib.errors import Unauthenticated
from virtualib.models.user import User
from virtualib.services.scope import Principal
from virtualib.utils.timezone import now_local

logger = logging.getLogger(__name__)

# HTTP Bearer token - auto_error=False so we can handle errors ourselves
security = HTTPBearer(auto_error=False)

# Password hashing context - using bcrypt with automatic salt generation
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.bcrypt_rounds)

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a hashed password."""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError) as e:
        # If hash is not a valid bcrypt hash, return False
        logger.error(f"Password verification error: {e}. Hash format may be invalid.")
        return False

def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt."""
    return pwd_context.hash(password)

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    """Create a JWT access token."""
    to_encode = data.copy()
    if expires_delta:
        expire = now_local() + expires_delta
    else:
        expire = now_local() + timedelta(minutes=settings.jwt_access_token_expire_minutes)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
    return encoded_jwt

def issue_token_for(user: User) -> str:
    return create_access_token(data={"sub": str(user.id), "role": user.role_name})

def decode_user_id(token: str) -> int:
    """Verify a token's signature and expiry and return the user id it names."""
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        user_id_str = payload.get("sub")
        if user_id_str is None:
            raise Unauthenticated()
        return int(user_id_str)
    except JWTError as e:
        logger.warning(f"JWT validation error: {str(e)}")
        raise Unauthenticated()
    except (ValueError, TypeError) as e:
        logger.warning(f"Token parsing error: {str(e)}")
        raise Unauthenticated()

def load_user_with_memberships(db: Session, **criteria) -> Optional[User]:
    """Fetch a user with role, assigned libraries and owned libraries eagerly loaded."""
    return db.query(User).options(
        joinedload(User.role),
        selectinload(User.libraries),
        selectinload(User.owned_libraries),
    ).filter_by(**criteria).first()

def resolve_principal(db: Session, token: str) -> Principal:
    user = load_user_with_memberships(db, id=decode_user_id(token))
    if user is None or not user.is_active or user.deleted_at is not None:
        logger.warning("Token refers to a missing, inactive or deleted user")
        raise Unauthenticated()
    return Principal.from_user(user)

def authenticate_user(db: Session, email: str, password: str) -> User:
    user = load_user_with_memberships(db, email=email)
    if not user or not user.is_active or user.deleted_at is not None:
        raise Unauthenticated("Invalid credentials")
    if not verify_password(password, user.password_hash):
        raise Unauthenticated("Invalid credentials")
    return user

def get_current_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> Principal:
    """Get current authenticated principal from the bearer token."""
    # Check if credentials were provided
    if credentials is None or not credentials.credentials:
        auth_header = request.headers.get("Authorization")
        if auth_header:
            logger.warning("Authorization header present but not a bearer token")
        else:
            logger.warning("Authorization header missing")
        raise Unauthenticated("Unauthorized: no token provided")

    return resolve_principal(db, credentials.credentials)
