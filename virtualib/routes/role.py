from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from virtualib.config import settings
from virtualib.database import get_db
from virtualib.schemas.auth import RoleResponse
from virtualib.services.auth import get_current_principal
from virtualib.services.scope import Principal
from virtualib.services.users import list_roles

router = APIRouter(prefix=f"{settings.api_prefix}/roles", tags=["Roles"])

@router.get("", response_model=List[RoleResponse])
def get_roles(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    return [RoleResponse.model_validate(role) for role in list_roles(db, principal)]
