from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from virtualib.config import settings
from virtualib.database import get_db
from virtualib.schemas.settings import SettingsUpdate, SettingsResponse, TestEmailRequest
from virtualib.services import library_settings
from virtualib.services.access import authorize
from virtualib.services.auth import get_current_principal
from virtualib.services.mailer import EmailService, get_email_service, send_test_email
from virtualib.services.scope import Principal

router = APIRouter(prefix=f"{settings.api_prefix}/settings", tags=["Settings"])

@router.get("", response_model=SettingsResponse)
def get_settings(
    library_id: Optional[int] = Query(None, description="Defaults to the caller's first library"),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Get a library's settings. Secrets are never returned."""
    return SettingsResponse.model_validate(library_settings.get_settings(db, principal, library_id))

@router.put("", response_model=SettingsResponse)
def update_settings(
    settings_data: SettingsUpdate,
    library_id: Optional[int] = Query(None, description="Defaults to the caller's first library"),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    row = library_settings.update_settings(db, principal, settings_data, library_id)
    return SettingsResponse.model_validate(row)

@router.post("/test-email")
async def test_email(
    email_data: TestEmailRequest,
    principal: Principal = Depends(get_current_principal),
    email_service: EmailService = Depends(get_email_service)
):
    """Send one message with the given, unsaved, provider settings."""
    authorize(principal, "send_test_email")
    await send_test_email(email_service, email_data)
    return {"message": "Test email sent successfully!"}
