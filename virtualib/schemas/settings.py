from pydantic import BaseModel, EmailStr, Field
from typing import Any, Optional

class SettingsUpdate(BaseModel):
    email_provider: Optional[str] = Field(None, pattern="^(smtp|gmail)$")
    smtp_host: Optional[str] = None
    smtp_port: Optional[int] = Field(None, gt=0, le=65535)
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_from: Optional[str] = None
    gmail_user: Optional[EmailStr] = None
    gmail_client_id: Optional[str] = None
    gmail_client_secret: Optional[str] = None
    gmail_refresh_token: Optional[str] = None
    overdue_days: Optional[int] = Field(None, gt=0, le=365)
    reminder_rules: Optional[Any] = None
    email_templates: Optional[Any] = None

class SettingsResponse(BaseModel):
    id: int
    library_id: int
    email_provider: str
    smtp_host: Optional[str] = None
    smtp_port: Optional[int] = None
    smtp_user: Optional[str] = None
    smtp_from: Optional[str] = None
    gmail_user: Optional[str] = None
    gmail_client_id: Optional[str] = None
    has_smtp_password: bool = False
    has_gmail_credentials: bool = False
    overdue_days: int
    reminder_rules: Optional[Any] = None
    email_templates: Optional[Any] = None

    class Config:
        from_attributes = True

class TestEmailRequest(BaseModel):
    """Unsaved provider configuration plus the recipient of a single test message."""
    to_email: EmailStr
    email_provider: str = Field("smtp", pattern="^(smtp|gmail)$")
    smtp_host: Optional[str] = None
    smtp_port: Optional[int] = Field(None, gt=0, le=65535)
    smtp_user: Optional[str] = None
    smtp_pass: Optional[str] = None
    smtp_from: Optional[str] = None
    gmail_user: Optional[str] = None
    gmail_client_id: Optional[str] = None
    gmail_client_secret: Optional[str] = None
    gmail_refresh_token: Optional[str] = None
    email_templates: Optional[dict] = None
