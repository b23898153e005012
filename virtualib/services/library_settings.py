"""Per-library settings: mail provider credentials, loan period, reminder templates."""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from virtualib.config import settings as app_settings
from virtualib.errors import NotFound
from virtualib.models.library import Library, LibrarySettings
from virtualib.schemas.settings import SettingsUpdate
from virtualib.services.access import authorize, ensure_in_scope
from virtualib.services.libraries import first_library_id
from virtualib.services.scope import Principal, ScopeKind

logger = logging.getLogger(__name__)

# Write-only fields; an empty string in an update leaves the stored secret alone
SECRET_FIELDS = ("smtp_password", "gmail_client_secret", "gmail_refresh_token")


def _resolve_library_id(db: Session, principal: Principal, library_id: Optional[int]) -> int:
    if library_id is None:
        library_id = first_library_id(db, principal)
        if library_id is None:
            raise NotFound("No library found")
    if db.get(Library, library_id) is None:
        raise NotFound("Library not found")
    ensure_in_scope(principal, library_id, ScopeKind.WRITE, "Library")
    return library_id


def _get_or_create(db: Session, library_id: int) -> LibrarySettings:
    row = db.query(LibrarySettings).filter(LibrarySettings.library_id == library_id).first()
    if row is None:
        row = LibrarySettings(
            library_id=library_id,
            email_provider="smtp",
            overdue_days=app_settings.default_overdue_days,
        )
        db.add(row)
        db.flush()
        logger.warning(f"Library {library_id} had no settings row; created one with defaults")
    return row


def get_settings(db: Session, principal: Principal, library_id: Optional[int] = None) -> LibrarySettings:
    authorize(principal, "manage_settings")
    row = _get_or_create(db, _resolve_library_id(db, principal, library_id))
    db.commit()
    db.refresh(row)
    return row


def update_settings(db: Session, principal: Principal, payload: SettingsUpdate,
                    library_id: Optional[int] = None) -> LibrarySettings:
    authorize(principal, "manage_settings")
    row = _get_or_create(db, _resolve_library_id(db, principal, library_id))

    for field, value in payload.model_dump(exclude_unset=True).items():
        if field in SECRET_FIELDS and not value:
            continue
        if value is None and field in ("email_provider", "overdue_days"):
            continue
        setattr(row, field, value)

    db.commit()
    db.refresh(row)
    logger.info(f"Settings of library {row.library_id} updated by user {principal.id}")
    return row


def overdue_days_for(db: Session, library_id: int) -> int:
    """Loan period for ``library_id``, falling back to the configured default."""
    days = db.query(LibrarySettings.overdue_days).filter(LibrarySettings.library_id == library_id).scalar()
    return days or app_settings.default_overdue_days
