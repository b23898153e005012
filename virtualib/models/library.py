from sqlalchemy import Column, String, DateTime, Integer, Text, ForeignKey, Table, JSON, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from virtualib.config import settings as app_settings
from virtualib.database import Base

# Membership: which users are assigned to which libraries
library_member = Table(
    "library_member",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("user.id", ondelete="CASCADE"), primary_key=True),
    Column("library_id", Integer, ForeignKey("library.id", ondelete="CASCADE"), primary_key=True),
)

class Library(Base):
    __tablename__ = "library"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    owner_id = Column(Integer, ForeignKey("user.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    owner = relationship("User", back_populates="owned_libraries", foreign_keys=[owner_id])
    members = relationship("User", secondary=library_member, back_populates="libraries")
    categories = relationship("Category", back_populates="library", cascade="all, delete-orphan", passive_deletes=True)
    books = relationship("Book", back_populates="library", cascade="all, delete-orphan", passive_deletes=True)
    loans = relationship("Loan", back_populates="library", cascade="all, delete-orphan", passive_deletes=True)
    borrow_requests = relationship("BorrowRequest", back_populates="library", cascade="all, delete-orphan", passive_deletes=True)
    settings = relationship("LibrarySettings", back_populates="library", uselist=False, cascade="all, delete-orphan", passive_deletes=True)

class LibrarySettings(Base):
    __tablename__ = "settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    library_id = Column(Integer, ForeignKey("library.id", ondelete="CASCADE"), nullable=False, unique=True)
    email_provider = Column(String(20), default="smtp", nullable=False)
    smtp_host = Column(String(255), nullable=True)
    smtp_port = Column(Integer, nullable=True)
    smtp_user = Column(String(255), nullable=True)
    smtp_password = Column(String(255), nullable=True)
    smtp_from = Column(String(255), nullable=True)
    gmail_user = Column(String(255), nullable=True)
    gmail_client_id = Column(String(255), nullable=True)
    gmail_client_secret = Column(String(255), nullable=True)
    gmail_refresh_token = Column(Text, nullable=True)
    overdue_days = Column(Integer, default=lambda: app_settings.default_overdue_days, nullable=False)
    reminder_rules = Column(JSON, nullable=True)
    email_templates = Column(JSON, nullable=True)

    library = relationship("Library", back_populates="settings")

    __table_args__ = (
        CheckConstraint("email_provider IN ('smtp', 'gmail')", name="chk_settings_provider"),
        CheckConstraint("overdue_days > 0", name="chk_settings_overdue_days"),
    )

    @property
    def has_smtp_password(self):
        return bool(self.smtp_password)

    @property
    def has_gmail_credentials(self):
        return bool(self.gmail_client_id and self.gmail_client_secret and self.gmail_refresh_token)
