from sqlalchemy import Column, String, DateTime, Integer, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from virtualib.database import Base
from virtualib.models.library import library_member

ROLE_ADMIN = "admin"
ROLE_LIBRARIAN = "librarian"
ROLE_USER = "user"
ROLE_NAMES = (ROLE_ADMIN, ROLE_LIBRARIAN, ROLE_USER)

class Role(Base):
    __tablename__ = "user_role"

    id = Column(Integer, primary_key=True, autoincrement=True)
    role_name = Column(String(50), unique=True, nullable=False)

    users = relationship("User", back_populates="role")

class User(Base):
    __tablename__ = "user"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    surname = Column(String(100), nullable=False, default="")
    # Unique across soft-deleted rows too
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(20), nullable=True)
    role_id = Column(Integer, ForeignKey("user_role.id", ondelete="RESTRICT"), nullable=False)
    password_hash = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    role = relationship("Role", back_populates="users")
    libraries = relationship("Library", secondary=library_member, back_populates="members")
    owned_libraries = relationship("Library", back_populates="owner", foreign_keys="Library.owner_id")
    loans = relationship("Loan", back_populates="user", cascade="all, delete-orphan")
    borrow_requests = relationship("BorrowRequest", back_populates="user", cascade="all, delete-orphan")

    @property
    def role_name(self):
        return self.role.role_name if self.role else None

    @property
    def full_name(self):
        return f"{self.name} {self.surname}".strip()
