import enum

from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, CheckConstraint, Index, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from virtualib.database import Base

class LoanStatus(str, enum.Enum):
    ACTIVE = "active"
    RETURN_REQUESTED = "return_requested"
    RETURNED = "returned"
    RETURN_REJECTED = "return_rejected"

class Loan(Base):
    __tablename__ = "loan"

    id = Column(Integer, primary_key=True, autoincrement=True)
    library_id = Column(Integer, ForeignKey("library.id", ondelete="CASCADE"), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey("book.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    borrowed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    due_at = Column(DateTime(timezone=True), nullable=False, index=True)
    returned_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(50), default=LoanStatus.ACTIVE.value, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    library = relationship("Library", back_populates="loans")
    book = relationship("Book", back_populates="loans")
    user = relationship("User", back_populates="loans")

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'return_requested', 'returned', 'return_rejected')",
            name="chk_loan_status",
        ),
        # At most one open loan per book
        Index(
            "uq_loan_open_book",
            "book_id",
            unique=True,
            postgresql_where=text("returned_at IS NULL"),
            sqlite_where=text("returned_at IS NULL"),
        ),
    )
