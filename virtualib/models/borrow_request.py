import enum

from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, CheckConstraint, Index, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from virtualib.database import Base

class RequestStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

class BorrowRequest(Base):
    __tablename__ = "borrow_request"

    id = Column(Integer, primary_key=True, autoincrement=True)
    library_id = Column(Integer, ForeignKey("library.id", ondelete="CASCADE"), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey("book.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(50), default=RequestStatus.PENDING.value, nullable=False, index=True)
    requested_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    decided_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    library = relationship("Library", back_populates="borrow_requests")
    book = relationship("Book", back_populates="borrow_requests")
    user = relationship("User", back_populates="borrow_requests")

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'cancelled')",
            name="chk_borrow_request_status",
        ),
        # One pending request per (book, requester)
        Index(
            "uq_borrow_request_pending",
            "book_id",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )
