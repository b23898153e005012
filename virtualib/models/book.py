from sqlalchemy import Column, String, DateTime, Integer, Text, ForeignKey, Table
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from virtualib.database import Base

book_category = Table(
    "book_category",
    Base.metadata,
    Column("book_id", Integer, ForeignKey("book.id", ondelete="CASCADE"), primary_key=True),
    Column("category_id", Integer, ForeignKey("category.id", ondelete="CASCADE"), primary_key=True),
)

class Category(Base):
    __tablename__ = "category"

    id = Column(Integer, primary_key=True, autoincrement=True)
    library_id = Column(Integer, ForeignKey("library.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    library = relationship("Library", back_populates="categories")
    books = relationship("Book", secondary=book_category, back_populates="categories")

class Book(Base):
    __tablename__ = "book"

    id = Column(Integer, primary_key=True, autoincrement=True)
    library_id = Column(Integer, ForeignKey("library.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    original_title = Column(String(255), nullable=True)
    author = Column(String(255), nullable=False)
    isbn = Column(String(20), nullable=False)
    publish_year = Column(Integer, nullable=False)
    publisher = Column(String(255), nullable=False)
    cover_url = Column(String(500), nullable=True)
    summary_tr = Column(Text, nullable=True)
    summary_en = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)

    # Relationships
    library = relationship("Library", back_populates="books")
    categories = relationship("Category", secondary=book_category, back_populates="books", order_by="Category.name")
    loans = relationship("Loan", back_populates="book", cascade="all, delete-orphan", passive_deletes=True)
    borrow_requests = relationship("BorrowRequest", back_populates="book", cascade="all, delete-orphan", passive_deletes=True)

    @property
    def disabled(self):
        return self.deleted_at is not None

    @property
    def available(self):
        return all(loan.returned_at is not None for loan in self.loans)
