from .library import Library, LibrarySettings, library_member
from .user import Role, User
from .book import Category, Book, book_category
from .loan import Loan, LoanStatus
from .borrow_request import BorrowRequest, RequestStatus

__all__ = [
    "Library",
    "LibrarySettings",
    "library_member",
    "Role",
    "User",
    "Category",
    "Book",
    "book_category",
    "Loan",
    "LoanStatus",
    "BorrowRequest",
    "RequestStatus",
]
