from .refs import LibraryRef, CategoryRef, BookRef, UserRef
from .auth import UserLogin, UserSummary, Token, RoleResponse
from .library import LibraryBase, LibraryCreate, LibraryUpdate, LibraryResponse
from .category import CategoryCreate, CategoryUpdate, CategoryResponse
from .book import BookBase, BookCreate, BookUpdate, BookResponse, SummaryRequest, SummaryResponse
from .request import BorrowRequestCreate, RequestDecision, BorrowRequestResponse, RequestFeedEntry
from .loan import LoanCreate, LoanResponse
from .settings import SettingsUpdate, SettingsResponse, TestEmailRequest
from .user import UserCreate, UserUpdate, UserResponse
from .dashboard import DashboardStats

__all__ = [
    "LibraryRef", "CategoryRef", "BookRef", "UserRef",
    "UserLogin", "UserSummary", "Token", "RoleResponse",
    "LibraryBase", "LibraryCreate", "LibraryUpdate", "LibraryResponse",
    "CategoryCreate", "CategoryUpdate", "CategoryResponse",
    "BookBase", "BookCreate", "BookUpdate", "BookResponse", "SummaryRequest", "SummaryResponse",
    "BorrowRequestCreate", "RequestDecision", "BorrowRequestResponse", "RequestFeedEntry",
    "LoanCreate", "LoanResponse",
    "SettingsUpdate", "SettingsResponse", "TestEmailRequest",
    "UserCreate", "UserUpdate", "UserResponse",
    "DashboardStats",
]
