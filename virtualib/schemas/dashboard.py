from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime

class CategoryCount(BaseModel):
    name: str
    value: int

class PopularBook(BaseModel):
    id: int
    title: str
    author: str
    cover_url: Optional[str] = None
    loan_count: int

class RecentRequest(BaseModel):
    id: int
    status: str
    requested_at: Optional[datetime] = None
    user_name: str
    user_email: str
    book_title: str
    book_author: str

class DashboardStats(BaseModel):
    total_books: int
    total_users: int
    active_loans: int
    total_loans: int
    pending_requests: int
    accepted_requests: int
    rejected_requests: int
    cancelled_requests: int
    total_libraries: int
    total_categories: int
    books_by_category: List[CategoryCount] = []
    popular_books: List[PopularBook] = []
    recent_requests: List[RecentRequest] = []
