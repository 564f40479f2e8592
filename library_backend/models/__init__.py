from .enums import UserRole, LoanStatus
from .user import User
from .book import Book
from .issued_book import IssuedBook

__all__ = [
    "UserRole",
    "LoanStatus",
    "User",
    "Book",
    "IssuedBook",
]
