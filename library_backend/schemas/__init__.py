from .common import MessageResponse
from .auth import RegisterRequest, LoginRequest, LoginResponse, UserResponse, UserUpdate
from .book import BookBase, BookCreate, BookUpdate, BookResponse
from .loan import IssueRequest, LoanView, PolicyResponse

__all__ = [
    "MessageResponse",
    "RegisterRequest", "LoginRequest", "LoginResponse", "UserResponse", "UserUpdate",
    "BookBase", "BookCreate", "BookUpdate", "BookResponse",
    "IssueRequest", "LoanView", "PolicyResponse",
]
