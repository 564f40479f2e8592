from pydantic import BaseModel
from typing import Optional
from datetime import date, datetime

class IssueRequest(BaseModel):
    """Body of POST /api/issue: {"action": "issue", bookId, userId} or {"action": "return", issueId}."""
    action: Optional[str] = None
    bookId: Optional[int] = None
    userId: Optional[int] = None
    issueId: Optional[int] = None

class LoanView(BaseModel):
    """An issued-book row joined with the book and borrower fields shown to people."""
    issueId: int
    bookId: Optional[int] = None
    userId: int
    issueDate: date
    dueDate: date
    returnDate: Optional[date] = None
    status: str
    fineAmount: float
    bookTitle: Optional[str] = None
    bookAuthor: Optional[str] = None
    userName: Optional[str] = None
    createdAt: Optional[datetime] = None

    @classmethod
    def from_row(cls, loan, book_title, book_author, user_name) -> "LoanView":
        return cls(
            **loan.to_dict(),
            bookTitle=book_title,
            bookAuthor=book_author,
            userName=user_name,
        )

    @property
    def is_open(self) -> bool:
        return self.returnDate is None

class PolicyResponse(BaseModel):
    issueDays: int
    maxBooksPerUser: int
    finePerDay: float
