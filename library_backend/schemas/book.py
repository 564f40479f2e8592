from pydantic import BaseModel
from typing import Optional
from datetime import datetime

class BookBase(BaseModel):
    title: Optional[str] = None
    author: Optional[str] = None
    isbn: Optional[str] = None
    publisher: Optional[str] = None
    # Integers may arrive as JSON numbers such as 2020.0
    publicationYear: Optional[int] = None
    category: Optional[str] = None
    totalCopies: Optional[int] = None

class BookCreate(BookBase):
    pass

class BookUpdate(BookBase):
    """Admin edits never carry availableCopies; the loan service owns that counter."""
    pass

class BookResponse(BaseModel):
    bookId: int
    title: str
    author: str
    isbn: str
    publisher: Optional[str] = None
    publicationYear: int
    category: Optional[str] = None
    totalCopies: int
    availableCopies: int
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    class Config:
        from_attributes = True
