from sqlalchemy import Column, String, DateTime, Integer, CheckConstraint
from sqlalchemy.sql import func
from library_backend.database import Base

class Book(Base):
    __tablename__ = "books"
    
    book_id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False, index=True)
    author = Column(String(255), nullable=False)
    isbn = Column(String(20), unique=True, nullable=False, index=True)
    publisher = Column(String(255), nullable=True)
    publication_year = Column(Integer, nullable=False)
    category = Column(String(100), nullable=True, index=True)
    total_copies = Column(Integer, default=1, nullable=False)
    # Only the loan service moves this counter once the book exists
    available_copies = Column(Integer, default=1, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    
    __table_args__ = (
        CheckConstraint("total_copies >= 1", name="chk_book_total_copies"),
        CheckConstraint(
            "available_copies >= 0 AND available_copies <= total_copies",
            name="chk_book_available_copies",
        ),
        CheckConstraint(
            "publication_year >= 1000 AND publication_year <= 2100",
            name="chk_book_publication_year",
        ),
    )
    
    def to_dict(self):
        return {
            "bookId": self.book_id,
            "title": self.title,
            "author": self.author,
            "isbn": self.isbn,
            "publisher": self.publisher,
            "publicationYear": self.publication_year,
            "category": self.category,
            "totalCopies": self.total_copies,
            "availableCopies": self.available_copies,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
