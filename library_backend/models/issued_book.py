from sqlalchemy import Column, String, Date, DateTime, Integer, Numeric, ForeignKey, CheckConstraint, Index, text
from sqlalchemy.sql import func
from library_backend.database import Base
from library_backend.models.enums import LoanStatus

class IssuedBook(Base):
    __tablename__ = "issued_books"
    
    issue_id = Column(Integer, primary_key=True, autoincrement=True)
    # History survives catalog deletes; open loans block them in the service
    book_id = Column(Integer, ForeignKey("books.book_id", ondelete="SET NULL"), nullable=True, index=True)
    user_id = Column(Integer, ForeignKey("users.user_id", ondelete="RESTRICT"), nullable=False, index=True)
    issue_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False, index=True)
    return_date = Column(Date, nullable=True)
    status = Column(String(20), default=LoanStatus.ISSUED.value, nullable=False, index=True)
    fine_amount = Column(Numeric(10, 2), default=0.00, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    
    __table_args__ = (
        CheckConstraint("status IN ('ISSUED', 'RETURNED')", name="chk_issue_status"),
        CheckConstraint(
            "(status = 'ISSUED' AND return_date IS NULL) OR "
            "(status = 'RETURNED' AND return_date IS NOT NULL)",
            name="chk_issue_return_date",
        ),
        CheckConstraint("fine_amount >= 0", name="chk_issue_fine_amount"),
        Index(
            "uq_issue_open_per_user_book",
            "user_id",
            "book_id",
            unique=True,
            sqlite_where=text("status = 'ISSUED'"),
            postgresql_where=text("status = 'ISSUED'"),
        ),
    )
    
    @property
    def is_open(self) -> bool:
        return self.status == LoanStatus.ISSUED.value
    
    def to_dict(self):
        return {
            "issueId": self.issue_id,
            "bookId": self.book_id,
            "userId": self.user_id,
            "issueDate": self.issue_date.isoformat() if self.issue_date else None,
            "dueDate": self.due_date.isoformat() if self.due_date else None,
            "returnDate": self.return_date.isoformat() if self.return_date else None,
            "status": self.status,
            "fineAmount": float(self.fine_amount or 0),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
