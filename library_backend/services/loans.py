"""Loan transactions: issuing and returning books.

Both protocols run as a single unit of work. The book row (and, for issues,
the borrower's row) is locked before any check, so the availability counter,
the one-copy-per-user rule and the borrowing quota are evaluated against a
state no concurrent request can change before commit. Inserting the loan and
moving the counter either both commit or both roll back.
"""
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Callable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, sessionmaker

from library_backend.config import settings
from library_backend.models.book import Book
from library_backend.models.enums import LoanStatus
from library_backend.models.issued_book import IssuedBook
from library_backend.models.user import User
from library_backend.schemas.loan import LoanView
from library_backend.services.base import BaseService, is_positive_id, store_operation
from library_backend.services.catalog import CatalogService
from library_backend.services.result import Err, ErrorKind, Ok, Result, TransactionAborted
from library_backend.utils.timezone import today

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def compute_due_date(issue_date: date, issue_days: int) -> date:
    return issue_date + timedelta(days=issue_days)


def compute_fine(due_date: date, return_date: date, fine_per_day: Decimal) -> Decimal:
    """Fine for a return, charged per whole calendar day past the due date."""
    if return_date <= due_date:
        return Decimal("0.00")
    days_overdue = (return_date - due_date).days
    return (Decimal(fine_per_day) * days_overdue).quantize(CENTS)


@dataclass(frozen=True)
class ReturnReceipt:
    issue_id: int
    book_id: Optional[int]
    return_date: date
    fine_amount: Decimal

    @property
    def message(self) -> str:
        if self.fine_amount > 0:
            return f"Book returned successfully. Fine: Rs {self.fine_amount:.2f}"
        return "Book returned successfully. No fine"


@dataclass(frozen=True)
class InventoryDiscrepancy:
    book_id: int
    title: str
    recorded: int
    expected: int


class LoanService(BaseService):
    def __init__(
        self,
        catalog: CatalogService,
        session_factory: Optional[sessionmaker] = None,
        clock: Optional[Callable[[], date]] = None,
        issue_days: Optional[int] = None,
        max_books_per_user: Optional[int] = None,
        fine_per_day: Optional[Decimal] = None,
        timeout_seconds: Optional[float] = None,
    ):
        super().__init__(session_factory, timeout_seconds)
        self._catalog = catalog
        self._clock = clock or today
        self.issue_days = issue_days if issue_days is not None else settings.issue_days
        self.max_books_per_user = (
            max_books_per_user if max_books_per_user is not None else settings.max_books_per_user
        )
        self.fine_per_day = Decimal(fine_per_day if fine_per_day is not None else settings.fine_per_day)

    @property
    def policy(self) -> dict:
        return {
            "issueDays": self.issue_days,
            "maxBooksPerUser": self.max_books_per_user,
            "finePerDay": float(self.fine_per_day),
        }

    @store_operation(
        "Failed to issue book. Please try again",
        on_integrity_error=Err(
            ErrorKind.ALREADY_ISSUED_BY_USER,
            "You have already issued this book. Return it before issuing again",
        ),
    )
    def issue_book(self, book_id: int, user_id: int) -> Result:
        if not is_positive_id(book_id) or not is_positive_id(user_id):
            return Err(ErrorKind.VALIDATION, "Invalid book or user ID")

        with self._transaction() as db:
            book = db.query(Book).filter(Book.book_id == book_id).with_for_update().first()
            if book is None:
                return Err(ErrorKind.NOT_FOUND, "Book not found")
            if book.available_copies <= 0:
                return Err(ErrorKind.UNAVAILABLE, "Book is not available. All copies are issued")

            # Locking the borrower serializes their concurrent issues for the quota check
            user = db.query(User).filter(User.user_id == user_id).with_for_update().first()
            if user is None:
                return Err(ErrorKind.NOT_FOUND, "User not found")

            if self._open_count(db, user_id, book_id) > 0:
                return Err(
                    ErrorKind.ALREADY_ISSUED_BY_USER,
                    "You have already issued this book. Return it before issuing again",
                )
            if self._open_count(db, user_id) >= self.max_books_per_user:
                return Err(
                    ErrorKind.QUOTA_EXCEEDED,
                    f"You have reached the maximum limit of {self.max_books_per_user} books",
                )

            issue_date = self._clock()
            loan = IssuedBook(
                book_id=book_id,
                user_id=user_id,
                issue_date=issue_date,
                due_date=compute_due_date(issue_date, self.issue_days),
                status=LoanStatus.ISSUED.value,
                fine_amount=Decimal("0.00"),
            )
            db.add(loan)
            db.flush()

            if not self._catalog.adjust_available(db, book_id, -1):
                logger.error(f"Inventory counter refused decrement for book {book_id}; rolling back issue")
                raise TransactionAborted(
                    Err(ErrorKind.UNAVAILABLE, "Book is not available. All copies are issued")
                )

            db.refresh(loan)
            view = LoanView.from_row(loan, book.title, book.author, user.full_name)

        logger.info(
            f"Book issued - issue {view.issueId}: book {book_id} to user {user_id}, due {view.dueDate.isoformat()}"
        )
        return Ok(view)

    @store_operation("Failed to return book. Please try again")
    def return_book(self, issue_id: int) -> Result:
        if not is_positive_id(issue_id):
            return Err(ErrorKind.VALIDATION, "Invalid issue ID")

        with self._transaction() as db:
            loan = db.query(IssuedBook).filter(IssuedBook.issue_id == issue_id).with_for_update().first()
            if loan is None:
                return Err(ErrorKind.NOT_FOUND, "Issue record not found")
            if loan.status == LoanStatus.RETURNED.value:
                return Err(ErrorKind.ALREADY_RETURNED, "Book has already been returned")

            return_date = self._clock()
            fine = compute_fine(loan.due_date, return_date, self.fine_per_day)

            loan.status = LoanStatus.RETURNED.value
            loan.return_date = return_date
            loan.fine_amount = fine
            db.flush()

            if loan.book_id is not None and not self._catalog.adjust_available(db, loan.book_id, 1):
                logger.error(f"Inventory counter refused increment for book {loan.book_id}; rolling back return")
                raise TransactionAborted(
                    Err(ErrorKind.STORE_ERROR, "Failed to return book. Please try again")
                )

            receipt = ReturnReceipt(
                issue_id=loan.issue_id,
                book_id=loan.book_id,
                return_date=return_date,
                fine_amount=fine,
            )

        logger.info(f"Book returned - issue {issue_id}, fine Rs {fine:.2f}")
        return Ok(receipt)

    @store_operation("Failed to load issue record. Please try again")
    def get_loan(self, issue_id: int) -> Result:
        if not is_positive_id(issue_id):
            return Err(ErrorKind.VALIDATION, "Invalid issue ID")
        with self._transaction() as db:
            row = self._view_query(db).filter(IssuedBook.issue_id == issue_id).first()
        if row is None:
            return Err(ErrorKind.NOT_FOUND, "Issue record not found")
        return Ok(LoanView.from_row(*row))

    @store_operation("Failed to load issued books. Please try again")
    def open_loans_all(self) -> Result:
        with self._transaction() as db:
            rows = self._view_query(db).filter(
                IssuedBook.status == LoanStatus.ISSUED.value
            ).order_by(IssuedBook.issue_date.desc(), IssuedBook.issue_id.desc()).all()
        return Ok(self._views(rows))

    @store_operation("Failed to load issued books. Please try again")
    def open_loans_by_user(self, user_id: int) -> Result:
        if not is_positive_id(user_id):
            return Err(ErrorKind.VALIDATION, "Invalid user ID")
        with self._transaction() as db:
            rows = self._view_query(db).filter(
                IssuedBook.user_id == user_id,
                IssuedBook.status == LoanStatus.ISSUED.value
            ).order_by(IssuedBook.issue_date.desc(), IssuedBook.issue_id.desc()).all()
        return Ok(self._views(rows))

    @store_operation("Failed to load history. Please try again")
    def history_by_user(self, user_id: int) -> Result:
        if not is_positive_id(user_id):
            return Err(ErrorKind.VALIDATION, "Invalid user ID")
        with self._transaction() as db:
            rows = self._view_query(db).filter(
                IssuedBook.user_id == user_id
            ).order_by(IssuedBook.issue_date.desc(), IssuedBook.issue_id.desc()).all()
        return Ok(self._views(rows))

    @store_operation("Failed to load overdue books. Please try again")
    def overdue(self) -> Result:
        current_date = self._clock()
        with self._transaction() as db:
            rows = self._view_query(db).filter(
                IssuedBook.status == LoanStatus.ISSUED.value,
                IssuedBook.due_date < current_date
            ).order_by(IssuedBook.due_date.asc(), IssuedBook.issue_id.asc()).all()
        return Ok(self._views(rows))

    @store_operation("Failed to load history. Please try again")
    def all_history(self) -> Result:
        with self._transaction() as db:
            rows = self._view_query(db).order_by(
                IssuedBook.issue_date.desc(), IssuedBook.issue_id.desc()
            ).all()
        return Ok(self._views(rows))

    @store_operation("Failed to count issued books. Please try again")
    def open_count_by_user(self, user_id: int) -> Result:
        if not is_positive_id(user_id):
            return Err(ErrorKind.VALIDATION, "Invalid user ID")
        with self._transaction() as db:
            return Ok(self._open_count(db, user_id))

    @store_operation("Inventory reconciliation failed")
    def reconcile_inventory(self) -> Result:
        """Recompute every book's available counter from its open loans.

        Returns the discrepancies that were found and corrected.
        """
        discrepancies: List[InventoryDiscrepancy] = []
        with self._transaction() as db:
            open_counts = dict(
                db.query(IssuedBook.book_id, func.count(IssuedBook.issue_id)).filter(
                    IssuedBook.status == LoanStatus.ISSUED.value,
                    IssuedBook.book_id.isnot(None)
                ).group_by(IssuedBook.book_id).all()
            )
            for book in db.query(Book).order_by(Book.book_id).with_for_update().all():
                expected = book.total_copies - open_counts.get(book.book_id, 0)
                if book.available_copies == expected:
                    continue
                if expected < 0:
                    logger.error(
                        f"Book {book.book_id} has more open loans than copies "
                        f"({open_counts[book.book_id]} > {book.total_copies}); setting available to 0"
                    )
                logger.warning(
                    f"Inventory mismatch for book {book.book_id} '{book.title}': "
                    f"available_copies={book.available_copies}, expected {expected}"
                )
                discrepancies.append(InventoryDiscrepancy(
                    book_id=book.book_id,
                    title=book.title,
                    recorded=book.available_copies,
                    expected=expected,
                ))
                book.available_copies = max(expected, 0)

        if discrepancies:
            logger.warning(f"Reconciliation corrected {len(discrepancies)} book(s)")
        else:
            logger.info("Reconciliation found no inventory mismatches")
        return Ok(discrepancies)

    @staticmethod
    def _open_count(db: Session, user_id: int, book_id: Optional[int] = None) -> int:
        query = db.query(func.count(IssuedBook.issue_id)).filter(
            IssuedBook.user_id == user_id,
            IssuedBook.status == LoanStatus.ISSUED.value
        )
        if book_id is not None:
            query = query.filter(IssuedBook.book_id == book_id)
        return query.scalar() or 0

    @staticmethod
    def _view_query(db: Session):
        return db.query(IssuedBook, Book.title, Book.author, User.full_name).outerjoin(
            Book, IssuedBook.book_id == Book.book_id
        ).outerjoin(
            User, IssuedBook.user_id == User.user_id
        )

    @staticmethod
    def _views(rows) -> List[LoanView]:
        return [LoanView.from_row(*row) for row in rows]
