import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from library_backend.models.book import Book
from library_backend.models.enums import LoanStatus
from library_backend.models.issued_book import IssuedBook
from library_backend.services.base import MAX_INT, BaseService, is_blank, is_positive_id, store_operation, too_long
from library_backend.services.result import Err, ErrorKind, Ok, Result

logger = logging.getLogger(__name__)

MIN_PUBLICATION_YEAR = 1000
MAX_PUBLICATION_YEAR = 2100
BOOK_COLUMNS = Book.__table__.c


def validate_book_fields(
    title: Optional[str],
    author: Optional[str],
    isbn: Optional[str],
    publication_year: Optional[int],
    total_copies: Optional[int],
    available_copies: Optional[int] = None,
    publisher: Optional[str] = None,
    category: Optional[str] = None,
) -> Optional[Err]:
    """Return the first field-level problem with a book, or None."""
    if is_blank(title):
        return Err(ErrorKind.VALIDATION, "Title cannot be empty")
    if is_blank(author):
        return Err(ErrorKind.VALIDATION, "Author cannot be empty")
    if is_blank(isbn):
        return Err(ErrorKind.VALIDATION, "ISBN cannot be empty")
    for label, value, column in (
        ("Title", title, BOOK_COLUMNS.title),
        ("Author", author, BOOK_COLUMNS.author),
        ("ISBN", isbn, BOOK_COLUMNS.isbn),
        ("Publisher", publisher, BOOK_COLUMNS.publisher),
        ("Category", category, BOOK_COLUMNS.category),
    ):
        if too_long(value, column):
            return Err(ErrorKind.VALIDATION, f"{label} is too long")
    if total_copies is None or total_copies <= 0:
        return Err(ErrorKind.VALIDATION, "Total copies must be greater than 0")
    if total_copies > MAX_INT:
        return Err(ErrorKind.VALIDATION, "Total copies is too large")
    if available_copies is not None and not 0 <= available_copies <= total_copies:
        return Err(ErrorKind.VALIDATION, "Available copies must be between 0 and total copies")
    if publication_year is None or not MIN_PUBLICATION_YEAR <= publication_year <= MAX_PUBLICATION_YEAR:
        return Err(ErrorKind.VALIDATION, "Invalid publication year")
    return None


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class CatalogService(BaseService):
    """Book catalog: CRUD, searches and the copy counter used by loans."""

    @store_operation(
        "Failed to add book. Please try again",
        on_integrity_error=Err(ErrorKind.DUPLICATE, "ISBN already exists"),
    )
    def add_book(
        self,
        title: str,
        author: str,
        isbn: str,
        publication_year: int,
        total_copies: int,
        publisher: Optional[str] = None,
        category: Optional[str] = None,
        available_copies: Optional[int] = None,
    ) -> Result:
        if available_copies is None:
            available_copies = total_copies
        error = validate_book_fields(
            title, author, isbn, publication_year, total_copies, available_copies,
            publisher=publisher, category=category,
        )
        if error:
            return error

        isbn = isbn.strip()
        with self._transaction() as db:
            if db.query(Book.book_id).filter(Book.isbn == isbn).first():
                return Err(ErrorKind.DUPLICATE, "ISBN already exists")

            book = Book(
                title=title.strip(),
                author=author.strip(),
                isbn=isbn,
                publisher=_clean(publisher),
                publication_year=publication_year,
                category=_clean(category),
                total_copies=total_copies,
                available_copies=available_copies,
            )
            db.add(book)
            db.flush()
            db.refresh(book)

        logger.info(f"Book added: {book.book_id} '{book.title}' ({book.isbn})")
        return Ok(book)

    @store_operation(
        "Failed to update book. Please try again",
        on_integrity_error=Err(ErrorKind.DUPLICATE, "ISBN already exists"),
    )
    def update_book(
        self,
        book_id: int,
        title: str,
        author: str,
        isbn: str,
        publication_year: int,
        total_copies: int,
        publisher: Optional[str] = None,
        category: Optional[str] = None,
    ) -> Result:
        """Update book metadata.

        ``available_copies`` is never taken from the caller. When
        ``total_copies`` changes, the counter moves by the same amount under
        the row lock so copies currently out on loan stay accounted for.
        """
        if not is_positive_id(book_id):
            return Err(ErrorKind.VALIDATION, "Invalid book ID")
        error = validate_book_fields(
            title, author, isbn, publication_year, total_copies,
            publisher=publisher, category=category,
        )
        if error:
            return error

        isbn = isbn.strip()
        with self._transaction() as db:
            book = db.query(Book).filter(Book.book_id == book_id).with_for_update().first()
            if book is None:
                return Err(ErrorKind.NOT_FOUND, "Book not found")

            clash = db.query(Book.book_id).filter(Book.isbn == isbn, Book.book_id != book_id).first()
            if clash:
                return Err(ErrorKind.DUPLICATE, "ISBN already exists")

            copies_out = book.total_copies - book.available_copies
            if total_copies < copies_out:
                return Err(
                    ErrorKind.VALIDATION,
                    f"Total copies cannot be less than the {copies_out} copies currently issued",
                )

            book.title = title.strip()
            book.author = author.strip()
            book.isbn = isbn
            book.publisher = _clean(publisher)
            book.publication_year = publication_year
            book.category = _clean(category)
            book.total_copies = total_copies
            book.available_copies = total_copies - copies_out
            db.flush()
            db.refresh(book)

        logger.info(f"Book updated: {book.book_id} '{book.title}'")
        return Ok(book)

    @store_operation("Failed to delete book. Please try again")
    def delete_book(self, book_id: int) -> Result:
        if not is_positive_id(book_id):
            return Err(ErrorKind.VALIDATION, "Invalid book ID")

        with self._transaction() as db:
            book = db.query(Book).filter(Book.book_id == book_id).with_for_update().first()
            if book is None:
                return Err(ErrorKind.NOT_FOUND, "Book not found")

            open_loans = db.query(func.count(IssuedBook.issue_id)).filter(
                IssuedBook.book_id == book_id,
                IssuedBook.status == LoanStatus.ISSUED.value
            ).scalar()
            if open_loans or book.available_copies < book.total_copies:
                return Err(ErrorKind.BUSY, "Cannot delete book. Some copies are currently issued")

            # Bulk delete so the store applies ON DELETE SET NULL to loan history
            db.query(Book).filter(Book.book_id == book_id).delete(synchronize_session=False)

        logger.info(f"Book deleted: {book_id}")
        return Ok(book_id)

    @store_operation("Failed to load book. Please try again")
    def get_book(self, book_id: int) -> Result:
        if not is_positive_id(book_id):
            return Err(ErrorKind.VALIDATION, "Invalid book ID")
        with self._transaction() as db:
            book = db.query(Book).filter(Book.book_id == book_id).first()
        if book is None:
            return Err(ErrorKind.NOT_FOUND, "Book not found")
        return Ok(book)

    @store_operation("Failed to load books. Please try again")
    def list_books(self) -> Result:
        with self._transaction() as db:
            books = db.query(Book).order_by(func.lower(Book.title).asc(), Book.book_id.asc()).all()
        return Ok(books)

    def search_by_title(self, query: Optional[str]) -> Result:
        return self._search(Book.title, query)

    def search_by_author(self, query: Optional[str]) -> Result:
        return self._search(Book.author, query)

    @store_operation("Failed to load books. Please try again")
    def by_category(self, category: Optional[str]) -> Result:
        if is_blank(category):
            return self.list_books()
        with self._transaction() as db:
            books = db.query(Book).filter(
                func.lower(Book.category) == category.strip().lower()
            ).order_by(func.lower(Book.title).asc(), Book.book_id.asc()).all()
        return Ok(books)

    @store_operation("Failed to load books. Please try again")
    def available_books(self) -> Result:
        with self._transaction() as db:
            books = db.query(Book).filter(
                Book.available_copies > 0
            ).order_by(func.lower(Book.title).asc(), Book.book_id.asc()).all()
        return Ok(books)

    @store_operation("Failed to search books. Please try again")
    def _search(self, column, query: Optional[str]) -> Result:
        if is_blank(query):
            return self.list_books()
        with self._transaction() as db:
            books = db.query(Book).filter(
                func.lower(column).contains(query.strip().lower(), autoescape=True)
            ).order_by(func.lower(Book.title).asc(), Book.book_id.asc()).all()
        return Ok(books)

    @staticmethod
    def adjust_available(db: Session, book_id: int, delta: int) -> bool:
        """Move a book's available counter by ``delta`` inside the caller's transaction.

        The update is conditional, so it never leaves the counter outside
        ``0..total_copies``. Returns False when no row was changed.
        """
        updated = db.query(Book).filter(
            Book.book_id == book_id,
            Book.available_copies + delta >= 0,
            Book.available_copies + delta <= Book.total_copies,
        ).update(
            {Book.available_copies: Book.available_copies + delta},
            synchronize_session=False,
        )
        return updated == 1

