from fastapi import APIRouter, Depends, Query
from typing import List, Optional
from library_backend.dependencies import get_catalog_service
from library_backend.models.user import User
from library_backend.schemas.book import BookCreate, BookUpdate, BookResponse
from library_backend.schemas.common import MessageResponse
from library_backend.services.auth import require_admin
from library_backend.utils.responses import envelope, error_response

router = APIRouter(prefix="/api/books", tags=["Books"])

@router.get("", response_model=List[BookResponse])
def get_books(
    action: Optional[str] = Query(None, description="search, available or category"),
    search_type: Optional[str] = Query(None, alias="type", description="title or author when action=search"),
    query: Optional[str] = Query(None, description="Search text or category name"),
    catalog=Depends(get_catalog_service)
):
    """List books ordered by title, optionally searched or filtered."""
    if action == "search":
        if search_type == "title":
            result = catalog.search_by_title(query)
        elif search_type == "author":
            result = catalog.search_by_author(query)
        else:
            result = catalog.list_books()
    elif action == "available":
        result = catalog.available_books()
    elif action == "category":
        result = catalog.by_category(query)
    else:
        result = catalog.list_books()

    if not result.ok:
        return error_response(result)
    return [book.to_dict() for book in result.value]

@router.get("/{book_id}", response_model=BookResponse)
def get_book(book_id: int, catalog=Depends(get_catalog_service)):
    """Get book details by ID."""
    result = catalog.get_book(book_id)
    if not result.ok:
        return error_response(result)
    return result.value.to_dict()

@router.post("", response_model=MessageResponse)
def add_book(
    payload: BookCreate,
    current_user: User = Depends(require_admin),
    catalog=Depends(get_catalog_service)
):
    """Add a book; every copy starts out available."""
    result = catalog.add_book(
        title=payload.title,
        author=payload.author,
        isbn=payload.isbn,
        publication_year=payload.publicationYear,
        total_copies=payload.totalCopies,
        publisher=payload.publisher,
        category=payload.category,
    )
    return envelope(result, "Book added successfully")

@router.put("/{book_id}", response_model=MessageResponse)
def update_book(
    book_id: int,
    payload: BookUpdate,
    current_user: User = Depends(require_admin),
    catalog=Depends(get_catalog_service)
):
    """Edit book metadata and copy count."""
    result = catalog.update_book(
        book_id=book_id,
        title=payload.title,
        author=payload.author,
        isbn=payload.isbn,
        publication_year=payload.publicationYear,
        total_copies=payload.totalCopies,
        publisher=payload.publisher,
        category=payload.category,
    )
    return envelope(result, "Book updated successfully")

@router.delete("/{book_id}", response_model=MessageResponse)
def delete_book(
    book_id: int,
    current_user: User = Depends(require_admin),
    catalog=Depends(get_catalog_service)
):
    """Delete a book that has no copies out on loan."""
    result = catalog.delete_book(book_id)
    return envelope(result, "Book deleted successfully")
