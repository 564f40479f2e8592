import logging
from fastapi import APIRouter, Depends, HTTPException, status, Query
from typing import List, Optional
from library_backend.dependencies import get_loan_service
from library_backend.models.user import User
from library_backend.schemas.common import MessageResponse
from library_backend.schemas.loan import IssueRequest, LoanView, PolicyResponse
from library_backend.services.auth import get_current_user
from library_backend.utils.responses import envelope, error_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Loans"])

def _forbid_other_users(current_user: User, user_id: Optional[int]):
    """Students may only act on their own loans; admins on anyone's."""
    if current_user.is_admin or user_id == current_user.user_id:
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Students can only access their own issued books"
    )

@router.get("/issue", response_model=List[LoanView])
def get_issued_books(
    action: Optional[str] = Query(None, description="mybooks, history, overdue or all"),
    user_id: Optional[int] = Query(None, alias="userId"),
    current_user: User = Depends(get_current_user),
    loans=Depends(get_loan_service)
):
    """List loans joined with book and borrower details.

    Without an action, all currently issued books are returned.
    """
    if action in ("mybooks", "history"):
        if user_id is None:
            user_id = current_user.user_id
        _forbid_other_users(current_user, user_id)
        if action == "mybooks":
            result = loans.open_loans_by_user(user_id)
        else:
            result = loans.history_by_user(user_id)
    else:
        _forbid_other_users(current_user, None)
        if action == "overdue":
            result = loans.overdue()
        elif action == "all":
            result = loans.all_history()
        else:
            result = loans.open_loans_all()

    if not result.ok:
        return error_response(result)
    return result.value

@router.get("/issue/{issue_id}", response_model=LoanView)
def get_issued_book(
    issue_id: int,
    current_user: User = Depends(get_current_user),
    loans=Depends(get_loan_service)
):
    """Get a single issue record."""
    result = loans.get_loan(issue_id)
    if not result.ok:
        return error_response(result)
    _forbid_other_users(current_user, result.value.userId)
    return result.value

@router.post("/issue", response_model=MessageResponse)
def issue_or_return(
    payload: IssueRequest,
    current_user: User = Depends(get_current_user),
    loans=Depends(get_loan_service)
):
    """Issue a book to a user, or return an issued book."""
    if payload.action == "issue":
        user_id = payload.userId if payload.userId is not None else current_user.user_id
        _forbid_other_users(current_user, user_id)
        result = loans.issue_book(payload.bookId, user_id)
        if result.ok:
            logger.info(f"Book issued - BookID: {payload.bookId}, UserID: {user_id}")
        return envelope(result, "Book issued successfully")

    if payload.action == "return":
        if not current_user.is_admin:
            existing = loans.get_loan(payload.issueId)
            if not existing.ok:
                return envelope(existing)
            _forbid_other_users(current_user, existing.value.userId)
        result = loans.return_book(payload.issueId)
        if not result.ok:
            return envelope(result)
        logger.info(f"Book returned - IssueID: {payload.issueId}")
        return envelope(result, result.value.message)

    return {"success": False, "message": "Invalid action. Use 'issue' or 'return'"}

@router.get("/policy", response_model=PolicyResponse)
def get_policy(loans=Depends(get_loan_service)):
    """Lending rules: issue period, borrowing limit and daily fine."""
    return loans.policy
