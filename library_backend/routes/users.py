from fastapi import APIRouter, Depends, HTTPException, status, Query
from typing import List, Optional
from library_backend.dependencies import get_identity_service
from library_backend.models.enums import UserRole
from library_backend.models.user import User
from library_backend.schemas.auth import UserResponse, UserUpdate
from library_backend.schemas.common import MessageResponse
from library_backend.services.auth import get_current_user, require_admin
from library_backend.utils.responses import envelope, error_response

router = APIRouter(prefix="/api/users", tags=["Users"])

def _forbid_others(current_user: User, user_id: int):
    if not current_user.is_admin and current_user.user_id != user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only access your own account"
        )

@router.get("", response_model=List[UserResponse])
def get_users(
    role: Optional[str] = Query(None, description="STUDENT to list students only"),
    current_user: User = Depends(require_admin),
    identity=Depends(get_identity_service)
):
    """List accounts (admin only)."""
    if role and role.upper() == UserRole.STUDENT.value:
        result = identity.list_students()
    else:
        result = identity.list_users()
    if not result.ok:
        return error_response(result)
    return [user.to_dict() for user in result.value]

@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    identity=Depends(get_identity_service)
):
    """Get one account; students may only read their own."""
    _forbid_others(current_user, user_id)
    result = identity.get_user(user_id)
    if not result.ok:
        return error_response(result)
    return result.value.to_dict()

@router.put("/{user_id}", response_model=MessageResponse)
def update_user(
    user_id: int,
    payload: UserUpdate,
    current_user: User = Depends(get_current_user),
    identity=Depends(get_identity_service)
):
    """Update full name, email and role. Only admins may change roles."""
    _forbid_others(current_user, user_id)
    role = payload.role
    if not current_user.is_admin:
        if role is not None and role.strip().upper() != current_user.role:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only administrators can change roles"
            )
        role = current_user.role
    elif role is None:
        existing = identity.get_user(user_id)
        if not existing.ok:
            return envelope(existing)
        role = existing.value.role

    result = identity.update_user(user_id, payload.fullName, payload.email, role)
    return envelope(result, "User updated successfully")

@router.delete("/{user_id}", response_model=MessageResponse)
def delete_user(
    user_id: int,
    current_user: User = Depends(require_admin),
    identity=Depends(get_identity_service)
):
    """Delete an account that has never borrowed a book (admin only)."""
    result = identity.delete_user(user_id)
    return envelope(result, "User deleted successfully")
