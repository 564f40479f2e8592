import logging
from fastapi import APIRouter, Depends, Response
from library_backend.config import settings
from library_backend.dependencies import get_identity_service
from library_backend.models.user import User
from library_backend.schemas.auth import RegisterRequest, LoginRequest, LoginResponse, UserResponse
from library_backend.schemas.common import MessageResponse
from library_backend.services.auth import create_session_token, get_current_user
from library_backend.utils.responses import envelope

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Authentication"])

@router.post("/register", response_model=MessageResponse)
def register(payload: RegisterRequest, identity=Depends(get_identity_service)):
    """Register a new ADMIN or STUDENT account."""
    result = identity.register(
        username=payload.username,
        password=payload.password,
        full_name=payload.fullName,
        email=payload.email,
        role=payload.role,
    )
    if not result.ok:
        logger.info(f"Registration rejected for '{payload.username}': {result.message}")
    return envelope(result, "Registration successful")

@router.post("/login")
def login(payload: LoginRequest, response: Response, identity=Depends(get_identity_service)):
    """Check credentials and start a session cookie."""
    result = identity.login(payload.username, payload.password)
    if not result.ok:
        return envelope(result)

    user = result.value
    response.set_cookie(
        key=settings.session_cookie_name,
        value=create_session_token(user),
        max_age=settings.session_expire_minutes * 60,
        httponly=True,
        samesite="lax",
        secure=settings.session_cookie_secure,
    )
    logger.info(f"User logged in: {user.username}")
    return LoginResponse(
        userId=user.user_id,
        username=user.username,
        fullName=user.full_name,
        role=user.role,
        email=user.email,
    )

@router.post("/logout", response_model=MessageResponse)
def logout(response: Response):
    """End the session by clearing its cookie."""
    response.delete_cookie(settings.session_cookie_name)
    return {"success": True, "message": "Logged out successfully"}

@router.get("/me", response_model=UserResponse)
def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Get current logged-in user information."""
    return UserResponse(**current_user.to_dict())
