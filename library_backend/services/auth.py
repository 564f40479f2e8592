import logging
from datetime import timedelta
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from library_backend.config import settings
from library_backend.dependencies import get_identity_service
from library_backend.models.user import User
from library_backend.utils.timezone import now_local

logger = logging.getLogger(__name__)

# HTTP Bearer token - auto_error=False so the session cookie can be used instead
security = HTTPBearer(auto_error=False)

# Password hashing context - using bcrypt with automatic salt generation
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.bcrypt_rounds)

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a hashed password."""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError) as e:
        logger.error(f"Password verification error: {e}. Hash format may be invalid.")
        # If hash is not a valid bcrypt hash, return False
        return False

def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt."""
    return pwd_context.hash(password)

def create_session_token(user: User, expires_delta: Optional[timedelta] = None) -> str:
    """Create the signed token stored in the session cookie."""
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.session_expire_minutes)
    to_encode = {
        "sub": str(user.user_id),
        "role": user.role,
        "exp": now_local() + expires_delta,
    }
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)

def decode_session_token(token: str) -> Optional[int]:
    """Return the user id carried by a session token, or None if it is invalid."""
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        user_id_str = payload.get("sub")
        if user_id_str is None:
            return None
        return int(user_id_str)
    except JWTError as e:
        logger.warning(f"Session token validation error: {str(e)}")
        return None
    except (ValueError, TypeError) as e:
        logger.warning(f"Session token parsing error: {str(e)}")
        return None

def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    identity=Depends(get_identity_service),
) -> User:
    """Get the logged-in user from the session cookie or a Bearer token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Please login to continue",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token = request.cookies.get(settings.session_cookie_name)
    if not token and credentials is not None:
        token = credentials.credentials
    if not token:
        logger.warning("Session cookie missing")
        raise credentials_exception

    user_id = decode_session_token(token)
    if user_id is None:
        raise credentials_exception

    result = identity.get_user(user_id)
    if not result.ok:
        raise credentials_exception
    return result.value

def require_admin(current_user: User = Depends(get_current_user)) -> User:
    """Allow only ADMIN accounts through."""
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only administrators can perform this action"
        )
    return current_user
