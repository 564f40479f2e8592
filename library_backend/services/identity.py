import logging
import re
from typing import Optional

from sqlalchemy import func

from library_backend.models.enums import UserRole
from library_backend.models.issued_book import IssuedBook
from library_backend.models.user import User
from library_backend.services.auth import get_password_hash, verify_password
from library_backend.services.base import BaseService, is_blank, is_positive_id, store_operation, too_long
from library_backend.services.result import Err, ErrorKind, Ok, Result

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9+_.-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")
MIN_PASSWORD_LENGTH = 6
ROLES = {role.value for role in UserRole}
USER_COLUMNS = User.__table__.c


def is_valid_email(email: Optional[str]) -> bool:
    return email is not None and EMAIL_PATTERN.match(email) is not None


def normalize_role(role: Optional[str]) -> Optional[str]:
    if role is None:
        return None
    role = role.strip().upper()
    return role if role in ROLES else None


class IdentityService(BaseService):
    """Accounts: registration, login and admin maintenance of users."""

    @store_operation(
        "Registration failed. Please try again",
        on_integrity_error=Err(ErrorKind.DUPLICATE, "Username or email already exists"),
    )
    def register(
        self,
        username: Optional[str],
        password: Optional[str],
        full_name: Optional[str],
        email: Optional[str],
        role: Optional[str],
    ) -> Result:
        if is_blank(username):
            return Err(ErrorKind.VALIDATION, "Username cannot be empty")
        if too_long(username, USER_COLUMNS.username):
            return Err(ErrorKind.VALIDATION, "Username is too long")
        if password is None or len(password) < MIN_PASSWORD_LENGTH:
            return Err(ErrorKind.VALIDATION, f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
        if is_blank(full_name):
            return Err(ErrorKind.VALIDATION, "Full name cannot be empty")
        if too_long(full_name, USER_COLUMNS.full_name):
            return Err(ErrorKind.VALIDATION, "Full name is too long")
        email = email.strip() if email else email
        if not is_valid_email(email):
            return Err(ErrorKind.VALIDATION, "Invalid email format")
        if too_long(email, USER_COLUMNS.email):
            return Err(ErrorKind.VALIDATION, "Email is too long")
        role = normalize_role(role)
        if role is None:
            return Err(ErrorKind.VALIDATION, "Invalid role. Must be ADMIN or STUDENT")

        username = username.strip()
        # Hash outside the transaction so the write lock is held briefly
        password_hash = get_password_hash(password)

        with self._transaction() as db:
            if db.query(User.user_id).filter(User.username == username).first():
                return Err(ErrorKind.DUPLICATE, "Username already exists")
            if db.query(User.user_id).filter(User.email == email).first():
                return Err(ErrorKind.DUPLICATE, "Email already exists")

            user = User(
                username=username,
                password_hash=password_hash,
                full_name=full_name.strip(),
                email=email,
                role=role,
            )
            db.add(user)
            db.flush()
            db.refresh(user)

        logger.info(f"User registered: {user.user_id} '{user.username}' ({user.role})")
        return Ok(user)

    @store_operation("Login failed. Please try again")
    def login(self, username: Optional[str], password: Optional[str]) -> Result:
        if is_blank(username) or not password:
            return Err(ErrorKind.AUTH_FAILED, "Invalid username or password")

        with self._transaction() as db:
            user = db.query(User).filter(User.username == username.strip()).first()

        if user is None or not verify_password(password, user.password_hash):
            logger.info(f"Failed login for '{username}'")
            return Err(ErrorKind.AUTH_FAILED, "Invalid username or password")
        return Ok(user)

    @store_operation("Failed to load user. Please try again")
    def get_user(self, user_id: int) -> Result:
        if not is_positive_id(user_id):
            return Err(ErrorKind.VALIDATION, "Invalid user ID")
        with self._transaction() as db:
            user = db.query(User).filter(User.user_id == user_id).first()
        if user is None:
            return Err(ErrorKind.NOT_FOUND, "User not found")
        return Ok(user)

    @store_operation("Failed to load user. Please try again")
    def get_by_username(self, username: Optional[str]) -> Result:
        if is_blank(username):
            return Err(ErrorKind.VALIDATION, "Username cannot be empty")
        with self._transaction() as db:
            user = db.query(User).filter(User.username == username.strip()).first()
        if user is None:
            return Err(ErrorKind.NOT_FOUND, "User not found")
        return Ok(user)

    @store_operation("Failed to load users. Please try again")
    def list_users(self) -> Result:
        with self._transaction() as db:
            users = db.query(User).order_by(User.created_at.desc(), User.user_id.desc()).all()
        return Ok(users)

    @store_operation("Failed to load students. Please try again")
    def list_students(self) -> Result:
        with self._transaction() as db:
            users = db.query(User).filter(
                User.role == UserRole.STUDENT.value
            ).order_by(User.full_name.asc(), User.user_id.asc()).all()
        return Ok(users)

    @store_operation(
        "Update failed. Please try again",
        on_integrity_error=Err(ErrorKind.DUPLICATE, "Email already exists"),
    )
    def update_user(
        self,
        user_id: int,
        full_name: Optional[str],
        email: Optional[str],
        role: Optional[str],
    ) -> Result:
        """Change a user's full name, email and role. Usernames are fixed."""
        if not is_positive_id(user_id):
            return Err(ErrorKind.VALIDATION, "Invalid user ID")
        if is_blank(full_name):
            return Err(ErrorKind.VALIDATION, "Full name cannot be empty")
        if too_long(full_name, USER_COLUMNS.full_name):
            return Err(ErrorKind.VALIDATION, "Full name is too long")
        email = email.strip() if email else email
        if not is_valid_email(email):
            return Err(ErrorKind.VALIDATION, "Invalid email format")
        if too_long(email, USER_COLUMNS.email):
            return Err(ErrorKind.VALIDATION, "Email is too long")
        role = normalize_role(role)
        if role is None:
            return Err(ErrorKind.VALIDATION, "Invalid role. Must be ADMIN or STUDENT")

        with self._transaction() as db:
            user = db.query(User).filter(User.user_id == user_id).with_for_update().first()
            if user is None:
                return Err(ErrorKind.NOT_FOUND, "User not found")
            clash = db.query(User.user_id).filter(User.email == email, User.user_id != user_id).first()
            if clash:
                return Err(ErrorKind.DUPLICATE, "Email already exists")

            user.full_name = full_name.strip()
            user.email = email
            user.role = role
            db.flush()

        logger.info(f"User updated: {user.user_id} '{user.username}'")
        return Ok(user)

    @store_operation("Deletion failed. Please try again")
    def delete_user(self, user_id: int) -> Result:
        if not is_positive_id(user_id):
            return Err(ErrorKind.VALIDATION, "Invalid user ID")

        with self._transaction() as db:
            user = db.query(User).filter(User.user_id == user_id).with_for_update().first()
            if user is None:
                return Err(ErrorKind.NOT_FOUND, "User not found")
            loans = db.query(func.count(IssuedBook.issue_id)).filter(IssuedBook.user_id == user_id).scalar()
            if loans:
                return Err(ErrorKind.BUSY, "Cannot delete user. User has loan history")
            db.delete(user)

        logger.info(f"User deleted: {user_id}")
        return Ok(user_id)
