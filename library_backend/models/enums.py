import enum


class UserRole(str, enum.Enum):
    """Roles a library account can hold."""
    ADMIN = "ADMIN"
    STUDENT = "STUDENT"


class LoanStatus(str, enum.Enum):
    """Loan lifecycle: ISSUED -> RETURNED, never back."""
    ISSUED = "ISSUED"
    RETURNED = "RETURNED"
