from decimal import Decimal
from pydantic_settings import BaseSettings
from typing import Optional
from pathlib import Path
from urllib.parse import quote_plus

# Get the project directory (parent of library_backend directory)
PROJECT_DIR = Path(__file__).parent.parent
ENV_FILE = PROJECT_DIR / ".env"

class Settings(BaseSettings):
    # Server settings (non-confidential, can have defaults)
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    # Database settings - a full URL wins; otherwise PostgreSQL is used when db_name is set
    database_url: str = "sqlite:///./library.db"
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: Optional[str] = None
    db_user: Optional[str] = None
    db_password: Optional[str] = None  # Confidential - from .env only
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_isolation_level: Optional[str] = None  # e.g. SERIALIZABLE; driver default when unset
    request_timeout_seconds: float = 10.0

    # Session settings - confidential values from .env
    jwt_secret_key: str  # Required from .env (confidential - no default)
    jwt_algorithm: str = "HS256"
    session_expire_minutes: int = 480
    session_cookie_name: str = "library_session"
    session_cookie_secure: bool = False
    bcrypt_rounds: int = 12

    # Lending policy
    timezone: str = "UTC"
    issue_days: int = 14
    max_books_per_user: int = 3
    fine_per_day: Decimal = Decimal("5.00")
    reconcile_on_startup: bool = True

    class Config:
        env_file = str(ENV_FILE) if ENV_FILE.exists() else ".env"
        case_sensitive = False

    @property
    def sqlalchemy_url(self) -> str:
        """Database URL, built from the db_* parts when db_name is configured."""
        if not self.db_name:
            return self.database_url
        user = quote_plus(self.db_user or "")
        password = quote_plus(self.db_password or "")
        return f"postgresql://{user}:{password}@{self.db_host}:{self.db_port}/{self.db_name}"

settings = Settings()
