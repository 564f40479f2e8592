from datetime import date, datetime
import pytz
from library_backend.config import settings

# Lending days are counted on this calendar (UTC unless configured otherwise)
LIBRARY_TZ = pytz.timezone(settings.timezone)

def now_local() -> datetime:
    """Get current datetime in the library timezone."""
    return datetime.now(LIBRARY_TZ)

def today() -> date:
    """Get the current calendar date in the library timezone."""
    return now_local().date()
