from datetime import datetime
import pytz

from virtualib.config import settings

LOCAL_TZ = pytz.timezone(settings.timezone)

def now_local() -> datetime:
    """Get current datetime in the configured timezone."""
    return datetime.now(LOCAL_TZ)
