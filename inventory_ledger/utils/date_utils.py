# inventory_ledger/utils/date_utils.py
from datetime import date, datetime, timedelta
from typing import Optional, Union

from inventory_ledger.exceptions import ValidationError

def convert_to_date(value: Union[str, date, datetime, None]) -> Optional[date]:
    """Convert a value to a date.

    Args:
        value: ISO date string, date or datetime. Blank strings and 'N/A'
            are treated as no date.

    Returns:
        date object or None
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return value.date()

    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text or text.upper() in ('N/A', 'NULL', 'NONE'):
        return None

    try:
        return datetime.strptime(text, '%Y-%m-%d').date()
    except ValueError:
        raise ValidationError(f"Invalid date format: {value}. Expected YYYY-MM-DD")

def window_start(days: int, now: Optional[datetime] = None) -> datetime:
    """Start of a trailing window of the given number of days."""
    now = now or datetime.now()
    return now - timedelta(days=days)

def timestamp_code(now: Optional[datetime] = None) -> str:
    """Minute-resolution timestamp used in generated codes."""
    now = now or datetime.now()
    return now.strftime('%Y%m%d%H%M')

def days_until(target: Optional[date], today: Optional[date] = None) -> Optional[int]:
    """Days from today until a date; negative once it has passed."""
    if target is None:
        return None
    today = today or date.today()
    return (target - today).days
