"""Date parsing helpers for form input"""
import re
from datetime import date, datetime
from typing import Optional

_FRENCH_DATE = re.compile(r"^\d{2}/\d{2}/\d{4}$")
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def normalize_date(value: Optional[str], allow_datetime: bool = False) -> Optional[str]:
    """Return the date as YYYY-MM-DD, or None if it cannot be understood.

    Accepts DD/MM/YYYY and YYYY-MM-DD. With allow_datetime, a full ISO
    timestamp is also accepted and truncated to its date.
    """
    if not value:
        return None
    value = value.strip()

    if _FRENCH_DATE.match(value):
        day, month, year = value.split("/")
        candidate = f"{year}-{month}-{day}"
    elif _ISO_DATE.match(value):
        candidate = value
    elif allow_datetime:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).date().isoformat()
        except ValueError:
            return None
    else:
        return None

    # Validate date
    try:
        date.fromisoformat(candidate)
    except ValueError:
        return None
    return candidate


def compute_age(iso_date: Optional[str], today: Optional[date] = None) -> Optional[int]:
    """Age in whole years at `today` for a YYYY-MM-DD birth date"""
    if not iso_date:
        return None
    birth = date.fromisoformat(iso_date)
    today = today or date.today()
    age = today.year - birth.year
    if (today.month, today.day) < (birth.month, birth.day):
        age -= 1
    return age
