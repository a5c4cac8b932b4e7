"""Calendar-date helpers shared by the models and the expiry scans.

Certification dates arrive as ISO strings, legacy ``DD/MM/YYYY`` strings,
or ``date``/``datetime`` values.  Everything is reduced to a plain ``date``
so expiry arithmetic is day-granular and ignores time of day.
"""

from __future__ import annotations

from datetime import date, datetime
from zoneinfo import ZoneInfo

_LEGACY_FORMAT = "%d/%m/%Y"


def parse_date(value: object) -> date | None:
    """Coerce *value* to a ``date``; return ``None`` when it cannot be parsed."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    raw = value.strip()
    if not raw:
        return None
    if "/" in raw:
        try:
            return datetime.strptime(raw, _LEGACY_FORMAT).date()
        except ValueError:
            return None
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        return None


def days_until_expiry(expiry: date, today: date) -> int:
    """Whole calendar days from *today* to *expiry* (negative once past)."""
    return (expiry - today).days


def today_in(timezone_name: str) -> date:
    """Return the current calendar date in the named IANA timezone."""
    return datetime.now(ZoneInfo(timezone_name)).date()
