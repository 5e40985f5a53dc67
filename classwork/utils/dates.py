"""
classwork/utils/dates.py
Timezone helpers – everything is compared in UTC
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes (as SQLite returns them) are taken to be UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_late(submitted_at: Optional[datetime], due_date: Optional[datetime]) -> bool:
    """Late iff submitted strictly after the due date; never late without one."""
    if submitted_at is None or due_date is None:
        return False
    return as_utc(submitted_at) > as_utc(due_date)
