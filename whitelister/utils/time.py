from __future__ import annotations

from datetime import datetime
from typing import Optional


def entry_date(now: Optional[datetime] = None) -> str:
    """Date stamped into the audit suffix of every entry (DD/MM/YYYY)."""
    return (now or datetime.now()).strftime("%d/%m/%Y")


def backup_stamp(now: Optional[datetime] = None) -> str:
    """Suffix used for backup file names: HH:MM:SS-DD.MM.YYYY."""
    return (now or datetime.now()).strftime("%H:%M:%S-%d.%m.%Y")
