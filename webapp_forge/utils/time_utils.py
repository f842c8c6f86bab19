from __future__ import annotations

from datetime import datetime, timezone


def now_iso_utc() -> str:
    """Return current UTC time as ISO-8601 string with timezone."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def backup_stamp(moment: datetime | None = None) -> str:
    """Local-time stamp used in backup directory names (``YYYYmmdd_HHMMSS``)."""
    return (moment or datetime.now()).strftime("%Y%m%d_%H%M%S")


__all__ = ["now_iso_utc", "backup_stamp"]
