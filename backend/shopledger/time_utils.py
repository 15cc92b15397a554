# Overview: UTC clock and the date/time forms stored on ledger rows.

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

LEDGER_TIME_FORMAT = "%H:%M:%S"


def utcnow() -> datetime:
    """Naive UTC; every stored datetime uses this form."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def ledger_stamp(moment: Optional[datetime] = None) -> tuple[date, str]:
    """
    (date, "HH:MM:SS") for a transaction row.

    Ledger order is (date, time, id), so entries posted within the same
    second fall back to insertion order.
    """
    moment = _as_naive_utc(moment) if moment is not None else utcnow()
    return moment.date(), moment.strftime(LEDGER_TIME_FORMAT)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Client timestamp -> naive UTC datetime.

    Blank input gives None. A bare date means midnight. Offsets (including
    a trailing Z) are converted; naive input is taken as UTC already.
    Raises ValueError on anything fromisoformat() refuses.
    """
    if value is None or not value.strip():
        return None
    text = value.strip()
    if text[-1] in "zZ":
        text = text[:-1] + "+00:00"
    return _as_naive_utc(datetime.fromisoformat(text))


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Whole-second ISO-8601 with a Z suffix; naive input is UTC."""
    if dt is None:
        return None
    stamp = _as_naive_utc(dt).replace(microsecond=0)
    return stamp.isoformat() + "Z"


def to_iso_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None
