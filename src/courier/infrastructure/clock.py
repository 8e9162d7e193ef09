"""Canonical UTC instants.

Every instant persisted by courier (next_run, last_run, run_at, created_at)
is stored as ``YYYY-MM-DDTHH:MM:SS.mmmZ``. The fixed width and the UTC
suffix make lexical order in SQL equal to chronological order.
"""

from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """Format an instant as UTC with millisecond precision.

    Naive datetimes are taken to be UTC already.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return (
        f"{dt.year:04d}-{dt.month:02d}-{dt.day:02d}"
        f"T{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d}.{dt.microsecond // 1000:03d}Z"
    )


def now_iso() -> str:
    return to_iso(utc_now())
