"""Parsing of one-shot ("once") schedule values."""

from __future__ import annotations

from datetime import datetime, timezone

from courier.infrastructure.clock import to_iso


def parse_once_schedule_value(value: object) -> str | None:
    """Convert a one-shot schedule string into a canonical UTC instant.

    ``Z``/``z`` and numeric ``+HH:MM``/``-HH:MM`` suffixes are honoured. A
    timestamp without a zone designator is read as UTC rather than host
    local time, so a schedule means the same instant on every host.

    Returns ``None`` for anything that does not parse, including ``""``.
    """
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    if text[-1] in "zZ":
        text = text[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    try:
        return to_iso(parsed)
    except OverflowError:
        return None
