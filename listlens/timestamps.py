"""Timestamp and calendar-date coercion shared by the stores and models.

The catalog API reports every timestamp as epoch seconds, while the snapshot
history is keyed by ``YYYY-MM-DD`` strings.  Both are normalized here so that
the rest of the package only ever deals with tz-aware UTC datetimes and
``datetime.date`` objects.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any

UTC = timezone.utc

_ISO_DATE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")


def coerce_timestamp(value: Any) -> datetime:
    """Convert *value* to a timezone-aware UTC datetime.

    Numbers are epoch seconds.  ``datetime`` values are converted to UTC
    (naive ones are assumed to be UTC) and ``date`` values become midnight
    UTC.

    Raises ``TypeError`` for other types and ``ValueError`` for epochs the
    platform cannot represent.
    """

    if isinstance(value, bool):
        raise TypeError("Boolean values are not timestamps")

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=UTC)
        except (OverflowError, OSError) as exc:
            raise ValueError(f"Epoch timestamp {value!r} is out of range") from exc

    raise TypeError(f"Unsupported timestamp type {type(value)}")


def to_epoch_seconds(value: datetime) -> int:
    """Inverse of :func:`coerce_timestamp` for the catalog's wire format."""

    return int(coerce_timestamp(value).timestamp())


def parse_iso_date(value: Any) -> date:
    """Parse a strict ``YYYY-MM-DD`` calendar date."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise TypeError(f"Unsupported date type {type(value)}")
    if not _ISO_DATE.fullmatch(value):
        raise ValueError(f"Invalid ISO-8601 date '{value}'")
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValueError(f"Invalid ISO-8601 date '{value}'") from exc


__all__ = ["UTC", "coerce_timestamp", "parse_iso_date", "to_epoch_seconds"]
