"""Miscellaneous helper functions."""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Any, Optional

CENT = Decimal("0.01")


def utcnow() -> dt.datetime:
    """Return the current UTC time as a naive datetime.

    All timestamps in the store are naive UTC, so the tzinfo is dropped.
    """
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


def to_money(value: Any) -> Decimal:
    """Coerce an aggregate result (``None``, float, int or Decimal) to cents."""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT)


def parse_iso_datetime(value: str | None) -> Optional[dt.datetime]:
    """Parse an ISO8601 datetime string into a :class:`datetime` object.

    A trailing lowercase ``z`` is normalised to ``Z``.  Returns ``None`` if
    the value cannot be parsed.
    """
    if not value:
        return None
    try:
        if value.endswith("z"):
            value = value[:-1] + "Z"
        return dt.datetime.fromisoformat(value)
    except ValueError:
        return None
