"""Miscellaneous helper functions."""

from __future__ import annotations

import datetime as dt
import re
from typing import Optional

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# Receipts that show a date but no time are recorded at noon
DEFAULT_RECEIPT_TIME = "12:00:00"


def normalise_receipt_date(value: str | None, now: Optional[dt.datetime] = None) -> str:
    """Return the ledger date for an extracted receipt.

    Missing values become the current local time, a bare ``YYYY-MM-DD``
    gets the default noon time, anything else is kept as the model
    returned it.
    """
    value = (value or "").strip()
    if not value:
        current = now or dt.datetime.now()
        return current.replace(microsecond=0).isoformat(timespec="seconds")
    if _DATE_ONLY.match(value):
        return f"{value}T{DEFAULT_RECEIPT_TIME}"
    return value


def format_number(value: int | float) -> str:
    """Render a number for the ledger; integral floats lose their ``.0``."""
    if isinstance(value, bool):
        return str(int(value))
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
