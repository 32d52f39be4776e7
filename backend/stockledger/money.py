# Overview: Conversion between wire amounts (decimal, 2 places) and stored integer cents.

"""
Money at the API edge.

Amounts are stored and summed as integer cents. Requests carry decimal
amounts ("12.50", 12.5 or 12) and responses carry them back as decimal
strings with two places, so no float arithmetic ever touches a total.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from .errors import ValidationError


CENT = Decimal("0.01")


def parse_amount(value: Any, key: str) -> int:
    """Decimal amount -> integer cents. Rejects bools, >2 decimal places and non-finite values."""
    if isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
        raise ValidationError(f"{key} must be a decimal amount", field=key)
    try:
        # str() first so 12.1 parses as 12.1, not its binary expansion
        amount = Decimal(str(value).strip())
        rounded = amount.quantize(CENT) if amount.is_finite() else None
    except InvalidOperation:
        raise ValidationError(f"{key} must be a decimal amount", field=key)
    if rounded is None:
        raise ValidationError(f"{key} must be a decimal amount", field=key)
    if amount != rounded:
        raise ValidationError(f"{key} cannot have more than 2 decimal places", field=key)
    return int(amount * 100)


def format_amount(cents: int | None) -> str | None:
    """Integer cents -> "123.45"."""
    if cents is None:
        return None
    return str((Decimal(cents) / 100).quantize(CENT))
