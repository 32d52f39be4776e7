from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .errors import ValidationError
from .money import parse_amount


# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

# Upper bound on a single movement/line quantity
MAX_QUANTITY = 1_000_000

INT = "int"
STR = "str"
LIST = "list"
MONEY = "money"  # decimal amount on the wire, integer cents after coercion
TOKEN = "token"  # opaque string, compared byte-exact, never stripped


@dataclass(frozen=True)
class PayloadPolicy:
    """
    Central policy layer for request bodies:
    - fields: allowlist of accepted keys and their expected kind (int/str/list/money/token)
    - required: keys that must be present and non-null
    - max_lengths: optional String length caps
    """
    fields: dict[str, str]
    required: set[str] = field(default_factory=set)
    max_lengths: dict[str, int] = field(default_factory=dict)


def coerce_int(value: Any, key: str) -> int:
    """Strict integer coercion: rejects bools, floats, decimals and scientific notation."""
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer", field=key)
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)", field=key)
        # Reject decimal points (e.g., "12.5")
        if "." in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)", field=key)
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer", field=key)
    # Reject floats explicitly
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal", field=key)
    raise ValidationError(f"{key} must be an integer", field=key)


def _coerce_value(kind: str, value: Any, key: str, max_length: int | None):
    if kind == INT:
        return coerce_int(value, key)

    if kind == STR:
        if not isinstance(value, (str, int)) or isinstance(value, bool):
            raise ValidationError(f"{key} must be a string", field=key)
        s = str(value).strip()
        if max_length and len(s) > max_length:
            raise ValidationError(f"{key} exceeds max length {max_length}", field=key)
        return s

    if kind == TOKEN:
        if not isinstance(value, str):
            raise ValidationError(f"{key} must be a string", field=key)
        if max_length and len(value) > max_length:
            raise ValidationError(f"{key} exceeds max length {max_length}", field=key)
        return value

    if kind == LIST:
        if not isinstance(value, list):
            raise ValidationError(f"{key} must be a list", field=key)
        return value

    if kind == MONEY:
        return parse_amount(value, key)

    # Default: leave as-is
    return value


def validate_payload(*, payload: Any, policy: PayloadPolicy) -> dict:
    """
    Validates + normalizes incoming JSON against a PayloadPolicy.
    Returns a cleaned dict with only allowed fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    missing = sorted(f for f in policy.required if payload.get(f) is None)
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            details={"missing": missing},
        )

    # Reject unknown fields
    for k in payload.keys():
        if k not in policy.fields:
            raise ValidationError(f"Field not allowed: {k}", field=k)

    cleaned: dict = {}
    for k, raw in payload.items():
        if raw is None:
            cleaned[k] = None
            continue
        val = _coerce_value(policy.fields[k], raw, k, policy.max_lengths.get(k))
        if k in policy.required and isinstance(val, str) and val == "":
            raise ValidationError(f"{k} cannot be blank", field=k)
        cleaned[k] = val

    return cleaned


def int_arg(args, key: str, *, required: bool = False) -> int | None:
    """Read an integer query-string argument."""
    raw = args.get(key)
    if raw is None or raw == "":
        if required:
            raise ValidationError(f"{key} is required", field=key)
        return None
    return coerce_int(raw, key)


def limit_arg(args, default: int = 100, maximum: int = 500) -> int:
    limit = int_arg(args, "limit")
    if limit is None:
        return default
    if limit < 1:
        raise ValidationError("limit must be >= 1", field="limit")
    return min(limit, maximum)


def enforce_positive_quantity(quantity: int, key: str = "quantity") -> None:
    if quantity <= 0:
        raise ValidationError(f"{key} must be > 0", field=key)
    if quantity > MAX_QUANTITY:
        raise ValidationError(f"{key} cannot exceed {MAX_QUANTITY}", field=key)


def enforce_price_cents(price: int, key: str = "unit_price_cents") -> None:
    if price < 0:
        raise ValidationError(f"{key} must be >= 0", field=key)
    if price > MAX_PRICE_CENTS:
        raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS}", field=key)


INVOICE_ITEM_POLICY = PayloadPolicy(
    fields={"product_id": INT, "quantity": INT, "unit_price_cents": INT},
    required={"product_id", "quantity", "unit_price_cents"},
)


def normalize_invoice_items(raw_items: Any) -> list[dict]:
    """
    Validate invoice line items: non-empty, each with product, quantity > 0
    and unit_price_cents >= 0. Input order is preserved.
    """
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("invoice must have at least one item", field="items")

    items = []
    for index, raw in enumerate(raw_items):
        try:
            item = validate_payload(payload=raw, policy=INVOICE_ITEM_POLICY)
            enforce_positive_quantity(item["quantity"])
            enforce_price_cents(item["unit_price_cents"])
        except ValidationError as e:
            e.details["item_index"] = index
            raise
        items.append(item)
    return items


INVOICE_ITEM_REQUEST_POLICY = PayloadPolicy(
    fields={"product_id": INT, "quantity": INT, "unit_price": MONEY},
    required={"product_id", "quantity", "unit_price"},
)


def invoice_items_from_request(raw_items: Any) -> list[dict]:
    """
    Map request lines {product_id, quantity, unit_price} to the cents-based
    lines create_invoice takes. Range checks stay with the service.
    """
    if not isinstance(raw_items, list):
        raise ValidationError("items must be a list", field="items")

    items = []
    for index, raw in enumerate(raw_items):
        try:
            item = validate_payload(payload=raw, policy=INVOICE_ITEM_REQUEST_POLICY)
        except ValidationError as e:
            e.details["item_index"] = index
            raise
        items.append({
            "product_id": item["product_id"],
            "quantity": item["quantity"],
            "unit_price_cents": item["unit_price"],
        })
    return items
