from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from attarhouse.time_utils import parse_iso_date
from .item_refs import ItemRef, REFERENCE_FIELDS
from .models.orders import ORDER_TYPES, ORDER_STATUSES, PAYMENT_STATUSES
from .money import CENT, to_money


# Maximum unit price: 9,999,999.99
# Keeps line totals inside Numeric(12, 2) for any sane quantity
MAX_UNIT_PRICE = Decimal("9999999.99")
MAX_QUANTITY = 1_000_000


class ValidationError(ValueError):
    """400-level input problem."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class NotFoundError(LookupError):
    """404-level: an id in the URL does not resolve."""


# =============================================================================
# FIELD COERCION
# =============================================================================

def coerce_int(field: str, value: Any) -> int:
    """Strict integer validation: rejects floats, bools and scientific notation."""
    if value is None:
        raise ValidationError(f"{field} is required")
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    # Reject floats explicitly
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def coerce_money(field: str, value: Any) -> Decimal:
    """Numeric input (JSON number or numeric string) -> Decimal with 2 places."""
    if value is None:
        raise ValidationError(f"{field} is required")
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValidationError(f"{field} must be a finite number")
    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise ValidationError(f"{field} must be a number")
    if not isinstance(value, (int, float, str, Decimal)):
        raise ValidationError(f"{field} must be a number")
    try:
        raw = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not raw.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    # Reject sub-cent input (e.g., "10.005") instead of rounding it away
    try:
        cents = raw.quantize(CENT)
    except InvalidOperation:
        raise ValidationError(f"{field} is out of range")
    if cents != raw:
        raise ValidationError(f"{field} cannot have more than 2 decimal places")
    return to_money(cents)


def coerce_choice(field: str, value: Any, choices: tuple[str, ...]) -> str:
    if value is None:
        raise ValidationError(f"{field} is required")
    if not isinstance(value, str) or value.strip().lower() not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}")
    return value.strip().lower()


def coerce_date(field: str, value: Any) -> date:
    if value is None:
        raise ValidationError(f"{field} is required")
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            parsed = parse_iso_date(value)
        except ValueError:
            raise ValidationError(f"{field} must be an ISO-8601 date")
        if parsed is None:
            raise ValidationError(f"{field} is required")
        return parsed
    raise ValidationError(f"{field} must be an ISO-8601 date")


def parse_item_ref(payload: dict, prefix: str) -> ItemRef:
    """
    Exactly one of product_id / product_set_id / attar_id must be set.
    """
    present = [
        (field, payload.get(field))
        for field in REFERENCE_FIELDS
        if payload.get(field) not in (None, "")
    ]
    if not present:
        raise ValidationError(
            f"{prefix}: one of product_id, product_set_id or attar_id is required"
        )
    if len(present) > 1:
        raise ValidationError(
            f"{prefix}: only one of product_id, product_set_id or attar_id may be set",
            details={"fields": [field for field, _ in present]},
        )
    field, raw = present[0]
    item_id = coerce_int(f"{prefix}.{field}", raw)
    if item_id <= 0:
        raise ValidationError(f"{prefix}.{field} must be a positive id")
    return ItemRef(REFERENCE_FIELDS[field], item_id)


def _quantity(field: str, value: Any) -> int:
    qty = coerce_int(field, value)
    if qty < 1:
        raise ValidationError(f"{field} must be >= 1")
    if qty > MAX_QUANTITY:
        raise ValidationError(f"{field} cannot exceed {MAX_QUANTITY}")
    return qty


def _unit_price(field: str, value: Any) -> Decimal:
    price = coerce_money(field, value)
    if price < 0:
        raise ValidationError(f"{field} must be >= 0")
    if price > MAX_UNIT_PRICE:
        raise ValidationError(f"{field} cannot exceed {MAX_UNIT_PRICE}")
    return price


def _require_object(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def _require_list(field: str, value: Any) -> list:
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be a list")
    if not value:
        raise ValidationError(f"{field} must contain at least one item")
    return value


# =============================================================================
# ORDER REQUESTS
# =============================================================================

@dataclass(frozen=True)
class OrderLineRequest:
    ref: ItemRef
    quantity: int
    # None: resolve through the party's price list / item cost price
    unit_price: Decimal | None = None


@dataclass(frozen=True)
class OrderCreateRequest:
    party_id: int
    order_date: date
    type: str
    lines: tuple[OrderLineRequest, ...]


@dataclass(frozen=True)
class ItemAmendment:
    id: int
    quantity: int
    unit_price: Decimal


@dataclass(frozen=True)
class OrderUpdateRequest:
    status: str
    payment_status: str
    items: tuple[ItemAmendment, ...] | None = None
    message: str | None = None
    # Distinguishes "message omitted" (keep) from "message": null (clear)
    message_provided: bool = False


def parse_order_create(payload: Any) -> OrderCreateRequest:
    """
    Validate a POST /api/orders body.

    Shape checks only; whether party/item ids exist is checked by the order
    service before it writes anything.
    """
    payload = _require_object(payload)

    party_id = coerce_int("party_id", payload.get("party_id"))
    order_date = coerce_date("order_date", payload.get("order_date"))
    order_type = coerce_choice("type", payload.get("type"), ORDER_TYPES)

    raw_items = _require_list("items", payload.get("items"))
    lines = []
    for i, raw in enumerate(raw_items):
        prefix = f"items[{i}]"
        if not isinstance(raw, dict):
            raise ValidationError(f"{prefix} must be an object")
        ref = parse_item_ref(raw, prefix)
        quantity = _quantity(f"{prefix}.quantity", raw.get("quantity"))
        unit_price = None
        if raw.get("unit_price") is not None:
            unit_price = _unit_price(f"{prefix}.unit_price", raw.get("unit_price"))
        lines.append(OrderLineRequest(ref=ref, quantity=quantity, unit_price=unit_price))

    return OrderCreateRequest(
        party_id=party_id,
        order_date=order_date,
        type=order_type,
        lines=tuple(lines),
    )


def parse_order_update(payload: Any) -> OrderUpdateRequest:
    """Validate a PUT /api/orders/<id> body."""
    payload = _require_object(payload)

    if "type" in payload:
        raise ValidationError("type cannot be changed after an order is created")

    status = coerce_choice("status", payload.get("status"), ORDER_STATUSES)
    payment_status = coerce_choice("payment_status", payload.get("payment_status"), PAYMENT_STATUSES)

    message_provided = "message" in payload
    message = payload.get("message")
    if message is not None:
        if not isinstance(message, str):
            raise ValidationError("message must be a string")
        message = message.strip() or None

    items = None
    if payload.get("items") is not None:
        raw_items = _require_list("items", payload.get("items"))
        parsed = []
        for i, raw in enumerate(raw_items):
            prefix = f"items[{i}]"
            if not isinstance(raw, dict):
                raise ValidationError(f"{prefix} must be an object")
            parsed.append(ItemAmendment(
                id=coerce_int(f"{prefix}.id", raw.get("id")),
                quantity=_quantity(f"{prefix}.quantity", raw.get("quantity")),
                unit_price=_unit_price(f"{prefix}.unit_price", raw.get("unit_price")),
            ))
        items = tuple(parsed)

    return OrderUpdateRequest(
        status=status,
        payment_status=payment_status,
        items=items,
        message=message,
        message_provided=message_provided,
    )
