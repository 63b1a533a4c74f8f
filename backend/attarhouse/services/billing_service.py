# Overview: Bill snapshot construction; pure derivation from party and order lines.

from __future__ import annotations

from ..money import format_money, to_money


def bill_line(order_item, item) -> dict:
    """
    One bill row. item is the resolved catalog row, or None when it has
    since been deleted from the catalog.
    """
    return {
        "name": item.name if item is not None else "Unknown",
        "sku": (item.sku or "-") if item is not None else "-",
        "quantity": order_item.quantity,
        "unit_price": format_money(order_item.unit_price),
        "total_price": format_money(to_money(order_item.unit_price) * order_item.quantity),
        "type": order_item.item_kind,
    }


def build_bill_snapshot(party, lines) -> dict:
    """
    Denormalized bill for an order.

    lines: iterable of (OrderItem, catalog item or None), in display order.
    Party contact fields are copied as they are right now; later edits to the
    party do not change an existing snapshot until the order's items change.
    """
    return {
        "party_name": party.name,
        "party_phone": party.phone,
        "party_address": party.address,
        "party_email": party.email,
        "items": [bill_line(order_item, item) for order_item, item in lines],
    }
