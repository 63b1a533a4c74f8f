"""
Order Engine - sale/purchase order placement and amendment

WHY: An order touches four things that must agree: the order and its lines,
catalog stock, the bill snapshot printed for the party, and the party's
running balance with its ledger. Every operation here changes all of them in
one DB transaction or none of them.

SIDE EFFECTS PER ORDER TYPE:
- sale:     stock goes down, party debited (balance up)
- purchase: stock goes up (record created if missing), party credited (balance down)

Anything the engine deliberately lets through (stock going negative, items
without a stock record, amendment rows that belong to another order) is
reported back as a warning instead of raising.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from ..extensions import db
from ..models import Order, OrderItem, Party
from ..models.orders import (
    ORDER_SALE,
    STATUS_PENDING,
    PAYMENT_UNPAID,
    PAYMENT_PAID,
)
from ..models.parties import LEDGER_DEBIT, LEDGER_CREDIT
from ..money import to_money, ZERO
from ..validation import (
    ValidationError,
    NotFoundError,
    OrderCreateRequest,
    OrderUpdateRequest,
    ItemAmendment,
)
from attarhouse.time_utils import utcnow
from .billing_service import build_bill_snapshot
from .catalog_service import find_items, describe_item
from .concurrency import lock_for_update, run_atomic
from .ledger_service import (
    adjust_balance,
    correct_order_entry,
    origin_description,
    origin_entry_type,
    post_entry,
)
from .pricing_service import resolve_unit_price
from .settings_service import OrderSettings, load_order_settings
from .stock_service import StockChange, apply_stock_delta


# =============================================================================
# WARNING CODES
# =============================================================================

WARN_ITEM_NOT_IN_ORDER = "item_not_in_order"
WARN_STOCK_RECORD_MISSING = "stock_record_missing"
WARN_STOCK_NEGATIVE = "stock_negative"
WARN_LEDGER_ENTRY_MISSING = "ledger_entry_missing"


def _warning(code: str, message: str, **extra) -> dict:
    return {"code": code, "message": message, **extra}


@dataclass
class OrderResult:
    order: Order
    warnings: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"order": order_detail(self.order), "warnings": self.warnings}


# =============================================================================
# TOTALS
# =============================================================================

def compute_total(subtotal: Decimal, gst_rate: Decimal) -> Decimal:
    """GST-inclusive total, rounded half-up to 2 places."""
    return to_money(to_money(subtotal) * (1 + Decimal(gst_rate) / 100))


def _line_total(quantity: int, unit_price: Decimal) -> Decimal:
    return to_money(to_money(unit_price) * quantity)


def _stock_warnings(change: StockChange, *, order_item_id: int | None = None) -> list[dict]:
    extra = {"item": change.ref.to_dict()}
    if order_item_id is not None:
        extra["order_item_id"] = order_item_id

    if not change.applied:
        return [_warning(
            WARN_STOCK_RECORD_MISSING,
            f"No stock record for {change.ref}; stock not adjusted by {change.delta}",
            **extra,
        )]
    if change.went_negative:
        return [_warning(
            WARN_STOCK_NEGATIVE,
            f"Stock for {change.ref} is now {change.after}",
            quantity=change.after,
            **extra,
        )]
    return []


def _snapshot(order: Order, party: Party) -> dict:
    items = find_items([oi.item_ref for oi in order.items])
    return build_bill_snapshot(
        party,
        [(oi, items.get(oi.item_ref)) for oi in order.items],
    )


# =============================================================================
# CREATE
# =============================================================================

def create_order(request: OrderCreateRequest, settings: OrderSettings | None = None) -> OrderResult:
    """
    Place a sale or purchase order.

    References are checked before anything is written: an unknown party or
    catalog item raises ValidationError with no side effects.
    """
    if not request.lines:
        raise ValidationError("items must contain at least one item")

    if settings is None:
        settings = load_order_settings()

    if db.session.get(Party, request.party_id) is None:
        raise ValidationError(
            f"Party {request.party_id} does not exist",
            details={"party_id": request.party_id},
        )

    refs = [line.ref for line in request.lines]
    catalog = find_items(refs)
    missing = sorted({str(ref) for ref in refs if ref not in catalog})
    if missing:
        raise ValidationError("Unknown catalog items", details={"items": missing})

    def _op():
        party = lock_for_update(db.session.query(Party).filter_by(id=request.party_id)).first()
        if party is None:
            raise ValidationError(f"Party {request.party_id} does not exist")

        warnings: list[dict] = []

        priced = []
        for line in request.lines:
            unit_price = line.unit_price
            if unit_price is None:
                unit_price = resolve_unit_price(party.id, line.ref, item=catalog[line.ref]).unit_price
            priced.append((line, to_money(unit_price)))

        subtotal = sum((_line_total(line.quantity, price) for line, price in priced), ZERO)
        total = compute_total(subtotal, settings.gst_rate)

        order = Order(
            party_id=party.id,
            order_date=request.order_date,
            type=request.type,
            status=STATUS_PENDING,
            payment_status=PAYMENT_UNPAID,
            total_amount=total,
            gst_rate=settings.gst_rate,
        )
        db.session.add(order)
        db.session.flush()

        for line, unit_price in priced:
            order_item = OrderItem(
                item_kind=line.ref.kind,
                item_id=line.ref.id,
                quantity=line.quantity,
                unit_price=unit_price,
                total_price=_line_total(line.quantity, unit_price),
            )
            order.items.append(order_item)
            db.session.flush()

            if order.type == ORDER_SALE:
                change = apply_stock_delta(line.ref, -line.quantity)
            else:
                change = apply_stock_delta(line.ref, line.quantity, create_if_absent=True)
            warnings.extend(_stock_warnings(change, order_item_id=order_item.id))

        order.bill_details = build_bill_snapshot(
            party,
            [(oi, catalog[oi.item_ref]) for oi in order.items],
        )

        if total > 0:
            entry = post_entry(
                party=party,
                entry_type=origin_entry_type(order.type),
                amount=total,
                description=origin_description(order.type, order.id),
                transaction_date=order.order_date,
                order_id=order.id,
            )
            order.ledger_transaction_id = entry.id

        return OrderResult(order=order, warnings=warnings)

    return run_atomic(_op)


# =============================================================================
# AMEND
# =============================================================================

def _apply_item_amendments(
    order: Order,
    party: Party,
    amendments: tuple[ItemAmendment, ...],
    settings: OrderSettings,
) -> list[dict]:
    """
    Adjust existing lines, then re-price the order and correct the ledger.

    Stock moves by the quantity difference only. Lines are matched by id;
    ids belonging to another order are skipped and reported.
    """
    warnings: list[dict] = []
    old_total = to_money(order.total_amount)
    applied = 0

    for amendment in amendments:
        order_item = db.session.get(OrderItem, amendment.id)
        if order_item is None or order_item.order_id != order.id:
            warnings.append(_warning(
                WARN_ITEM_NOT_IN_ORDER,
                f"Order item {amendment.id} does not belong to order {order.id}; skipped",
                order_item_id=amendment.id,
            ))
            continue

        qty_diff = amendment.quantity - order_item.quantity
        if qty_diff:
            # Selling more takes stock out; buying more puts it in
            delta = -qty_diff if order.type == ORDER_SALE else qty_diff
            change = apply_stock_delta(order_item.item_ref, delta)
            warnings.extend(_stock_warnings(change, order_item_id=order_item.id))

        order_item.quantity = amendment.quantity
        order_item.unit_price = amendment.unit_price
        order_item.total_price = _line_total(amendment.quantity, amendment.unit_price)
        applied += 1

    if not applied:
        return warnings

    subtotal = sum((to_money(oi.total_price) for oi in order.items), ZERO)
    new_total = compute_total(subtotal, settings.gst_rate)
    order.total_amount = new_total
    order.gst_rate = settings.gst_rate

    if correct_order_entry(order, new_total) is not None:
        delta = new_total - old_total
        if delta:
            # Same direction as the entry that opened the order; a negative delta reverses it
            adjust_balance(party, origin_entry_type(order.type), delta)
    elif new_total > 0:
        # Zero-total orders open without an entry; post one now for the full total
        entry = post_entry(
            party=party,
            entry_type=origin_entry_type(order.type),
            amount=new_total,
            description=origin_description(order.type, order.id),
            transaction_date=order.order_date,
            order_id=order.id,
        )
        order.ledger_transaction_id = entry.id
        if old_total > 0:
            warnings.append(_warning(
                WARN_LEDGER_ENTRY_MISSING,
                f"No ledger entry found for order {order.id}; posted a new one for {new_total}",
                ledger_transaction_id=entry.id,
            ))

    order.bill_details = _snapshot(order, party)
    return warnings


def _apply_payment_transition(order: Order, party: Party, previous: str, new: str):
    """
    Post the payment (or its reversal) when payment_status crosses 'paid'.

    Uses the order total as it stands after any item amendment.
    """
    was_paid = previous == PAYMENT_PAID
    now_paid = new == PAYMENT_PAID
    if was_paid == now_paid:
        return None

    amount = to_money(order.total_amount)
    if amount <= 0:
        return None

    is_sale = order.type == ORDER_SALE
    if now_paid:
        entry_type = LEDGER_CREDIT if is_sale else LEDGER_DEBIT
        label = "Payment Received" if is_sale else "Payment Made"
    else:
        entry_type = LEDGER_DEBIT if is_sale else LEDGER_CREDIT
        label = "Payment Reverted"

    return post_entry(
        party=party,
        entry_type=entry_type,
        amount=amount,
        description=f"{label} for Order #{order.id}",
        transaction_date=utcnow().date(),
        order_id=order.id,
    )


def amend_order(
    order_id: int,
    request: OrderUpdateRequest,
    settings: OrderSettings | None = None,
) -> OrderResult:
    """
    Apply a combined update: items, then payment status, then status/message.

    The payment pass compares against the payment_status the order had on
    entry, and posts the total as already re-priced by the item pass.
    """
    if db.session.get(Order, order_id) is None:
        raise NotFoundError(f"Order {order_id} not found")

    if settings is None:
        settings = load_order_settings()

    if request.items is not None:
        if not request.items:
            raise ValidationError("items must contain at least one item")
        ids = {a.id for a in request.items}
        known = {
            row.id
            for row in db.session.query(OrderItem.id).filter(OrderItem.id.in_(ids)).all()
        }
        unknown = sorted(ids - known)
        if unknown:
            raise ValidationError("Unknown order items", details={"ids": unknown})

    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        party = lock_for_update(db.session.query(Party).filter_by(id=order.party_id)).first()

        warnings: list[dict] = []
        previous_payment_status = order.payment_status

        if request.items is not None:
            warnings.extend(_apply_item_amendments(order, party, request.items, settings))

        _apply_payment_transition(order, party, previous_payment_status, request.payment_status)

        order.status = request.status
        order.payment_status = request.payment_status
        if request.message_provided:
            order.message = request.message

        if not order.bill_details and order.items:
            order.bill_details = _snapshot(order, party)

        return OrderResult(order=order, warnings=warnings)

    return run_atomic(_op)


# =============================================================================
# READ
# =============================================================================

def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def order_detail(order: Order) -> dict:
    """Order with its party and each line's catalog item resolved."""
    data = order.to_dict(include_items=False)
    data["party"] = order.party.to_dict() if order.party else None

    catalog = find_items([oi.item_ref for oi in order.items])
    items = []
    for oi in order.items:
        row = oi.to_dict()
        row["item"] = describe_item(oi.item_ref, catalog.get(oi.item_ref))
        items.append(row)
    data["items"] = items
    return data
