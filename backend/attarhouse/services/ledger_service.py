# Overview: Party ledger; appends debit/credit entries and keeps Party.balance in step.

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import case, func

from ..extensions import db
from ..models import Party, Transaction, Order
from ..models.orders import ORDER_SALE
from ..models.parties import LEDGER_DEBIT, LEDGER_CREDIT
from ..money import to_money, ZERO
"""
Party Ledger Invariants (authoritative)

- Party.balance == SUM(debit amounts) - SUM(credit amounts) for that party.
- Every balance movement goes through this module so the two stay in step.
- Entries are appended, never deleted. The single sanctioned in-place edit is
  correct_order_entry(): an order's originating entry tracks the order total.
- Entries are written inside the caller's DB transaction (flush, no commit).
"""


def origin_entry_type(order_type: str) -> str:
    """Entry type posted when an order is created: sales debit, purchases credit."""
    return LEDGER_DEBIT if order_type == ORDER_SALE else LEDGER_CREDIT


def origin_description(order_type: str, order_id: int) -> str:
    prefix = "Sale" if order_type == ORDER_SALE else "Purchase"
    return f"{prefix} Order #{order_id}"


def adjust_balance(party: Party, entry_type: str, amount: Decimal) -> Decimal:
    """
    Debit raises the balance by amount, credit lowers it. A negative amount
    moves it the other way. Returns the new balance.
    """
    amount = to_money(amount)
    current = to_money(party.balance)
    if entry_type == LEDGER_DEBIT:
        party.balance = current + amount
    elif entry_type == LEDGER_CREDIT:
        party.balance = current - amount
    else:
        raise ValueError(f"Unknown ledger entry type: {entry_type}")
    return party.balance


def post_entry(
    *,
    party: Party,
    entry_type: str,
    amount: Decimal,
    description: str,
    transaction_date: date,
    order_id: int | None = None,
) -> Transaction:
    """Append a ledger entry and move the party's balance by the same amount."""
    amount = to_money(amount)
    if amount <= 0:
        raise ValueError("Ledger entry amount must be positive")

    entry = Transaction(
        party_id=party.id,
        order_id=order_id,
        type=entry_type,
        amount=amount,
        description=description,
        transaction_date=transaction_date,
    )
    db.session.add(entry)
    adjust_balance(party, entry_type, amount)
    db.session.flush()  # ensures entry.id is assigned without committing
    return entry


def find_order_entry(order: Order) -> Transaction | None:
    """
    The entry posted when the order was created.

    Orders carry an explicit reference. Rows created before that column
    existed fall back to an exact match on type and description.
    """
    if order.ledger_transaction_id:
        entry = db.session.get(Transaction, order.ledger_transaction_id)
        if entry is not None and entry.order_id == order.id:
            return entry

    return (
        db.session.query(Transaction)
        .filter_by(
            order_id=order.id,
            type=origin_entry_type(order.type),
            description=origin_description(order.type, order.id),
        )
        .order_by(Transaction.id.asc())
        .first()
    )


def correct_order_entry(order: Order, new_amount: Decimal) -> Transaction | None:
    """
    Rewrite the originating entry's amount to the order's new total.

    Balance is NOT touched here; the caller moves it by the delta.
    """
    entry = find_order_entry(order)
    if entry is None:
        return None
    entry.amount = to_money(new_amount)
    if not order.ledger_transaction_id:
        order.ledger_transaction_id = entry.id
    return entry


def expected_balances() -> dict[int, Decimal]:
    """SUM(debit) - SUM(credit) per party, from the ledger alone."""
    signed = case(
        (Transaction.type == LEDGER_DEBIT, Transaction.amount),
        else_=-Transaction.amount,
    )
    rows = (
        db.session.query(Transaction.party_id, func.coalesce(func.sum(signed), 0))
        .group_by(Transaction.party_id)
        .all()
    )
    return {party_id: to_money(total) for party_id, total in rows}


def reconcile_balances(*, fix: bool = False) -> list[dict]:
    """
    Compare every party's stored balance with its ledger.

    Returns the mismatches. With fix=True the stored balance is overwritten
    with the ledger-derived value (caller commits).
    """
    expected = expected_balances()
    mismatches = []
    for party in db.session.query(Party).order_by(Party.id.asc()).all():
        stored = to_money(party.balance)
        derived = expected.get(party.id, ZERO)
        if stored == derived:
            continue
        mismatches.append({
            "party_id": party.id,
            "name": party.name,
            "stored_balance": str(stored),
            "ledger_balance": str(derived),
            "difference": str(stored - derived),
        })
        if fix:
            party.balance = derived
    if fix and mismatches:
        db.session.flush()
    return mismatches
