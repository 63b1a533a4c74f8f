# Overview: Stock ledger operations; one quantity counter per catalog item.

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..item_refs import ItemRef
from ..models import StockRecord
from .catalog_service import get_stock_record


@dataclass(frozen=True)
class StockChange:
    """
    Outcome of one stock movement.

    applied=False means the item had no StockRecord and the movement was
    skipped (sales and amendments never create stock out of nothing).
    """
    ref: ItemRef
    delta: int
    applied: bool
    before: int | None = None
    after: int | None = None
    created: bool = False

    @property
    def went_negative(self) -> bool:
        return self.applied and self.after is not None and self.after < 0


def apply_stock_delta(ref: ItemRef, delta: int, *, create_if_absent: bool = False) -> StockChange:
    """
    Move an item's on-hand quantity by delta inside the caller's transaction.

    - Existing record: quantity += delta (may go negative; no floor check)
    - No record and create_if_absent with a positive delta: create it at delta
    - No record otherwise: nothing happens, applied=False
    """
    record = get_stock_record(ref, lock=True)

    if record is None:
        if create_if_absent and delta > 0:
            record = StockRecord(item_kind=ref.kind, item_id=ref.id, quantity=delta)
            db.session.add(record)
            db.session.flush()
            return StockChange(ref=ref, delta=delta, applied=True, before=0, after=delta, created=True)
        return StockChange(ref=ref, delta=delta, applied=False)

    before = record.quantity or 0
    record.quantity = before + delta
    return StockChange(ref=ref, delta=delta, applied=True, before=before, after=record.quantity)


def get_quantity_on_hand(ref: ItemRef) -> int:
    """Absent StockRecord counts as zero."""
    record = get_stock_record(ref)
    return record.quantity if record else 0
