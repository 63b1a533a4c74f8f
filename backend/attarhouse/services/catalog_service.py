# Overview: Catalog lookup for the order engine; resolves item references to catalog rows.

from __future__ import annotations

from ..extensions import db
from ..item_refs import ItemRef
from ..models import CATALOG_MODELS, StockRecord
from .concurrency import lock_for_update


def find_item(ref: ItemRef):
    """Return the Product / ProductSet / Attar for ref, or None."""
    model = CATALOG_MODELS[ref.kind]
    return db.session.get(model, ref.id)


def find_items(refs) -> dict[ItemRef, object]:
    """Resolve many references with one query per kind. Missing refs are absent."""
    by_kind: dict[str, set[int]] = {}
    for ref in refs:
        by_kind.setdefault(ref.kind, set()).add(ref.id)

    found = {}
    for kind, ids in by_kind.items():
        model = CATALOG_MODELS[kind]
        for row in db.session.query(model).filter(model.id.in_(ids)).all():
            found[ItemRef(kind, row.id)] = row
    return found


def get_stock_record(ref: ItemRef, *, lock: bool = False) -> StockRecord | None:
    query = db.session.query(StockRecord).filter_by(item_kind=ref.kind, item_id=ref.id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def describe_item(ref: ItemRef, item) -> dict:
    """Display fields for an item reference; item is None when it no longer exists."""
    return {
        "kind": ref.kind,
        "id": ref.id,
        "name": item.name if item else "Unknown",
        "sku": (item.sku or "-") if item else "-",
    }
