"""
Catalog item references.

Orders, party price overrides and stock records all point at exactly one
catalog item, which can be a Product, a ProductSet (gift set) or an Attar.
Instead of three nullable foreign keys, rows store a (kind, id) pair and code
passes ItemRef values around.

The JSON API keeps the product_id / product_set_id / attar_id field names
the web and mobile clients already send; REFERENCE_FIELDS maps between them.
"""

from __future__ import annotations

from dataclasses import dataclass


ITEM_PRODUCT = "product"
ITEM_SET = "set"
ITEM_ATTAR = "attar"
ITEM_KINDS = (ITEM_PRODUCT, ITEM_SET, ITEM_ATTAR)

REFERENCE_FIELDS = {
    "product_id": ITEM_PRODUCT,
    "product_set_id": ITEM_SET,
    "attar_id": ITEM_ATTAR,
}
FIELD_BY_KIND = {kind: field for field, kind in REFERENCE_FIELDS.items()}


@dataclass(frozen=True)
class ItemRef:
    kind: str
    id: int

    def __post_init__(self):
        if self.kind not in ITEM_KINDS:
            raise ValueError(f"Unknown item kind: {self.kind}")

    @property
    def reference_field(self) -> str:
        return FIELD_BY_KIND[self.kind]

    def to_dict(self) -> dict:
        return {"kind": self.kind, "id": self.id, self.reference_field: self.id}

    def __str__(self) -> str:
        return f"{self.kind}:{self.id}"
