# Overview: Pricing resolver; effective unit price of a catalog item for a party.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from ..extensions import db
from ..item_refs import ItemRef
from ..models import PartyItemPrice
from ..money import to_money, ZERO
from .catalog_service import find_item


PRICE_SOURCE_PARTY = "party"
PRICE_SOURCE_COST = "cost_price"
PRICE_SOURCE_DEFAULT = "default"


@dataclass(frozen=True)
class PriceQuote:
    unit_price: Decimal
    source: str

    def to_dict(self) -> dict:
        return {"unit_price": str(self.unit_price), "source": self.source}


def get_party_override(party_id: int, ref: ItemRef) -> PartyItemPrice | None:
    return (
        db.session.query(PartyItemPrice)
        .filter_by(party_id=party_id, item_kind=ref.kind, item_id=ref.id)
        .first()
    )


def resolve_unit_price(party_id: int, ref: ItemRef, *, item=None) -> PriceQuote:
    """
    Party-specific override wins; otherwise the item's cost price; otherwise 0.

    item may be passed when the caller already loaded the catalog row.
    """
    override = get_party_override(party_id, ref)
    if override is not None:
        return PriceQuote(to_money(override.price), PRICE_SOURCE_PARTY)

    if item is None:
        item = find_item(ref)
    if item is not None and item.cost_price is not None:
        return PriceQuote(to_money(item.cost_price), PRICE_SOURCE_COST)

    return PriceQuote(ZERO, PRICE_SOURCE_DEFAULT)
