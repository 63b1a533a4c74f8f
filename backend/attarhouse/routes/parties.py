# Overview: Flask API routes for party pricing; parses input and returns JSON responses.

from flask import Blueprint, jsonify

from ..extensions import db
from ..item_refs import ItemRef, ITEM_KINDS
from ..models import Party
from ..services import catalog_service, pricing_service


parties_bp = Blueprint("parties", __name__, url_prefix="/api/parties")


@parties_bp.get("/<int:party_id>/prices/<kind>/<int:item_id>")
def resolve_price_route(party_id: int, kind: str, item_id: int):
    """
    Effective unit price of one catalog item for a party.

    The order screens call this to prefill unit_price when a party is
    selected: the party's override wins, otherwise the item's cost price.
    """
    if kind not in ITEM_KINDS:
        return jsonify({"error": f"kind must be one of: {', '.join(ITEM_KINDS)}"}), 400

    party = db.session.get(Party, party_id)
    if not party:
        return jsonify({"error": "Party not found"}), 404

    ref = ItemRef(kind, item_id)
    item = catalog_service.find_item(ref)
    if not item:
        return jsonify({"error": "Item not found"}), 404

    quote = pricing_service.resolve_unit_price(party.id, ref, item=item)
    return jsonify({
        "party_id": party.id,
        "item_kind": ref.kind,
        "item_id": ref.id,
        **quote.to_dict(),
    }), 200
