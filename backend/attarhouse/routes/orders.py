# Overview: Flask API routes for sale/purchase orders; parses input and returns JSON responses.

# backend/attarhouse/routes/orders.py
"""
Order API routes

Called by the admin web app and the mobile client. Request bodies are
validated in full before the order engine touches the database.
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import order_service
from ..validation import (
    ValidationError,
    NotFoundError,
    parse_order_create,
    parse_order_update,
)


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _log_warnings(action: str, result) -> None:
    if result.warnings:
        current_app.logger.warning(
            "%s order %s with %d warning(s): %s",
            action,
            result.order.id,
            len(result.warnings),
            ", ".join(w["code"] for w in result.warnings),
        )


@orders_bp.post("")
def create_order_route():
    """
    Create a sale or purchase order.

    Request body:
    {
        "party_id": 1,
        "order_date": "2026-01-15",
        "type": "sale",                      (sale | purchase)
        "items": [
            {"product_id": 3, "quantity": 2, "unit_price": 100},
            {"attar_id": 7, "quantity": 1}   (unit_price resolved from party price list)
        ]
    }

    Returns:
        201: {"order": ..., "warnings": [...]}
        400: Invalid input or unknown party/item
        500: Server error (nothing was written)
    """
    try:
        order_request = parse_order_create(request.get_json(silent=True))
        result = order_service.create_order(order_request)

        current_app.logger.info(
            "Created %s order %s for party %s total=%s",
            result.order.type,
            result.order.id,
            result.order.party_id,
            result.order.total_amount,
        )
        _log_warnings("Created", result)

        return jsonify(result.to_dict()), 201

    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.put("/<int:order_id>")
def update_order_route(order_id: int):
    """
    Amend an order: status, payment_status, message and existing item lines.

    Request body:
    {
        "status": "completed",               (pending | completed | cancelled)
        "payment_status": "paid",            (unpaid | partial | paid)
        "message": "Delivered",              (optional)
        "items": [                           (optional; existing lines only)
            {"id": 10, "quantity": 8, "unit_price": 100}
        ]
    }

    Returns:
        200: {"order": ..., "warnings": [...]}
        400: Invalid input
        404: Order not found
        500: Server error (nothing was written)
    """
    try:
        update_request = parse_order_update(request.get_json(silent=True))
        result = order_service.amend_order(order_id, update_request)

        current_app.logger.info(
            "Amended order %s status=%s payment_status=%s total=%s",
            result.order.id,
            result.order.status,
            result.order.payment_status,
            result.order.total_amount,
        )
        _log_warnings("Amended", result)

        return jsonify(result.to_dict()), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to update order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
def get_order_route(order_id: int):
    """Get an order with its party and resolved item lines."""
    try:
        order = order_service.get_order(order_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    return jsonify({"order": order_service.order_detail(order)}), 200
