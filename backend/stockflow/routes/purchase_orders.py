# Overview: Flask API routes for purchase order operations; parses input and returns JSON responses.

"""
Purchase Order Routes

Permission enforcement happens in front of these routes; every request that
reaches them is already authorized.

Engine errors (InventoryError) are mapped to JSON by the app-level handler.
Anything else is logged here and returned as a 500.
"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import InventoryError
from ..services import purchase_order_service


purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


def _internal_error(action: str):
    current_app.logger.exception("Unexpected error while trying to %s purchase order", action)
    return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@purchase_orders_bp.get("")
def list_purchase_orders_route():
    """
    List purchase orders.

    Query parameters:
    - status: draft, sent, received, cancelled
    - supplier_id: Filter by supplier
    - search: PO number or supplier name
    - limit: Maximum results (default: 100, max 500)
    - offset: Pagination offset (default: 0)

    Returns:
        {items: PurchaseOrder[], count: int, status_counts: {status: int}}
    """
    limit = request.args.get("limit", 100, type=int)
    offset = request.args.get("offset", 0, type=int)

    try:
        rows, total = purchase_order_service.list_purchase_orders(
            status=request.args.get("status"),
            supplier_id=request.args.get("supplier_id", type=int),
            search=request.args.get("search"),
            limit=limit,
            offset=offset,
        )
        status_counts = purchase_order_service.purchase_order_status_counts()
    except InventoryError:
        raise
    except Exception:
        return _internal_error("list")
    return jsonify({
        "items": [po.to_dict(include_items=False) for po in rows],
        "count": total,
        "limit": limit,
        "offset": offset,
        "status_counts": status_counts,
    })


@purchase_orders_bp.post("")
def create_purchase_order_route():
    """
    Create a draft purchase order.

    Request body:
    {
        "supplier_id": 1,                // required, active supplier
        "date": "2026-01-31",            // optional, defaults to today
        "notes": "...",                  // optional
        "items": [                       // required, at least one
            {"product_id": 1, "variant_id": 1, "unit_id": 2, "ordered_qty": 10, "price": "70000"}
        ]
    }
    """
    data = request.get_json(silent=True) or {}
    if not data.get("supplier_id"):
        return jsonify({"error": "supplier_id is required", "code": "VALIDATION_ERROR"}), 400

    try:
        po = purchase_order_service.create_purchase_order(
            supplier_id=data.get("supplier_id"),
            items=data.get("items") or [],
            date=data.get("date"),
            notes=data.get("notes"),
        )
    except InventoryError:
        raise
    except Exception:
        return _internal_error("create")
    return jsonify(po.to_dict()), 201


@purchase_orders_bp.get("/<int:po_id>")
def get_purchase_order_route(po_id: int):
    try:
        po = purchase_order_service.get_purchase_order(po_id)
    except InventoryError:
        raise
    except Exception:
        return _internal_error("fetch")
    return jsonify(po.to_dict())


@purchase_orders_bp.put("/<int:po_id>")
def update_purchase_order_route(po_id: int):
    """Edit a draft purchase order. ``items``, when given, replaces every line."""
    data = request.get_json(silent=True) or {}
    try:
        po = purchase_order_service.update_purchase_order(
            po_id,
            supplier_id=data.get("supplier_id"),
            items=data.get("items"),
            date=data.get("date"),
            notes=data.get("notes"),
        )
    except InventoryError:
        raise
    except Exception:
        return _internal_error("update")
    return jsonify(po.to_dict())


@purchase_orders_bp.delete("/<int:po_id>")
def delete_purchase_order_route(po_id: int):
    try:
        purchase_order_service.delete_purchase_order(po_id)
    except InventoryError:
        raise
    except Exception:
        return _internal_error("delete")
    return jsonify({"deleted": True, "id": po_id})


@purchase_orders_bp.post("/<int:po_id>/send")
def send_purchase_order_route(po_id: int):
    try:
        po = purchase_order_service.send_purchase_order(po_id)
    except InventoryError:
        raise
    except Exception:
        return _internal_error("send")
    return jsonify(po.to_dict())


@purchase_orders_bp.post("/<int:po_id>/cancel")
def cancel_purchase_order_route(po_id: int):
    try:
        po = purchase_order_service.cancel_purchase_order(po_id)
    except InventoryError:
        raise
    except Exception:
        return _internal_error("cancel")
    return jsonify(po.to_dict())


@purchase_orders_bp.post("/<int:po_id>/receive")
def receive_purchase_order_route(po_id: int):
    """
    Receive a sent purchase order and post stock.

    Request body:
    {
        "received_date": "2026-02-03",            // optional, defaults to today
        "payment_method": "bank_transfer",        // cash | credit_card | bank_transfer
        "supplier_bank_account_id": 3,            // required unless cash
        "items": [{"item_id": 11, "received_qty": 10, "received_price": "70000"}]
    }
    """
    data = request.get_json(silent=True) or {}
    if not data.get("payment_method"):
        return jsonify({"error": "payment_method is required", "code": "VALIDATION_ERROR"}), 400

    try:
        po = purchase_order_service.receive_purchase_order(
            po_id,
            payment_method=data.get("payment_method"),
            items=data.get("items") or [],
            received_date=data.get("received_date"),
            supplier_bank_account_id=data.get("supplier_bank_account_id"),
        )
    except InventoryError:
        raise
    except Exception:
        return _internal_error("receive")
    return jsonify(po.to_dict())
