# Overview: Flask API routes for sales checkout and transaction lookup; returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..errors import InventoryError
from ..services import sales_service


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _internal_error(action: str):
    current_app.logger.exception("Unexpected error during %s", action)
    return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@sales_bp.post("/checkout")
def checkout_route():
    """
    Check out a cart.

    Request body:
    {
        "payment_method": "cash",   // cash | card | qris
        "items": [{"product_id": 1, "variant_id": 1, "unit_id": 1, "quantity": 3}]
    }

    Returns:
        SalesTransaction with items (201)
    """
    data = request.get_json(silent=True) or {}
    try:
        trx = sales_service.checkout(data.get("items") or [], data.get("payment_method"))
    except InventoryError:
        raise
    except Exception:
        return _internal_error("checkout")
    return jsonify(trx.to_dict()), 201


@sales_bp.get("")
def list_transactions_route():
    """
    List sales transactions.

    Query parameters:
    - date_from / date_to: ISO-8601 bounds on the transaction timestamp;
      a plain YYYY-MM-DD date_to includes that whole day
    - payment_method: cash, card, qris
    - search: transaction number, product name or SKU
    - limit / offset: pagination (default 100 / 0)
    """
    limit = request.args.get("limit", 100, type=int)
    offset = request.args.get("offset", 0, type=int)
    try:
        rows, total = sales_service.list_transactions(
            date_from=request.args.get("date_from"),
            date_to=request.args.get("date_to"),
            payment_method=request.args.get("payment_method"),
            search=request.args.get("search"),
            limit=limit,
            offset=offset,
        )
    except InventoryError:
        raise
    except Exception:
        return _internal_error("transaction listing")
    return jsonify({
        "items": [trx.to_dict(include_items=False) for trx in rows],
        "count": total,
        "limit": limit,
        "offset": offset,
    })


@sales_bp.get("/<int:transaction_id>")
def get_transaction_route(transaction_id: int):
    try:
        trx = sales_service.get_transaction(transaction_id)
    except InventoryError:
        raise
    except Exception:
        return _internal_error("transaction lookup")
    return jsonify(trx.to_dict())
