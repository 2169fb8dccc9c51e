# Overview: Flask API routes for inventory reads; stock levels and ledger history per variant.

from flask import Blueprint, current_app, jsonify

from ..errors import InventoryError
from ..services import ledger_service


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _internal_error(action: str):
    current_app.logger.exception("Unexpected error while reading %s", action)
    return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@inventory_bp.get("/variants/<int:variant_id>/stock")
def variant_stock_route(variant_id: int):
    """Current stock of a variant in its product's base unit."""
    try:
        stock = ledger_service.get_variant_stock(variant_id)
    except InventoryError:
        raise
    except Exception:
        return _internal_error("variant stock")
    return jsonify({"variant_id": variant_id, "current_stock": stock})


@inventory_bp.get("/variants/<int:variant_id>/ledger")
def variant_ledger_route(variant_id: int):
    """
    Ledger history of a variant, oldest first.

    Returns:
        {variant_id, entries: StockLedgerEntry[], balance: int}
    """
    try:
        entries = ledger_service.history_for(variant_id)
    except InventoryError:
        raise
    except Exception:
        return _internal_error("ledger history")
    return jsonify({
        "variant_id": variant_id,
        "entries": [e.to_dict() for e in entries],
        "balance": sum(e.quantity for e in entries),
    })
