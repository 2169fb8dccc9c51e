# Overview: Service-layer operations for the stock ledger; sole writer of stock deltas and the stock cache.

from __future__ import annotations

import logging

from sqlalchemy import func, update

from ..errors import InsufficientStock, InvalidInput, NotFound
from ..extensions import db
from ..models import ProductVariant, StockLedgerEntry
from ..models.inventory import MOVEMENT_TYPES
from .concurrency import lock_for_update, run_with_retry
"""
Stock Ledger Invariants (authoritative)

- Append-only: StockLedgerEntry rows are never updated or deleted.
- Entries are written inside the caller's DB transaction (this module never
  commits), together with the document that caused them.
- ProductVariant.current_stock == SUM(StockLedgerEntry.quantity) for the
  variant, always. Only apply_delta() writes current_stock.
- current_stock never goes below zero: the decrement is a guarded UPDATE, so
  two concurrent sales cannot both pass the check and jointly oversell.
"""

logger = logging.getLogger(__name__)


def _get_variant(variant_id: int, *, lock: bool = False) -> ProductVariant:
    query = db.session.query(ProductVariant).filter_by(id=variant_id)
    if lock:
        query = lock_for_update(query).populate_existing()
    variant = query.first()
    if variant is None:
        raise NotFound(f"Variant {variant_id} not found", details={"variant_id": variant_id})
    return variant


def lock_variants(variant_ids) -> dict[int, ProductVariant]:
    """
    Lock a set of variant rows in ascending id order and return them by id.

    Fixed ordering keeps two writers touching overlapping variants from
    deadlocking each other.
    """
    ids = sorted(set(variant_ids))
    if not ids:
        return {}
    rows = (
        lock_for_update(
            db.session.query(ProductVariant)
            .filter(ProductVariant.id.in_(ids))
            .order_by(ProductVariant.id)
        )
        .populate_existing()
        .all()
    )
    found = {v.id: v for v in rows}
    missing = [i for i in ids if i not in found]
    if missing:
        raise NotFound(f"Variant {missing[0]} not found", details={"variant_id": missing[0]})
    return found


def apply_delta(
    variant_id: int,
    quantity: int,
    movement_type: str,
    *,
    reference_type: str | None = None,
    reference_id: int | None = None,
    notes: str | None = None,
) -> StockLedgerEntry:
    """
    Append one ledger entry and move the variant's cached stock by the same delta.

    Runs inside the caller's transaction; flushes, never commits.

    Raises:
        InvalidInput: zero/non-integer delta or unknown movement type
        NotFound: variant does not exist
        InsufficientStock: a negative delta would take stock below zero
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity == 0:
        raise InvalidInput("Stock delta must be a non-zero integer")
    if movement_type not in MOVEMENT_TYPES:
        raise InvalidInput(f"Unknown movement type {movement_type!r}")

    variant = _get_variant(variant_id, lock=True)

    result = db.session.execute(
        update(ProductVariant)
        .where(
            ProductVariant.id == variant_id,
            ProductVariant.current_stock + quantity >= 0,
        )
        .values(current_stock=ProductVariant.current_stock + quantity)
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        db.session.refresh(variant)
        raise InsufficientStock(
            f"Insufficient stock for variant {variant.sku or variant.id}. "
            f"Available: {variant.current_stock}, requested: {-quantity} (base units)",
            details={
                "variant_id": variant.id,
                "sku": variant.sku,
                "available": variant.current_stock,
                "requested": -quantity,
            },
        )

    entry = StockLedgerEntry(
        variant_id=variant_id,
        movement_type=movement_type,
        quantity=quantity,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
    )
    db.session.add(entry)
    db.session.flush()
    db.session.refresh(variant)

    logger.debug(
        "stock_delta_applied variant_id=%s delta=%s type=%s ref=%s:%s stock_after=%s",
        variant_id, quantity, movement_type, reference_type, reference_id, variant.current_stock,
    )
    return entry


def get_variant_stock(variant_id: int) -> int:
    """Current stock of a variant in base units (read-only, retried on lock errors)."""
    def _op() -> int:
        stock = (
            db.session.query(ProductVariant.current_stock)
            .filter_by(id=variant_id)
            .scalar()
        )
        if stock is None:
            raise NotFound(f"Variant {variant_id} not found", details={"variant_id": variant_id})
        return int(stock)

    return run_with_retry(_op)


def history_for(variant_id: int) -> list[StockLedgerEntry]:
    """All ledger entries for a variant in append order."""
    def _op() -> list[StockLedgerEntry]:
        _get_variant(variant_id)
        return (
            db.session.query(StockLedgerEntry)
            .filter_by(variant_id=variant_id)
            .order_by(StockLedgerEntry.id.asc())
            .all()
        )

    return run_with_retry(_op)


def history_for_reference(reference_type: str, reference_id: int) -> list[StockLedgerEntry]:
    """Ledger entries caused by one document (e.g. a purchase order), in append order."""
    return run_with_retry(
        lambda: db.session.query(StockLedgerEntry)
        .filter_by(reference_type=reference_type, reference_id=reference_id)
        .order_by(StockLedgerEntry.id.asc())
        .all()
    )


def ledger_balance(variant_id: int) -> int:
    """SUM of the variant's ledger deltas, recomputed from history."""
    return int(
        db.session.query(func.coalesce(func.sum(StockLedgerEntry.quantity), 0))
        .filter(StockLedgerEntry.variant_id == variant_id)
        .scalar()
        or 0
    )


def verify_stock_consistency(variant_ids=None) -> list[dict]:
    """
    Compare every variant's cached stock with its ledger sum.

    Returns one dict per mismatching variant; an empty list means the
    central invariant holds.
    """
    sums = (
        db.session.query(
            StockLedgerEntry.variant_id.label("variant_id"),
            func.sum(StockLedgerEntry.quantity).label("balance"),
        )
        .group_by(StockLedgerEntry.variant_id)
        .subquery()
    )
    query = db.session.query(
        ProductVariant.id,
        ProductVariant.sku,
        ProductVariant.current_stock,
        func.coalesce(sums.c.balance, 0),
    ).outerjoin(sums, sums.c.variant_id == ProductVariant.id)
    if variant_ids is not None:
        query = query.filter(ProductVariant.id.in_(list(variant_ids)))

    mismatches = []
    for variant_id, sku, cached, balance in query.order_by(ProductVariant.id).all():
        if int(cached) != int(balance):
            mismatches.append({
                "variant_id": variant_id,
                "sku": sku,
                "current_stock": int(cached),
                "ledger_balance": int(balance),
            })
    if mismatches:
        logger.warning("stock_cache_mismatch count=%s", len(mismatches))
    return mismatches
