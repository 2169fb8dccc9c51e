# Overview: Service-layer operations for sales checkout; prices a cart and posts it against stock.

"""
Sales Checkout Engine

A checkout is a single atomic step. The cart is validated and stock is
checked on base quantities before any line is priced. Then the transaction
is numbered and persisted, and one negative ``sale`` ledger delta is
applied per line. Any failure leaves no
transaction, no items, no ledger entries and no consumed number behind.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from fractions import Fraction

from sqlalchemy import or_

from ..errors import InsufficientStock, InvalidInput, InventoryError, NotFound, UnknownUnit
from ..extensions import db
from ..models import Product, ProductUnit, ProductVariant, SalesTransaction, SalesTransactionItem
from ..models.inventory import MOVEMENT_SALE, REFERENCE_SALES_TRANSACTION
from ..money import to_money
from . import ledger_service, pricing, sequence_service, unit_conversion
from .concurrency import write_transaction
from stockflow.time_utils import parse_iso_date, parse_iso_datetime, utcnow


logger = logging.getLogger(__name__)

PAYMENT_METHODS = ("cash", "card", "qris")


@dataclass(frozen=True)
class CartLine:
    product_id: int
    variant_id: int
    unit_id: int
    quantity: int


def _int_field(raw: dict, key: str, idx: int) -> int:
    value = raw.get(key)
    if value is None:
        raise InvalidInput(f"items[{idx}].{key} is required")
    if isinstance(value, (bool, float)):
        raise InvalidInput(f"items[{idx}].{key} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"items[{idx}].{key} must be an integer")


def parse_cart(items) -> list[CartLine]:
    if not isinstance(items, (list, tuple)) or not items:
        raise InvalidInput("Cart must contain at least one item")
    lines = []
    for idx, raw in enumerate(items):
        if isinstance(raw, CartLine):
            line = raw
        elif isinstance(raw, dict):
            line = CartLine(
                product_id=_int_field(raw, "product_id", idx),
                variant_id=_int_field(raw, "variant_id", idx),
                unit_id=_int_field(raw, "unit_id", idx),
                quantity=_int_field(raw, "quantity", idx),
            )
        else:
            raise InvalidInput(f"items[{idx}] must be an object")
        if line.quantity <= 0:
            raise InvalidInput(
                f"items[{idx}].quantity must be greater than zero",
                details={"line": idx, "quantity": line.quantity},
            )
        lines.append(line)
    return lines


@dataclass
class _ResolvedLine:
    line: CartLine
    product: Product
    variant: ProductVariant
    unit: ProductUnit
    multiplier: Fraction
    base_qty: int


@dataclass
class _PricedLine:
    resolved: _ResolvedLine
    unit_price: Decimal
    total_price: Decimal


def _resolve_line(idx: int, line: CartLine, variants: dict) -> _ResolvedLine:
    """Check catalog membership and convert the line to base units. No pricing yet."""
    variant = variants[line.variant_id]
    if variant.product_id != line.product_id:
        raise InvalidInput(
            f"Variant {line.variant_id} does not belong to product {line.product_id}",
            details={"line": idx},
        )
    product = variant.product
    if not product.is_active:
        raise InvalidInput(f"Product {product.name!r} is not available for sale", details={"line": idx})

    try:
        unit = unit_conversion.get_unit(product, line.unit_id)
    except UnknownUnit as exc:
        raise InvalidInput(exc.message, details={"line": idx, **exc.details}) from exc

    return _ResolvedLine(
        line=line,
        product=product,
        variant=variant,
        unit=unit,
        multiplier=unit_conversion.resolve_multiplier(product, unit.id),
        base_qty=unit_conversion.to_base_quantity(product, unit.id, line.quantity),
    )


def _check_stock(resolved: list[_ResolvedLine]) -> None:
    """Aggregate requested base quantity per variant and compare with stock, before any write."""
    requested: dict[int, int] = {}
    first_line: dict[int, int] = {}
    for idx, r in enumerate(resolved):
        requested[r.variant.id] = requested.get(r.variant.id, 0) + r.base_qty
        first_line.setdefault(r.variant.id, idx)

    for variant_id, qty in requested.items():
        idx = first_line[variant_id]
        variant = resolved[idx].variant
        if variant.current_stock < qty:
            raise InsufficientStock(
                f"Insufficient stock for {resolved[idx].product.name} ({variant.sku or variant.id}). "
                f"Available: {variant.current_stock}, requested: {qty}",
                details={
                    "line": idx,
                    "variant_id": variant_id,
                    "sku": variant.sku,
                    "available": variant.current_stock,
                    "requested": qty,
                },
            )


def _price_line(idx: int, r: _ResolvedLine) -> _PricedLine:
    tier_value = pricing.resolve_tier_price(r.variant.pricing_tiers, r.base_qty)
    try:
        unit_price = pricing.unit_price_for(tier_value, r.multiplier)
        total_price = to_money(unit_price * r.line.quantity, "total_price")
    except ValueError as exc:
        raise InvalidInput(str(exc), details={"line": idx}) from exc
    return _PricedLine(resolved=r, unit_price=unit_price, total_price=total_price)


def checkout(items, payment_method: str) -> SalesTransaction:
    """
    Price a cart and post it as one sales transaction.

    Stock is checked on base quantities before any line is priced.

    Args:
        items: [{product_id, variant_id, unit_id, quantity}], non-empty, quantity > 0
        payment_method: cash | card | qris

    Raises:
        InvalidInput: bad payment method, empty cart, membership violations,
            amounts beyond the money column range
        NotFound: unknown variant
        InsufficientStock: some variant lacks stock for the whole cart
        UnknownUnit / InvalidUnitGraph / InvalidPricingTiers: broken master data
    """
    if payment_method not in PAYMENT_METHODS:
        raise InvalidInput(
            f"Invalid payment method: {payment_method}. Must be one of: {', '.join(PAYMENT_METHODS)}"
        )
    lines = parse_cart(items)

    try:
        with write_transaction():
            variants = ledger_service.lock_variants(line.variant_id for line in lines)
            resolved = [_resolve_line(idx, line, variants) for idx, line in enumerate(lines)]
            _check_stock(resolved)
            priced = [_price_line(idx, r) for idx, r in enumerate(resolved)]

            try:
                subtotal = to_money(sum((p.total_price for p in priced), Decimal("0.00")), "subtotal")
            except ValueError as exc:
                raise InvalidInput(str(exc)) from exc
            trx = SalesTransaction(
                transaction_number=sequence_service.next_transaction_number(),
                date=utcnow(),
                subtotal=subtotal,
                grand_total=subtotal,
                total_items=len(priced),
                payment_method=payment_method,
            )
            db.session.add(trx)
            db.session.flush()

            for p in priced:
                r = p.resolved
                db.session.add(SalesTransactionItem(
                    transaction_id=trx.id,
                    product_id=r.product.id,
                    variant_id=r.variant.id,
                    unit_id=r.unit.id,
                    product_name=r.product.name,
                    variant_label=r.variant.label,
                    sku=r.variant.sku,
                    unit_name=r.unit.name,
                    quantity=r.line.quantity,
                    base_qty=r.base_qty,
                    unit_price=p.unit_price,
                    total_price=p.total_price,
                ))

            for r in resolved:
                ledger_service.apply_delta(
                    r.variant.id,
                    -r.base_qty,
                    MOVEMENT_SALE,
                    reference_type=REFERENCE_SALES_TRANSACTION,
                    reference_id=trx.id,
                    notes=f"Sale {trx.transaction_number}",
                )
    except InventoryError as exc:
        logger.warning("checkout_rejected code=%s details=%s", exc.code, exc.details)
        raise

    logger.info(
        "checkout_completed transaction_id=%s number=%s lines=%s grand_total=%s payment=%s",
        trx.id, trx.transaction_number, trx.total_items, trx.grand_total, payment_method,
    )
    return trx


def get_transaction(transaction_id: int) -> SalesTransaction:
    trx = db.session.query(SalesTransaction).filter_by(id=transaction_id).first()
    if not trx:
        raise NotFound(
            f"Sales transaction {transaction_id} not found",
            details={"transaction_id": transaction_id},
        )
    return trx


def _parse_filter_bound(value, field: str):
    """Returns (datetime, is_whole_day) or (None, False) when the filter is unset."""
    if value is None or value == "":
        return None, False
    if isinstance(value, datetime):
        return value, False
    if isinstance(value, date):
        return datetime.combine(value, time.min), True
    try:
        if isinstance(value, str) and len(value.strip()) == 10:
            return datetime.combine(parse_iso_date(value), time.min), True
        return parse_iso_datetime(value), False
    except (TypeError, ValueError):
        raise InvalidInput(f"Invalid {field}, expected an ISO 8601 date or datetime")


def list_transactions(
    *,
    date_from=None,
    date_to=None,
    payment_method: str | None = None,
    search: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[SalesTransaction], int]:
    """
    List sales transactions, newest first.

    ``date_from`` is inclusive. A datetime ``date_to`` is exclusive, while a
    plain date (``YYYY-MM-DD``) includes that whole day. ``search`` matches
    the transaction number or any item's product name or SKU.
    """
    query = db.session.query(SalesTransaction)

    start, _ = _parse_filter_bound(date_from, "date_from")
    end, whole_day = _parse_filter_bound(date_to, "date_to")
    if end and whole_day:
        end = end + timedelta(days=1)
    if start:
        query = query.filter(SalesTransaction.date >= start)
    if end:
        query = query.filter(SalesTransaction.date < end)
    if payment_method:
        if payment_method not in PAYMENT_METHODS:
            raise InvalidInput(f"Invalid payment method: {payment_method}")
        query = query.filter(SalesTransaction.payment_method == payment_method)
    if search:
        pattern = f"%{search.strip()}%"
        matching_items = (
            db.session.query(SalesTransactionItem.transaction_id)
            .filter(or_(
                SalesTransactionItem.product_name.ilike(pattern),
                SalesTransactionItem.sku.ilike(pattern),
            ))
        )
        query = query.filter(or_(
            SalesTransaction.transaction_number.ilike(pattern),
            SalesTransaction.id.in_(matching_items),
        ))

    total = query.count()

    if offset < 0:
        offset = 0
    if limit < 1:
        limit = 1
    if limit > 500:
        limit = 500

    rows = (
        query.order_by(SalesTransaction.date.desc(), SalesTransaction.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return rows, total
