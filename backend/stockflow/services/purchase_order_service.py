# Overview: Service-layer operations for purchase orders; owns the draft/sent/received lifecycle.

"""
Purchase Order Workflow

LIFECYCLE:
1. DRAFT: Created with lines; editable and deletable
2. SENT: Sent to the supplier; only receiving may change it
3. RECEIVED: Goods counted in, stock posted (terminal)
4. CANCELLED: Abandoned from DRAFT or SENT, never touched stock (terminal)

RECEIVING:
- Every line is reconciled in the same call: received quantity/price are
  recorded, the line is marked verified when both match what was ordered,
  and the received quantity is posted to the stock ledger in base units.
- Line updates, ledger deltas and the status change commit together or not
  at all. A second receiving pass is not modeled: RECEIVED is terminal.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import func, or_

from ..errors import InvalidInput, InvalidTransition, NotFound, UnknownUnit
from ..extensions import db
from ..models import (
    Product,
    ProductVariant,
    PurchaseOrder,
    PurchaseOrderItem,
    Supplier,
    SupplierBankAccount,
)
from ..models.inventory import MOVEMENT_PURCHASE_RECEIVE, REFERENCE_PURCHASE_ORDER
from ..money import to_money
from . import ledger_service, sequence_service, unit_conversion
from .concurrency import lock_for_update, write_transaction
from stockflow.time_utils import parse_iso_date, utcnow


logger = logging.getLogger(__name__)


class PurchaseOrderStatus(str, enum.Enum):
    DRAFT = "draft"
    SENT = "sent"
    RECEIVED = "received"
    CANCELLED = "cancelled"


class PurchaseOrderAction(str, enum.Enum):
    SEND = "send"
    RECEIVE = "receive"
    CANCEL = "cancel"


# Closed transition table; anything not listed is rejected
_TRANSITIONS: dict[tuple[PurchaseOrderStatus, PurchaseOrderAction], PurchaseOrderStatus] = {
    (PurchaseOrderStatus.DRAFT, PurchaseOrderAction.SEND): PurchaseOrderStatus.SENT,
    (PurchaseOrderStatus.DRAFT, PurchaseOrderAction.CANCEL): PurchaseOrderStatus.CANCELLED,
    (PurchaseOrderStatus.SENT, PurchaseOrderAction.RECEIVE): PurchaseOrderStatus.RECEIVED,
    (PurchaseOrderStatus.SENT, PurchaseOrderAction.CANCEL): PurchaseOrderStatus.CANCELLED,
}

PAYMENT_CASH = "cash"
PAYMENT_METHODS = ("cash", "credit_card", "bank_transfer")


def next_status(current: str | PurchaseOrderStatus, action: str | PurchaseOrderAction) -> PurchaseOrderStatus:
    """
    Target status for applying ``action`` in ``current``.

    Raises InvalidTransition for any pair outside the transition table.
    """
    current = PurchaseOrderStatus(current)
    action = PurchaseOrderAction(action)
    target = _TRANSITIONS.get((current, action))
    if target is None:
        raise InvalidTransition(
            f"Cannot {action.value} a {current.value} purchase order",
            details={"status": current.value, "action": action.value},
        )
    return target


@dataclass(frozen=True)
class PurchaseOrderItemInput:
    product_id: int
    variant_id: int
    unit_id: int
    ordered_qty: int
    price: Decimal


@dataclass(frozen=True)
class ReceiveItemInput:
    item_id: int
    received_qty: int
    received_price: Decimal


def _int_field(data: dict, key: str, *, label: str | None = None) -> int:
    value = data.get(key)
    label = label or key
    if value is None:
        raise InvalidInput(f"{label} is required")
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidInput(f"{label} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{label} must be an integer")


def _money_field(data: dict, key: str) -> Decimal:
    try:
        return to_money(data.get(key), key)
    except ValueError as exc:
        raise InvalidInput(str(exc))


def parse_item_inputs(items) -> list[PurchaseOrderItemInput]:
    """Coerce raw dict lines into PurchaseOrderItemInput (ints and 2-place Decimals)."""
    if not isinstance(items, (list, tuple)):
        raise InvalidInput("items must be a list")
    parsed = []
    for idx, raw in enumerate(items):
        if isinstance(raw, PurchaseOrderItemInput):
            parsed.append(raw)
            continue
        if not isinstance(raw, dict):
            raise InvalidInput(f"items[{idx}] must be an object")
        parsed.append(PurchaseOrderItemInput(
            product_id=_int_field(raw, "product_id", label=f"items[{idx}].product_id"),
            variant_id=_int_field(raw, "variant_id", label=f"items[{idx}].variant_id"),
            unit_id=_int_field(raw, "unit_id", label=f"items[{idx}].unit_id"),
            ordered_qty=_int_field(raw, "ordered_qty", label=f"items[{idx}].ordered_qty"),
            price=_money_field(raw, "price"),
        ))
    return parsed


def parse_receive_inputs(items) -> list[ReceiveItemInput]:
    if not isinstance(items, (list, tuple)):
        raise InvalidInput("items must be a list")
    parsed = []
    for idx, raw in enumerate(items):
        if isinstance(raw, ReceiveItemInput):
            parsed.append(raw)
            continue
        if not isinstance(raw, dict):
            raise InvalidInput(f"items[{idx}] must be an object")
        parsed.append(ReceiveItemInput(
            item_id=_int_field(raw, "item_id", label=f"items[{idx}].item_id"),
            received_qty=_int_field(raw, "received_qty", label=f"items[{idx}].received_qty"),
            received_price=_money_field(raw, "received_price"),
        ))
    return parsed


def _parse_business_date(value, field: str) -> date:
    if value is None or value == "":
        return utcnow().date()
    try:
        return parse_iso_date(value)
    except ValueError:
        raise InvalidInput(f"Invalid {field} format, expected YYYY-MM-DD")


def _validate_supplier(supplier_id) -> Supplier:
    supplier = db.session.query(Supplier).filter_by(id=supplier_id).first()
    if not supplier:
        raise InvalidInput("Supplier not found", details={"supplier_id": supplier_id})
    if not supplier.is_active:
        raise InvalidInput("Supplier is inactive", details={"supplier_id": supplier_id})
    return supplier


def _build_item(line: PurchaseOrderItemInput, idx: int) -> PurchaseOrderItem:
    """Validate one line against master data and snapshot its display fields."""
    if line.ordered_qty < 0:
        raise InvalidInput(f"items[{idx}].ordered_qty cannot be negative")
    if line.price < 0:
        raise InvalidInput(f"items[{idx}].price cannot be negative")

    product = db.session.query(Product).filter_by(id=line.product_id).first()
    if not product:
        raise InvalidInput(f"Product {line.product_id} not found")
    if not product.is_active:
        raise InvalidInput(f"Product {product.name!r} is inactive")

    variant = db.session.query(ProductVariant).filter_by(id=line.variant_id).first()
    if not variant or variant.product_id != product.id:
        raise InvalidInput(
            f"Variant {line.variant_id} not found for product {product.id}",
            details={"line": idx},
        )

    try:
        unit = unit_conversion.get_unit(product, line.unit_id)
    except UnknownUnit as exc:
        raise InvalidInput(exc.message, details={"line": idx, **exc.details}) from exc

    return PurchaseOrderItem(
        product_id=product.id,
        variant_id=variant.id,
        unit_id=unit.id,
        product_name=product.name,
        variant_label=variant.label,
        unit_name=unit.name,
        sku=variant.sku,
        current_stock=variant.current_stock,
        ordered_qty=line.ordered_qty,
        price=line.price,
    )


def _build_items(items) -> list[PurchaseOrderItem]:
    lines = parse_item_inputs(items)
    if not lines:
        raise InvalidInput("Purchase order must have at least one item")
    return [_build_item(line, idx) for idx, line in enumerate(lines)]


def _recalculate_ordered_totals(po: PurchaseOrder) -> None:
    po.subtotal = sum((Decimal(i.price) * i.ordered_qty for i in po.items), Decimal("0.00"))
    po.total_items = sum(i.ordered_qty for i in po.items)


def _get_locked(po_id: int) -> PurchaseOrder:
    po = lock_for_update(db.session.query(PurchaseOrder).filter_by(id=po_id)).populate_existing().first()
    if not po:
        raise NotFound(f"Purchase order {po_id} not found", details={"purchase_order_id": po_id})
    return po


def get_purchase_order(po_id: int) -> PurchaseOrder:
    po = db.session.query(PurchaseOrder).filter_by(id=po_id).first()
    if not po:
        raise NotFound(f"Purchase order {po_id} not found", details={"purchase_order_id": po_id})
    return po


def create_purchase_order(
    *,
    supplier_id: int,
    items,
    date=None,
    notes: str | None = None,
) -> PurchaseOrder:
    """
    Create a DRAFT purchase order with snapshot line items.

    Args:
        supplier_id: Active supplier (REQUIRED)
        items: [{product_id, variant_id, unit_id, ordered_qty, price}], at least one
        date: Business date of the order (defaults to today, UTC)
        notes: Free text

    Raises:
        InvalidInput: supplier/product/variant/unit problems, empty or bad lines
    """
    order_date = _parse_business_date(date, "date")

    with write_transaction():
        _validate_supplier(supplier_id)
        po_items = _build_items(items)

        po = PurchaseOrder(
            po_number=sequence_service.next_po_number(),
            supplier_id=supplier_id,
            date=order_date,
            status=PurchaseOrderStatus.DRAFT.value,
            notes=notes,
            items=po_items,
        )
        _recalculate_ordered_totals(po)
        db.session.add(po)
        db.session.flush()

    logger.info(
        "po_created po_id=%s po_number=%s supplier_id=%s items=%s",
        po.id, po.po_number, supplier_id, len(po.items),
    )
    return po


def update_purchase_order(
    po_id: int,
    *,
    supplier_id: int | None = None,
    items=None,
    date=None,
    notes: str | None = None,
) -> PurchaseOrder:
    """
    Edit a DRAFT purchase order. Provided items replace all existing lines.
    """
    with write_transaction():
        po = _get_locked(po_id)
        if po.status != PurchaseOrderStatus.DRAFT.value:
            raise InvalidTransition(
                "Only draft purchase orders can be updated",
                details={"status": po.status},
            )

        if supplier_id is not None:
            _validate_supplier(supplier_id)
            po.supplier_id = supplier_id
        if date is not None:
            po.date = _parse_business_date(date, "date")
        if notes is not None:
            po.notes = notes
        if items is not None:
            po.items = _build_items(items)
        _recalculate_ordered_totals(po)
        db.session.flush()

    logger.info("po_updated po_id=%s items=%s", po.id, len(po.items))
    return po


def delete_purchase_order(po_id: int) -> None:
    """Delete a DRAFT purchase order. Its number is not reused."""
    with write_transaction():
        po = _get_locked(po_id)
        if po.status != PurchaseOrderStatus.DRAFT.value:
            raise InvalidTransition(
                "Only draft purchase orders can be deleted",
                details={"status": po.status},
            )
        po_number = po.po_number
        db.session.delete(po)

    logger.info("po_deleted po_id=%s po_number=%s", po_id, po_number)


def send_purchase_order(po_id: int) -> PurchaseOrder:
    """
    DRAFT -> SENT. Every line needs a positive quantity and price.
    """
    with write_transaction():
        po = _get_locked(po_id)
        target = next_status(po.status, PurchaseOrderAction.SEND)

        if not po.items:
            raise InvalidInput("Cannot send a purchase order with no items")
        invalid = [
            {"item_id": i.id, "ordered_qty": i.ordered_qty, "price": str(i.price)}
            for i in po.items
            if i.ordered_qty <= 0 or Decimal(i.price) <= 0
        ]
        if invalid:
            raise InvalidInput(
                "Every item needs an ordered quantity and price greater than zero",
                details={"items": invalid},
            )

        po.status = target.value
        po.sent_at = utcnow()

    logger.info("po_sent po_id=%s po_number=%s", po.id, po.po_number)
    return po


def cancel_purchase_order(po_id: int) -> PurchaseOrder:
    """DRAFT|SENT -> CANCELLED. No stock effect."""
    with write_transaction():
        po = _get_locked(po_id)
        target = next_status(po.status, PurchaseOrderAction.CANCEL)
        po.status = target.value
        po.cancelled_at = utcnow()

    logger.info("po_cancelled po_id=%s po_number=%s", po.id, po.po_number)
    return po


def _validate_payment(po: PurchaseOrder, payment_method, bank_account_id):
    if payment_method not in PAYMENT_METHODS:
        raise InvalidInput(
            f"Invalid payment method: {payment_method}. Must be one of: {', '.join(PAYMENT_METHODS)}"
        )
    if payment_method == PAYMENT_CASH:
        return None
    if not bank_account_id:
        raise InvalidInput("Supplier bank account is required for non-cash payment")
    account = db.session.query(SupplierBankAccount).filter_by(id=bank_account_id).first()
    if not account or account.supplier_id != po.supplier_id:
        raise InvalidInput(
            "Bank account does not belong to this purchase order's supplier",
            details={"supplier_bank_account_id": bank_account_id},
        )
    return account.id


def _match_receive_lines(po: PurchaseOrder, lines: list[ReceiveItemInput]) -> list[tuple[PurchaseOrderItem, ReceiveItemInput]]:
    """Pair every PO item with exactly one submitted line, in PO line order."""
    submitted: dict[int, ReceiveItemInput] = {}
    for line in lines:
        if line.item_id in submitted:
            raise InvalidInput(f"Item {line.item_id} submitted more than once")
        if line.received_qty < 0:
            raise InvalidInput("Received quantity cannot be negative", details={"item_id": line.item_id})
        if line.received_price < 0:
            raise InvalidInput("Received price cannot be negative", details={"item_id": line.item_id})
        submitted[line.item_id] = line

    po_item_ids = {i.id for i in po.items}
    unknown = sorted(set(submitted) - po_item_ids)
    if unknown:
        raise InvalidInput(
            f"Item {unknown[0]} does not belong to purchase order {po.po_number}",
            details={"item_ids": unknown},
        )
    missing = sorted(po_item_ids - set(submitted))
    if missing:
        raise InvalidInput(
            "Every purchase order item must be received in the same operation",
            details={"missing_item_ids": missing},
        )
    return [(item, submitted[item.id]) for item in po.items]


def receive_purchase_order(
    po_id: int,
    *,
    payment_method: str,
    items,
    received_date=None,
    supplier_bank_account_id: int | None = None,
) -> PurchaseOrder:
    """
    SENT -> RECEIVED, posting received quantities to stock.

    All validation (state, payment, lines, unit graph) happens before the
    first write so the commit cannot fail on business rules.

    Raises:
        NotFound: unknown purchase order
        InvalidTransition: order is not SENT (including already RECEIVED)
        InvalidInput: payment/bank account/line problems
        InvalidUnitGraph / UnknownUnit: broken master data on an item's unit
    """
    lines = parse_receive_inputs(items)
    receive_day = _parse_business_date(received_date, "received_date")

    with write_transaction():
        po = _get_locked(po_id)
        target = next_status(po.status, PurchaseOrderAction.RECEIVE)
        bank_account_id = _validate_payment(po, payment_method, supplier_bank_account_id)
        pairs = _match_receive_lines(po, lines)

        products = {
            p.id: p
            for p in db.session.query(Product).filter(
                Product.id.in_({item.product_id for item, _ in pairs})
            )
        }
        plan = []
        for item, line in pairs:
            base_qty = unit_conversion.to_base_quantity(
                products[item.product_id], item.unit_id, line.received_qty
            )
            plan.append((item, line, base_qty))

        # Lock order: purchase order, then variants ascending
        ledger_service.lock_variants(item.variant_id for item, _, _ in plan)

        subtotal = Decimal("0.00")
        total_items = 0
        for item, line, base_qty in plan:
            item.received_qty = line.received_qty
            item.received_price = line.received_price
            item.is_verified = (
                line.received_qty == item.ordered_qty
                and line.received_price == Decimal(item.price)
            )
            subtotal += line.received_price * line.received_qty
            total_items += line.received_qty

            if base_qty:
                ledger_service.apply_delta(
                    item.variant_id,
                    base_qty,
                    MOVEMENT_PURCHASE_RECEIVE,
                    reference_type=REFERENCE_PURCHASE_ORDER,
                    reference_id=po.id,
                    notes=f"Received {line.received_qty} {item.unit_name} via PO {po.po_number}",
                )

        po.status = target.value
        po.received_date = receive_day
        po.received_at = utcnow()
        po.payment_method = payment_method
        po.supplier_bank_account_id = bank_account_id
        po.subtotal = subtotal
        po.total_items = total_items

    logger.info(
        "po_received po_id=%s po_number=%s items=%s verified=%s subtotal=%s",
        po.id, po.po_number, len(po.items),
        sum(1 for i in po.items if i.is_verified), po.subtotal,
    )
    return po


def list_purchase_orders(
    *,
    status: str | None = None,
    supplier_id: int | None = None,
    search: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[PurchaseOrder], int]:
    """
    List purchase orders, newest first.

    ``search`` matches the PO number or the supplier name (case-insensitive).
    """
    query = db.session.query(PurchaseOrder)

    if status:
        try:
            query = query.filter(PurchaseOrder.status == PurchaseOrderStatus(status).value)
        except ValueError:
            raise InvalidInput(f"Unknown status {status!r}")
    if supplier_id:
        query = query.filter(PurchaseOrder.supplier_id == supplier_id)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.outerjoin(Supplier, Supplier.id == PurchaseOrder.supplier_id).filter(
            or_(PurchaseOrder.po_number.ilike(pattern), Supplier.name.ilike(pattern))
        )

    total = query.count()

    if offset < 0:
        offset = 0
    if limit < 1:
        limit = 1
    if limit > 500:
        limit = 500

    rows = (
        query.order_by(PurchaseOrder.date.desc(), PurchaseOrder.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return rows, total


def purchase_order_status_counts() -> dict[str, int]:
    """Number of orders per status; every status is present, zero if unused."""
    counts = {s.value: 0 for s in PurchaseOrderStatus}
    rows = (
        db.session.query(PurchaseOrder.status, func.count(PurchaseOrder.id))
        .group_by(PurchaseOrder.status)
        .all()
    )
    for status, count in rows:
        counts[status] = int(count)
    return counts
