from __future__ import annotations

from ..extensions import db
from ..money import money_str
from stockflow.time_utils import to_utc_z, to_iso_date


class PurchaseOrder(db.Model):
    """
    Supplier purchase order.

    LIFECYCLE (see purchase_order_service.PurchaseOrderStatus):
    draft -> sent -> received, draft|sent -> cancelled.

    - draft: editable, deletable, no stock effect
    - sent: locked for editing; only the receive operation may change it
    - received: terminal; receiving fields populated, stock posted
    - cancelled: terminal; never touched stock
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('draft', 'sent', 'received', 'cancelled')",
            name="ck_purchase_orders_status",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    po_number = db.Column(db.String(32), nullable=False, unique=True, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="draft", index=True)
    notes = db.Column(db.Text, nullable=True)

    # Receiving fields (null until received)
    received_date = db.Column(db.Date, nullable=True)
    payment_method = db.Column(db.String(20), nullable=True)
    supplier_bank_account_id = db.Column(
        db.Integer, db.ForeignKey("supplier_bank_accounts.id"), nullable=True
    )

    subtotal = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_items = db.Column(db.Integer, nullable=False, default=0)

    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    supplier = db.relationship("Supplier", backref=db.backref("purchase_orders", lazy=True))
    supplier_bank_account = db.relationship("SupplierBankAccount")
    items = db.relationship(
        "PurchaseOrderItem",
        back_populates="purchase_order",
        lazy=True,
        order_by="PurchaseOrderItem.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<PurchaseOrder id={self.id} po_number={self.po_number!r} status={self.status}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "po_number": self.po_number,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "date": to_iso_date(self.date),
            "status": self.status,
            "notes": self.notes,
            "received_date": to_iso_date(self.received_date),
            "payment_method": self.payment_method,
            "supplier_bank_account_id": self.supplier_bank_account_id,
            "subtotal": money_str(self.subtotal),
            "total_items": self.total_items,
            "sent_at": to_utc_z(self.sent_at),
            "received_at": to_utc_z(self.received_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class PurchaseOrderItem(db.Model):
    """
    Purchase order line.

    Product/variant/unit names and SKU are snapshots taken when the line was
    written, so historical orders stay readable after master data changes.
    Quantities and prices are in the ordered unit.
    """
    __tablename__ = "purchase_order_items"
    __table_args__ = (
        db.CheckConstraint("ordered_qty >= 0", name="ck_po_items_ordered_qty"),
        db.CheckConstraint("price >= 0", name="ck_po_items_price"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False, index=True)
    unit_id = db.Column(db.Integer, db.ForeignKey("product_units.id"), nullable=False)

    product_name = db.Column(db.String(255), nullable=False)
    variant_label = db.Column(db.String(255), nullable=False)
    unit_name = db.Column(db.String(64), nullable=False)
    sku = db.Column(db.String(64), nullable=True)
    current_stock = db.Column(db.Integer, nullable=False, default=0)

    ordered_qty = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    received_qty = db.Column(db.Integer, nullable=True)
    received_price = db.Column(db.Numeric(14, 2), nullable=True)
    is_verified = db.Column(db.Boolean, nullable=True)

    purchase_order = db.relationship("PurchaseOrder", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "unit_id": self.unit_id,
            "product_name": self.product_name,
            "variant_label": self.variant_label,
            "unit_name": self.unit_name,
            "sku": self.sku,
            "current_stock": self.current_stock,
            "ordered_qty": self.ordered_qty,
            "price": money_str(self.price),
            "received_qty": self.received_qty,
            "received_price": money_str(self.received_price),
            "is_verified": self.is_verified,
        }
