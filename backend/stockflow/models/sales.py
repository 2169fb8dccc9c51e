from __future__ import annotations

from ..extensions import db
from ..money import money_str
from stockflow.time_utils import to_utc_z


class SalesTransaction(db.Model):
    """
    Completed point-of-sale checkout.

    Created atomically with its items and its ledger entries; never mutated
    afterwards.
    """
    __tablename__ = "sales_transactions"
    __table_args__ = (
        db.CheckConstraint("payment_method IN ('cash', 'card', 'qris')", name="ck_sales_transactions_payment"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_number = db.Column(db.String(32), nullable=False, unique=True, index=True)
    date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    subtotal = db.Column(db.Numeric(14, 2), nullable=False)
    grand_total = db.Column(db.Numeric(14, 2), nullable=False)
    total_items = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(20), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    items = db.relationship(
        "SalesTransactionItem",
        back_populates="transaction",
        lazy=True,
        order_by="SalesTransactionItem.id",
    )

    def __repr__(self) -> str:
        return f"<SalesTransaction id={self.id} number={self.transaction_number!r}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "transaction_number": self.transaction_number,
            "date": to_utc_z(self.date),
            "subtotal": money_str(self.subtotal),
            "grand_total": money_str(self.grand_total),
            "total_items": self.total_items,
            "payment_method": self.payment_method,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SalesTransactionItem(db.Model):
    __tablename__ = "sales_transaction_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sales_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("sales_transactions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False, index=True)
    unit_id = db.Column(db.Integer, db.ForeignKey("product_units.id"), nullable=False)

    product_name = db.Column(db.String(255), nullable=False)
    variant_label = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=True)
    unit_name = db.Column(db.String(64), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    base_qty = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(14, 2), nullable=False)
    total_price = db.Column(db.Numeric(14, 2), nullable=False)

    transaction = db.relationship("SalesTransaction", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "unit_id": self.unit_id,
            "product_name": self.product_name,
            "variant_label": self.variant_label,
            "sku": self.sku,
            "unit_name": self.unit_name,
            "quantity": self.quantity,
            "base_qty": self.base_qty,
            "unit_price": money_str(self.unit_price),
            "total_price": money_str(self.total_price),
        }
