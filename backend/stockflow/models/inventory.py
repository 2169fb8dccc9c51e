from __future__ import annotations

from ..extensions import db
from stockflow.time_utils import to_utc_z


MOVEMENT_PURCHASE_RECEIVE = "purchase_receive"
MOVEMENT_SALE = "sale"
MOVEMENT_ADJUSTMENT = "adjustment"
MOVEMENT_TYPES = (MOVEMENT_PURCHASE_RECEIVE, MOVEMENT_SALE, MOVEMENT_ADJUSTMENT)

REFERENCE_PURCHASE_ORDER = "purchase_order"
REFERENCE_SALES_TRANSACTION = "sales_transaction"


class StockLedgerEntry(db.Model):
    """
    Append-only stock movement.

    INVARIANTS:
    - Rows are never updated or deleted.
    - quantity is a signed delta in the product's base unit.
    - SUM(quantity) per variant == ProductVariant.current_stock.
    - Written only by the stock ledger service, inside the same DB
      transaction as the document that caused it.
    """
    __tablename__ = "stock_ledger_entries"
    __table_args__ = (
        db.Index("ix_stock_ledger_reference", "reference_type", "reference_id"),
        db.CheckConstraint("quantity <> 0", name="ck_stock_ledger_quantity_non_zero"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False, index=True)
    movement_type = db.Column(db.String(32), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    variant = db.relationship("ProductVariant", backref=db.backref("ledger_entries", lazy="dynamic"))

    def __repr__(self) -> str:
        return (
            f"<StockLedgerEntry id={self.id} variant_id={self.variant_id} "
            f"type={self.movement_type} qty={self.quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "variant_id": self.variant_id,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
