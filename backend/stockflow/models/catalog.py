from __future__ import annotations

from ..extensions import db
from ..money import money_str, decimal_str
from stockflow.time_utils import to_utc_z


PRICE_SETTINGS = ("fixed", "markup")
PRODUCT_STATUSES = ("active", "inactive")


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


class Supplier(db.Model):
    """
    Supplier master data.

    Maintained by the master-data layer; purchase orders only read it to
    validate references and payment destinations.
    """
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    address = db.Column(db.Text, nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    bank_accounts = db.relationship(
        "SupplierBankAccount",
        back_populates="supplier",
        lazy=True,
        order_by="SupplierBankAccount.id",
    )

    def __repr__(self) -> str:
        return f"<Supplier id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "email": self.email,
            "is_active": self.is_active,
            "bank_accounts": [a.to_dict() for a in self.bank_accounts],
            "created_at": to_utc_z(self.created_at),
        }


class SupplierBankAccount(db.Model):
    __tablename__ = "supplier_bank_accounts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    account_name = db.Column(db.String(255), nullable=False)
    account_number = db.Column(db.String(64), nullable=False)

    supplier = db.relationship("Supplier", back_populates="bank_accounts")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "account_name": self.account_name,
            "account_number": self.account_number,
        }


class Product(db.Model):
    """
    Product master data.

    A product owns its units of measure and its variants. Stock is tracked
    per variant, always in the product's base unit.

    Identity fields are immutable once a ledger entry references one of the
    product's variants; only name/description/status may change afterwards.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_status_name", "status", "name"),
        db.CheckConstraint("price_setting IN ('fixed', 'markup')", name="ck_products_price_setting"),
        db.CheckConstraint("status IN ('active', 'inactive')", name="ck_products_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    price_setting = db.Column(db.String(16), nullable=False, default="fixed")
    markup_type = db.Column(db.String(16), nullable=True)
    has_variants = db.Column(db.Boolean, nullable=False, default=False)
    status = db.Column(db.String(16), nullable=False, default="active")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    units = db.relationship(
        "ProductUnit",
        back_populates="product",
        lazy=True,
        order_by="ProductUnit.id",
        foreign_keys="ProductUnit.product_id",
    )
    variants = db.relationship(
        "ProductVariant",
        back_populates="product",
        lazy=True,
        order_by="ProductVariant.id",
    )

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category_id": self.category_id,
            "price_setting": self.price_setting,
            "markup_type": self.markup_type,
            "has_variants": self.has_variants,
            "status": self.status,
            "units": [u.to_dict() for u in self.units],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductUnit(db.Model):
    """
    Unit of measure for a product.

    Each unit converts to exactly one other unit of the same product by
    ``conversion_factor`` (1 dozen = 12 pcs). The base unit has
    ``is_base=True`` and no ``converts_to_id``. ``to_base_unit`` caches the
    product of the chain and is only ever recomputed by the unit resolver.
    """
    __tablename__ = "product_units"
    __table_args__ = (
        db.UniqueConstraint("product_id", "name", name="uq_product_units_product_name"),
        db.CheckConstraint("conversion_factor > 0", name="ck_product_units_factor_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    name = db.Column(db.String(64), nullable=False)
    conversion_factor = db.Column(db.Numeric(18, 6), nullable=False, default=1)
    converts_to_id = db.Column(db.Integer, db.ForeignKey("product_units.id"), nullable=True)
    to_base_unit = db.Column(db.Numeric(18, 6), nullable=False, default=1)
    is_base = db.Column(db.Boolean, nullable=False, default=False)

    product = db.relationship("Product", back_populates="units", foreign_keys=[product_id])
    converts_to = db.relationship("ProductUnit", remote_side=[id])

    def __repr__(self) -> str:
        return f"<ProductUnit id={self.id} name={self.name!r} product_id={self.product_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "conversion_factor": decimal_str(self.conversion_factor),
            "converts_to_id": self.converts_to_id,
            "to_base_unit": decimal_str(self.to_base_unit),
            "is_base": self.is_base,
        }


class ProductVariant(db.Model):
    """
    Stock-keeping unit of a product.

    ``current_stock`` is a materialized cache of SUM(stock_ledger.quantity)
    for this variant, in base units. Only the stock ledger service writes it.
    """
    __tablename__ = "product_variants"
    __table_args__ = (
        db.CheckConstraint("current_stock >= 0", name="ck_product_variants_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    sku = db.Column(db.String(64), nullable=True, unique=True)
    barcode = db.Column(db.String(64), nullable=True, index=True)
    current_stock = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", back_populates="variants")
    attributes = db.relationship(
        "VariantAttribute",
        back_populates="variant",
        lazy=True,
        order_by="VariantAttribute.id",
    )
    pricing_tiers = db.relationship(
        "VariantPricingTier",
        back_populates="variant",
        lazy=True,
        order_by="VariantPricingTier.min_qty",
    )

    @property
    def label(self) -> str:
        """Human-readable label from attribute values ("Red / XL"), or "Default"."""
        if not self.attributes:
            return "Default"
        return " / ".join(a.attribute_value for a in self.attributes)

    def __repr__(self) -> str:
        return f"<ProductVariant id={self.id} sku={self.sku!r} stock={self.current_stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "sku": self.sku,
            "barcode": self.barcode,
            "current_stock": self.current_stock,
            "label": self.label,
            "attributes": [a.to_dict() for a in self.attributes],
            "pricing_tiers": [t.to_dict() for t in self.pricing_tiers],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class VariantAttribute(db.Model):
    __tablename__ = "variant_attributes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False, index=True)
    attribute_name = db.Column(db.String(64), nullable=False)
    attribute_value = db.Column(db.String(128), nullable=False)

    variant = db.relationship("ProductVariant", back_populates="attributes")

    def to_dict(self) -> dict:
        return {
            "attribute_name": self.attribute_name,
            "attribute_value": self.attribute_value,
        }


class VariantPricingTier(db.Model):
    """Price per base unit that applies from ``min_qty`` base units upward."""
    __tablename__ = "variant_pricing_tiers"
    __table_args__ = (
        db.UniqueConstraint("variant_id", "min_qty", name="uq_variant_pricing_tiers_variant_min_qty"),
        db.CheckConstraint("min_qty >= 1", name="ck_variant_pricing_tiers_min_qty"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False, index=True)
    min_qty = db.Column(db.Integer, nullable=False)
    value = db.Column(db.Numeric(14, 2), nullable=False)

    variant = db.relationship("ProductVariant", back_populates="pricing_tiers")

    def to_dict(self) -> dict:
        return {"min_qty": self.min_qty, "value": money_str(self.value)}
