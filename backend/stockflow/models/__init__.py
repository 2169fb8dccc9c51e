from .catalog import (
    Category,
    Supplier,
    SupplierBankAccount,
    Product,
    ProductUnit,
    ProductVariant,
    VariantAttribute,
    VariantPricingTier,
)
from .inventory import StockLedgerEntry
from .purchasing import PurchaseOrder, PurchaseOrderItem
from .sales import SalesTransaction, SalesTransactionItem
from .documents import DocumentSequence

__all__ = [
    'Category', 'Supplier', 'SupplierBankAccount',
    'Product', 'ProductUnit', 'ProductVariant', 'VariantAttribute', 'VariantPricingTier',
    'StockLedgerEntry',
    'PurchaseOrder', 'PurchaseOrderItem',
    'SalesTransaction', 'SalesTransactionItem',
    'DocumentSequence',
]
