from datetime import timedelta
from decimal import Decimal

import pytest

from stockflow.errors import InsufficientStock, InvalidInput, InvalidPricingTiers, NotFound
from stockflow.models import DocumentSequence, Product, SalesTransaction, StockLedgerEntry, VariantPricingTier
from stockflow.models.inventory import MOVEMENT_SALE, REFERENCE_SALES_TRANSACTION
from stockflow.services import ledger_service, sales_service
from stockflow.time_utils import utcnow
from conftest import build_product


def _cart_line(product, variant, unit_id, quantity):
    return {
        "product_id": product.id,
        "variant_id": variant.id,
        "unit_id": unit_id,
        "quantity": quantity,
    }


def test_checkout_prices_by_base_quantity_tier(db_session, product, variant, units, add_stock):
    add_stock(variant.id, 1000)

    trx = sales_service.checkout([_cart_line(product, variant, units["pcs"], 150)], "cash")

    item = trx.items[0]
    assert item.base_qty == 150
    assert item.unit_price == Decimal("65000.00")
    assert item.total_price == Decimal("9750000.00")
    assert trx.grand_total == Decimal("9750000.00")
    assert ledger_service.get_variant_stock(variant.id) == 850


def test_checkout_unit_price_is_tier_value_times_multiplier(db_session, product, variant, units, add_stock):
    add_stock(variant.id, 1000)

    trx = sales_service.checkout([
        _cart_line(product, variant, units["dozen"], 2),
        _cart_line(product, variant, units["gross"], 1),
        _cart_line(product, variant, units["pcs"], 3),
    ], "qris")

    prices = [(i.unit_name, i.base_qty, i.unit_price, i.total_price) for i in trx.items]
    assert prices == [
        ("dozen", 24, Decimal("840000.00"), Decimal("1680000.00")),
        ("gross", 144, Decimal("9360000.00"), Decimal("9360000.00")),
        ("pcs", 3, Decimal("75000.00"), Decimal("225000.00")),
    ]
    assert trx.subtotal == Decimal("11265000.00")
    assert trx.total_items == 3
    assert ledger_service.get_variant_stock(variant.id) == 1000 - 24 - 144 - 3


def test_checkout_writes_one_sale_entry_per_line(db_session, product, variant, units, add_stock):
    add_stock(variant.id, 50)

    trx = sales_service.checkout([
        _cart_line(product, variant, units["pcs"], 2),
        _cart_line(product, variant, units["dozen"], 1),
    ], "card")

    entries = ledger_service.history_for_reference(REFERENCE_SALES_TRANSACTION, trx.id)
    assert [(e.movement_type, e.quantity) for e in entries] == [(MOVEMENT_SALE, -2), (MOVEMENT_SALE, -12)]
    assert trx.transaction_number == f"TRX-{utcnow().year}-000001"
    assert trx.payment_method == "card"
    assert ledger_service.verify_stock_consistency() == []


def test_insufficient_stock_leaves_everything_untouched(db_session, product, variant, units, add_stock):
    add_stock(variant.id, 5)

    with pytest.raises(InsufficientStock) as exc_info:
        sales_service.checkout([_cart_line(product, variant, units["pcs"], 6)], "cash")

    details = exc_info.value.details
    assert details["line"] == 0
    assert details["sku"] == "KOPI-001"
    assert details["available"] == 5
    assert details["requested"] == 6

    assert ledger_service.get_variant_stock(variant.id) == 5
    assert db_session.query(StockLedgerEntry).count() == 1
    assert db_session.query(SalesTransaction).count() == 0
    assert db_session.query(DocumentSequence).count() == 0


def test_stock_check_aggregates_lines_of_same_variant(db_session, product, variant, units, add_stock):
    add_stock(variant.id, 20)

    # 1 dozen + 9 pcs = 21 base units, each line alone would fit
    with pytest.raises(InsufficientStock) as exc_info:
        sales_service.checkout([
            _cart_line(product, variant, units["dozen"], 1),
            _cart_line(product, variant, units["pcs"], 9),
        ], "cash")

    assert exc_info.value.details["requested"] == 21
    assert ledger_service.get_variant_stock(variant.id) == 20


def test_failed_checkout_does_not_consume_number(db_session, product, variant, units, add_stock):
    add_stock(variant.id, 1)
    with pytest.raises(InsufficientStock):
        sales_service.checkout([_cart_line(product, variant, units["pcs"], 2)], "cash")

    trx = sales_service.checkout([_cart_line(product, variant, units["pcs"], 1)], "cash")
    assert trx.transaction_number.endswith("-000001")


@pytest.mark.parametrize("payment_method", [None, "", "bitcoin", "credit_card"])
def test_checkout_rejects_payment_method(db_session, product, variant, units, payment_method):
    with pytest.raises(InvalidInput):
        sales_service.checkout([_cart_line(product, variant, units["pcs"], 1)], payment_method)


def test_checkout_rejects_empty_cart(db_session):
    with pytest.raises(InvalidInput):
        sales_service.checkout([], "cash")


@pytest.mark.parametrize("quantity", [0, -1])
def test_checkout_rejects_non_positive_quantity(db_session, product, variant, units, quantity):
    with pytest.raises(InvalidInput):
        sales_service.checkout([_cart_line(product, variant, units["pcs"], quantity)], "cash")


def test_checkout_rejects_membership_violations(db_session, product, variant, units, add_stock):
    other = build_product(db_session, name="Teh Celup", sku="TEH-001")
    add_stock(variant.id, 10)

    with pytest.raises(InvalidInput):
        sales_service.checkout([_cart_line(other, variant, units["pcs"], 1)], "cash")
    with pytest.raises(InvalidInput):
        sales_service.checkout([_cart_line(product, variant, other.units[0].id, 1)], "cash")
    with pytest.raises(NotFound):
        sales_service.checkout([{**_cart_line(product, variant, units["pcs"], 1), "variant_id": 9999}], "cash")

    assert ledger_service.get_variant_stock(variant.id) == 10


def test_checkout_rejects_inactive_product(db_session, product, variant, units, add_stock):
    add_stock(variant.id, 10)
    db_session.query(Product).filter_by(id=product.id).update({"status": "inactive"})
    db_session.commit()

    with pytest.raises(InvalidInput):
        sales_service.checkout([_cart_line(product, variant, units["pcs"], 1)], "cash")


def test_checkout_with_broken_tiers_is_server_error(db_session, product, variant, units, add_stock):
    add_stock(variant.id, 10)
    db_session.query(VariantPricingTier).filter_by(variant_id=variant.id, min_qty=1).delete()
    db_session.commit()

    with pytest.raises(InvalidPricingTiers):
        sales_service.checkout([_cart_line(product, variant, units["pcs"], 1)], "cash")
    assert ledger_service.get_variant_stock(variant.id) == 10


def test_list_and_get_transactions(db_session, product, variant, units, add_stock):
    add_stock(variant.id, 100)
    cash = sales_service.checkout([_cart_line(product, variant, units["pcs"], 1)], "cash")
    qris = sales_service.checkout([_cart_line(product, variant, units["pcs"], 2)], "qris")

    rows, total = sales_service.list_transactions()
    assert total == 2
    assert [r.id for r in rows] == [qris.id, cash.id]

    rows, total = sales_service.list_transactions(payment_method="qris")
    assert [r.id for r in rows] == [qris.id]

    rows, total = sales_service.list_transactions(search="kopi")
    assert total == 2

    rows, total = sales_service.list_transactions(search=cash.transaction_number)
    assert [r.id for r in rows] == [cash.id]

    tomorrow = utcnow() + timedelta(days=1)
    rows, total = sales_service.list_transactions(date_from=tomorrow)
    assert total == 0

    assert sales_service.get_transaction(cash.id).transaction_number == cash.transaction_number
    with pytest.raises(NotFound):
        sales_service.get_transaction(9999)


def test_huge_quantity_is_insufficient_stock_not_a_price_error(db_session, product, variant, units, add_stock):
    add_stock(variant.id, 5)

    with pytest.raises(InsufficientStock) as exc_info:
        sales_service.checkout([_cart_line(product, variant, units["pcs"], 20_000_000)], "cash")

    assert exc_info.value.details["line"] == 0
    assert exc_info.value.details["available"] == 5
    assert exc_info.value.details["requested"] == 20_000_000
    assert ledger_service.get_variant_stock(variant.id) == 5


def test_line_total_beyond_money_range_is_invalid_input(db_session, product, variant, units, add_stock):
    add_stock(variant.id, 20_000_000)

    # 110000 gross at 65000 x 144 each overflows the money columns
    with pytest.raises(InvalidInput) as exc_info:
        sales_service.checkout([
            _cart_line(product, variant, units["pcs"], 1),
            _cart_line(product, variant, units["gross"], 110_000),
        ], "cash")

    assert exc_info.value.details["line"] == 1
    assert ledger_service.get_variant_stock(variant.id) == 20_000_000
    assert db_session.query(SalesTransaction).count() == 0


def test_date_only_upper_bound_includes_that_day(db_session, product, variant, units, add_stock):
    add_stock(variant.id, 10)
    trx = sales_service.checkout([_cart_line(product, variant, units["pcs"], 1)], "cash")
    today = trx.date.date()

    rows, total = sales_service.list_transactions(date_from=today.isoformat(), date_to=today.isoformat())
    assert total == 1
    assert [r.id for r in rows] == [trx.id]

    rows, total = sales_service.list_transactions(date_from=today, date_to=today)
    assert total == 1

    yesterday = (today - timedelta(days=1)).isoformat()
    rows, total = sales_service.list_transactions(date_to=yesterday)
    assert total == 0


def test_datetime_upper_bound_stays_exclusive(db_session, product, variant, units, add_stock):
    add_stock(variant.id, 10)
    trx = sales_service.checkout([_cart_line(product, variant, units["pcs"], 1)], "cash")

    rows, total = sales_service.list_transactions(date_to=trx.date)
    assert total == 0
    rows, total = sales_service.list_transactions(date_to=(trx.date + timedelta(seconds=1)).isoformat())
    assert total == 1


def test_invalid_date_filter_is_rejected(db_session):
    with pytest.raises(InvalidInput):
        sales_service.list_transactions(date_to="2026-13-45")
