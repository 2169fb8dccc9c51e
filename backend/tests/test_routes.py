"""
HTTP surface tests: JSON payloads and error mapping.
"""

import pytest

from stockflow.services import ledger_service, purchase_order_service, sales_service


def _create_po(client, supplier, product, variant, units, qty=10, price="100"):
    return client.post("/api/purchase-orders", json={
        "supplier_id": supplier.id,
        "date": "2026-04-01",
        "items": [{
            "product_id": product.id,
            "variant_id": variant.id,
            "unit_id": units["dozen"],
            "ordered_qty": qty,
            "price": price,
        }],
    })


def test_purchase_order_flow_over_http(client, supplier, product, variant, units):
    resp = _create_po(client, supplier, product, variant, units)
    assert resp.status_code == 201
    po = resp.get_json()
    assert po["status"] == "draft"
    assert po["subtotal"] == "1000.00"
    assert po["items"][0]["unit_name"] == "dozen"

    resp = client.post(f"/api/purchase-orders/{po['id']}/send")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "sent"

    item_id = po["items"][0]["id"]
    resp = client.post(f"/api/purchase-orders/{po['id']}/receive", json={
        "payment_method": "cash",
        "received_date": "2026-04-03",
        "items": [{"item_id": item_id, "received_qty": 10, "received_price": "100"}],
    })
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "received"
    assert body["items"][0]["is_verified"] is True

    resp = client.get(f"/api/inventory/variants/{variant.id}/stock")
    assert resp.get_json() == {"variant_id": variant.id, "current_stock": 120}

    resp = client.get(f"/api/inventory/variants/{variant.id}/ledger")
    ledger = resp.get_json()
    assert ledger["balance"] == 120
    assert ledger["entries"][0]["movement_type"] == "purchase_receive"
    assert ledger["entries"][0]["reference_id"] == po["id"]


def test_receive_draft_maps_to_409(client, supplier, product, variant, units):
    po = _create_po(client, supplier, product, variant, units).get_json()
    resp = client.post(f"/api/purchase-orders/{po['id']}/receive", json={
        "payment_method": "cash",
        "items": [{"item_id": po["items"][0]["id"], "received_qty": 10, "received_price": "100"}],
    })
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "INVALID_STATUS_TRANSITION"


def test_send_with_zero_quantity_maps_to_400(client, supplier, product, variant, units):
    po = _create_po(client, supplier, product, variant, units, qty=0).get_json()
    resp = client.post(f"/api/purchase-orders/{po['id']}/send")
    assert resp.status_code == 400
    assert resp.get_json()["code"] == "VALIDATION_ERROR"


def test_update_list_and_delete(client, supplier, product, variant, units):
    po = _create_po(client, supplier, product, variant, units).get_json()

    resp = client.put(f"/api/purchase-orders/{po['id']}", json={"notes": "call before delivery"})
    assert resp.status_code == 200
    assert resp.get_json()["notes"] == "call before delivery"

    resp = client.get("/api/purchase-orders?status=draft")
    body = resp.get_json()
    assert body["count"] == 1
    assert body["status_counts"]["draft"] == 1
    assert "items" not in body["items"][0]

    resp = client.delete(f"/api/purchase-orders/{po['id']}")
    assert resp.status_code == 200
    assert client.get(f"/api/purchase-orders/{po['id']}").status_code == 404


def test_cancel_over_http(client, supplier, product, variant, units):
    po = _create_po(client, supplier, product, variant, units).get_json()
    resp = client.post(f"/api/purchase-orders/{po['id']}/cancel")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "cancelled"

    resp = client.post(f"/api/purchase-orders/{po['id']}/cancel")
    assert resp.status_code == 409


def test_create_requires_supplier(client, db_session):
    resp = client.post("/api/purchase-orders", json={"items": []})
    assert resp.status_code == 400


def test_checkout_over_http(client, product, variant, units, add_stock):
    add_stock(variant.id, 200)

    resp = client.post("/api/sales/checkout", json={
        "payment_method": "cash",
        "items": [{
            "product_id": product.id,
            "variant_id": variant.id,
            "unit_id": units["pcs"],
            "quantity": 150,
        }],
    })
    assert resp.status_code == 201
    trx = resp.get_json()
    assert trx["items"][0]["unit_price"] == "65000.00"
    assert trx["grand_total"] == "9750000.00"

    assert client.get(f"/api/sales/{trx['id']}").get_json()["transaction_number"] == trx["transaction_number"]
    listing = client.get("/api/sales?payment_method=cash").get_json()
    assert listing["count"] == 1


def test_checkout_insufficient_stock_maps_to_409(client, product, variant, units, add_stock):
    add_stock(variant.id, 5)

    resp = client.post("/api/sales/checkout", json={
        "payment_method": "cash",
        "items": [{
            "product_id": product.id,
            "variant_id": variant.id,
            "unit_id": units["pcs"],
            "quantity": 6,
        }],
    })
    assert resp.status_code == 409
    body = resp.get_json()
    assert body["code"] == "INSUFFICIENT_STOCK"
    assert body["details"]["available"] == 5
    assert body["details"]["requested"] == 6


def test_unknown_variant_stock_is_404(client, db_session):
    resp = client.get("/api/inventory/variants/12345/stock")
    assert resp.status_code == 404
    assert resp.get_json()["code"] == "NOT_FOUND"


def test_huge_checkout_quantity_maps_to_409(client, product, variant, units, add_stock):
    add_stock(variant.id, 5)

    resp = client.post("/api/sales/checkout", json={
        "payment_method": "cash",
        "items": [{
            "product_id": product.id,
            "variant_id": variant.id,
            "unit_id": units["pcs"],
            "quantity": 20_000_000,
        }],
    })
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "INSUFFICIENT_STOCK"


def test_sales_listing_date_to_includes_whole_day(client, product, variant, units, add_stock):
    add_stock(variant.id, 5)
    trx = client.post("/api/sales/checkout", json={
        "payment_method": "qris",
        "items": [{"product_id": product.id, "variant_id": variant.id, "unit_id": units["pcs"], "quantity": 1}],
    }).get_json()
    day = trx["date"][:10]

    listing = client.get(f"/api/sales?date_from={day}&date_to={day}").get_json()
    assert listing["count"] == 1


@pytest.mark.parametrize("url, module, name", [
    ("/api/sales", sales_service, "list_transactions"),
    ("/api/sales/1", sales_service, "get_transaction"),
    ("/api/purchase-orders", purchase_order_service, "list_purchase_orders"),
    ("/api/purchase-orders/1", purchase_order_service, "get_purchase_order"),
    ("/api/inventory/variants/1/stock", ledger_service, "get_variant_stock"),
    ("/api/inventory/variants/1/ledger", ledger_service, "history_for"),
])
def test_unexpected_read_errors_map_to_500(client, db_session, monkeypatch, url, module, name):
    def broken(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(module, name, broken)

    resp = client.get(url)
    assert resp.status_code == 500
    assert resp.get_json()["code"] == "INTERNAL_ERROR"
