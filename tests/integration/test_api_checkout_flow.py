import pytest

from rimaqr.payments import views as payments_views

MB = 1024 * 1024

ADDRESS = {
    "recipient_name": "Ayse Yilmaz",
    "recipient_phone": "05551112233",
    "shipping_address": "Bagdat Cd. 12",
    "city": "Istanbul",
    "district": "Kadikoy",
}


@pytest.fixture
def seeded(fake_db):
    fake_db.add_package("basic", "Basic", 49900, 500 * MB)
    fake_db.add_product("frame", "Cadre photo", 12000)
    fake_db.add_product("plate", "Plaque gravée", 8000, customization_required=True, customization_prompt="Texte à graver ?")
    fake_db.add_event(storage_limit_bytes=100 * MB)
    return fake_db


def test_cart_quote(client, seeded):
    res = client.post("/api/v1/cart/quote", json={
        "package_id": "basic",
        "items": [{"product_id": "frame", "quantity": 2}, {"product_id": "plate", "customization_text": "A & M"}],
    })
    assert res.status_code == 200
    body = res.json()
    assert body["items_total_cents"] == 2 * 12000 + 8000
    assert body["total_cents"] == 2 * 12000 + 8000 + 49900


def test_cart_quote_missing_customization_is_422(client, seeded):
    res = client.post("/api/v1/cart/quote", json={"items": [{"product_id": "plate"}]})
    assert res.status_code == 422
    body = res.json()
    assert body["field"] == "customization_text"
    assert body["detail"] == "Texte à graver ?"
    assert body["retryable"] is False


def test_full_checkout_flow(client, seeded, fake_gateway):
    res = client.post("/api/v1/orders", json={"package_id": "basic", "items": [{"product_id": "frame"}]})
    assert res.status_code == 201
    assert res.json()["step"] == "order_created"
    assert seeded.purchases[0]["total_amount_cents"] == 12000 + 49900

    res = client.put("/api/v1/orders/current/address", json=dict(ADDRESS, city=""))
    assert res.status_code == 422
    assert res.json()["field"] == "city"

    res = client.put("/api/v1/orders/current/address", json=ADDRESS)
    assert res.status_code == 200
    assert res.json()["step"] == "address_captured"

    res = client.post("/api/v1/orders/current/payment-token")
    assert res.status_code == 200
    body = res.json()
    assert body["step"] == "gateway_handoff"
    assert body["payment_url"] == "https://gateway.test/pay/tok-1"
    assert seeded.purchases[0]["gateway_correlation_id"] == body["correlation_id"]
    assert fake_gateway.requests[0].buyer_email == "test@example.com"

    assert client.get("/api/v1/orders/current").json()["step"] == "payment_token_issued"

    res = client.post("/api/v1/orders/current/navigation", json={"url": "https://gateway.test/pay/3ds"})
    assert res.json()["branch"] is None

    res = client.post("/api/v1/orders/current/navigation", json={"url": "https://rimaqr.test/payment/success"})
    body = res.json()
    assert body["branch"] == "success"
    assert body["provisional"] is True
    assert body["entitlement"]["has_active_package"] is False

    # le callback de confiance arrive ensuite
    seeded.update_purchase_by_correlation(seeded.purchases[0]["gateway_correlation_id"], {"status": "completed", "payment_status": "paid"})
    ent = client.get("/api/v1/entitlement").json()
    assert ent["has_active_package"] is True
    assert ent["effective_storage_limit"] == 500 * MB
    assert ent["storage"]["limit_label"] == "500 MB"


def test_gateway_error_is_502_retryable(client, seeded, fake_gateway):
    client.post("/api/v1/orders", json={"package_id": "basic"})
    client.put("/api/v1/orders/current/address", json=ADDRESS)
    fake_gateway.fail_next("Gateway timeout")
    res = client.post("/api/v1/orders/current/payment-token")
    assert res.status_code == 502
    assert res.json()["retryable"] is True
    assert client.post("/api/v1/orders/current/payment-token").status_code == 200


def test_cancel_pending_order(client, seeded, fake_gateway):
    client.post("/api/v1/orders", json={"package_id": "basic"})
    res = client.delete("/api/v1/orders/current")
    assert res.status_code == 200
    assert res.json()["step"] == "no_order"
    assert res.json()["entitlement"]["has_active_package"] is False
    assert seeded.purchases == []


def test_cancel_without_order_is_409(client, seeded, fake_gateway):
    res = client.delete("/api/v1/orders/current")
    assert res.status_code == 409
    assert res.json()["code"] == "INVALID_TRANSITION"


def test_order_write_failure_is_503(client, seeded, fake_gateway):
    seeded.fail("insert_purchase")
    res = client.post("/api/v1/orders", json={"package_id": "basic"})
    assert res.status_code == 503
    assert res.json()["retryable"] is True


def test_order_history(client, seeded, fake_gateway):
    event_id = seeded.events[0]["id"]
    seeded.add_purchase(event_id, "basic", status="completed", payment_status="paid")
    seeded.add_purchase(event_id, None)
    orders = client.get("/api/v1/orders").json()["orders"]
    assert len(orders) == 2
    assert orders[1]["packages"]["name"] == "Basic"


def test_paying_first_session_after_token_retry(client, seeded, fake_gateway, monkeypatch):
    client.post("/api/v1/orders", json={"package_id": "basic"})
    client.put("/api/v1/orders/current/address", json=ADDRESS)
    first = client.post("/api/v1/orders/current/payment-token").json()["correlation_id"]
    second = client.post("/api/v1/orders/current/payment-token").json()["correlation_id"]
    purchase = seeded.purchases[0]
    assert purchase["gateway_correlation_id"] == second != first

    async def fake_parse_event(request):
        return {"type": "checkout.session.completed", "data": {"object": {
            "id": first, "payment_status": "paid", "client_reference_id": purchase["id"],
            "metadata": {"purchase_id": purchase["id"]},
        }}}

    monkeypatch.setattr(payments_views.stripe_client, "parse_event", fake_parse_event)
    res = client.post("/api/v1/payments/webhook", content=b"{}")
    assert res.json() == {"status": "ok", "updated": 1}
    assert client.get("/api/v1/entitlement").json()["has_active_package"] is True
    assert client.get("/api/v1/orders/current").json()["step"] == "payment_confirmed"
