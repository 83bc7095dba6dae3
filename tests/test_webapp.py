import asyncio
from dataclasses import replace
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
from fastapi.testclient import TestClient

from quickmarket import QuickMarketAPIClient
from storage import init_db
from webapp import app as webapp

from conftest import BASE_URL, make_product

CHECKOUT_FORM = {
    "deliveryType": "home",
    "homeAddress": "12 Herbert Macaulay Way, Yaba",
    "date": "2026-10-22",
    "timeSlot": "morning",
    "name": "Ada",
    "phone": "08030000000",
    "email": "ada@example.com",
}


@pytest.fixture
def api(backend):
    client = QuickMarketAPIClient(BASE_URL, transport=httpx.MockTransport(backend.handler))
    yield client
    asyncio.run(client.aclose())


@pytest.fixture
def http(api, db_path, monkeypatch):
    asyncio.run(init_db(db_path))
    monkeypatch.setattr(webapp, "api_client", api)
    monkeypatch.setattr(webapp, "db_path", str(db_path))
    monkeypatch.setattr(
        webapp, "settings", replace(webapp.settings, payment_settle_delay=0, payment_display_delay=0)
    )
    return TestClient(webapp.app)


def add_to_cart(http, quantity=2):
    response = http.post("/api/cart/items", json={"product": make_product().to_dict(), "quantity": quantity})
    assert response.status_code == 200
    return response.json()


def start_checkout(http, backend):
    backend.add("POST", "/api/orders", {"success": True, "data": {"id": "ORD9"}})
    add_to_cart(http)
    response = http.post("/checkout", data=CHECKOUT_FORM, follow_redirects=False)
    assert response.status_code == 303
    return response.headers["location"]


def test_health(http):
    assert http.get("/health").json() == {"status": "ok", "api": True}


def test_session_cookie_is_issued(http):
    response = http.get("/cart")
    assert response.status_code == 200
    assert "qm_session" in response.cookies
    assert "Your cart is empty." in response.text


def test_add_to_cart(http):
    assert add_to_cart(http) == {"success": True, "itemCount": 1, "totalWeight": 2, "subtotal": 2400}
    assert "Ofada Rice" in http.get("/cart").text


def test_add_to_cart_invalid_quantity(http):
    response = http.post("/api/cart/items", json={"product": make_product().to_dict(), "quantity": 0})
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_cart_update_to_zero_removes(http):
    add_to_cart(http)
    response = http.post("/cart/update", data={"productId": "rice-50", "quantity": "0"})
    assert "Your cart is empty." in response.text
    assert "Item Removed" in response.text


def test_checkout_with_empty_cart_redirects(http):
    response = http.get("/checkout", follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"] == "/cart"


def test_checkout_requires_address(http):
    add_to_cart(http)
    response = http.post("/checkout", data=dict(CHECKOUT_FORM, homeAddress=""), follow_redirects=False)
    assert response.status_code == 400
    assert "Delivery Address Required" in response.text


def test_checkout_rejects_unknown_packaging(http, backend):
    add_to_cart(http)
    response = http.post("/checkout", data=dict(CHECKOUT_FORM, packagingType="crate"), follow_redirects=False)

    assert response.status_code == 400
    assert "Invalid Packaging" in response.text
    assert backend.calls == []


def test_checkout_redirects_to_payment(http, backend):
    location = start_checkout(http, backend)

    url = urlsplit(location)
    params = parse_qs(url.query)
    assert url.path == "/payment"
    assert params["orderId"] == ["ORD9"]
    assert params["amount"] == ["3200"]
    assert params["reference"][0].endswith("_ORD9")

    page = http.get(location)
    assert "Pay ₦3,200" in page.text


def test_payment_page_without_params(http, backend):
    response = http.get("/payment?orderId=ORD9&reference=R", follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"] == "/cart"
    assert backend.calls == []


def test_successful_payment_flow(http, backend):
    location = start_checkout(http, backend)
    backend.add("POST", "/api/payments/paystack/init", {"success": True, "data": {"reference": "R"}})
    backend.add("POST", "/api/payments/paystack/verify", {"success": True, "data": {"status": "success"}})

    query = urlsplit(location).query
    response = http.post(f"/payment/pay?{query}", follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"].startswith("/payment/success?orderId=ORD9&reference=")

    success = http.get(response.headers["location"])
    assert "Payment Successful!" in success.text
    assert "Ofada Rice" in success.text
    assert "Your cart is empty." in http.get("/cart").text


def test_failed_payment_flow(http, backend):
    location = start_checkout(http, backend)
    backend.add("POST", "/api/payments/paystack/init", {"success": True, "data": {"reference": "R"}})
    backend.add(
        "POST",
        "/api/payments/paystack/verify",
        {"success": False, "data": {"status": "failed", "message": "Declined by bank"}},
    )

    query = urlsplit(location).query
    response = http.post(f"/payment/pay?{query}", follow_redirects=False)
    failed_url = response.headers["location"]
    assert failed_url.startswith("/payment/failed?")

    page = http.get(failed_url)
    assert "Network Error" in page.text
    assert "Declined by bank" in page.text
    assert "Ofada Rice" in http.get("/cart").text


def test_payment_init_failure_renders_retry(http, backend):
    location = start_checkout(http, backend)
    backend.add("POST", "/api/payments/paystack/init", {"success": False, "error": "Gateway down"})

    query = urlsplit(location).query
    response = http.post(f"/payment/pay?{query}", follow_redirects=False)
    assert response.status_code == 200
    assert "Retry Payment" in response.text
    assert "Payment Failed" in response.text


def test_result_pages_without_params(http):
    success = http.get("/payment/success", follow_redirects=False)
    failed = http.get("/payment/failed?orderId=O", follow_redirects=False)
    assert success.headers["location"] == "/dashboard"
    assert failed.headers["location"] == "/cart"


def test_order_tracking_page(http, backend):
    backend.add(
        "GET",
        "/api/orders/ORD9/tracking",
        {
            "success": True,
            "data": {
                "orderId": "ORD9",
                "status": "out_for_delivery",
                "trackingUpdates": [],
                "deliveryPartner": {"id": "dp1", "name": "Tunde", "phone": "0803", "rating": 4.5},
            },
        },
    )
    page = http.get("/orders/ORD9/track")
    assert page.status_code == 200
    assert "out_for_delivery" in page.text
    assert "Tunde" in page.text


def test_search_suggestions_endpoint(http, backend):
    backend.add("GET", "/api/products/search-suggestions", {"suggestions": [{"text": "Rice", "type": "product"}]})
    response = http.get("/api/search-suggestions", params={"q": "ri"})
    assert response.json() == {"suggestions": [{"text": "Rice", "type": "product", "count": None}]}


def test_missing_api_client_is_bad_gateway(http, monkeypatch):
    monkeypatch.setattr(webapp, "api_client", None)
    response = http.get("/orders/ORD9/track")
    assert response.status_code == 502
