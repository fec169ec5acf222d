"""決済開始 (POST /payment/initiate)"""

import json

import httpx
from redis.exceptions import ConnectionError as RedisConnectionError

from cart_service import queries
from cart_service.payments import new_order_reference


async def _orders(session_factory, user_id=None) -> list[dict]:
    async with session_factory() as session:
        return await queries.list_orders(session, user_id)


async def _fill_cart(client, catalog):
    await client.post("/cart", json={"userId": 1, "productId": catalog["a"]["id"], "quantity": 2})
    await client.post("/cart", json={"userId": 1, "productId": catalog["b"]["id"], "quantity": 1})


async def test_initiate_returns_provider_body_and_creates_pending_order(
    client, catalog, provider, session_factory,
):
    await _fill_cart(client, catalog)

    res = await client.post("/payment/initiate", json={"userId": 1})

    assert res.status_code == 200
    assert res.json() == {
        "status": "OK",
        "payment_id": "pay_0001",
        "payment_link": "https://provider.test/pay/0001",
    }

    orders = await _orders(session_factory)
    assert len(orders) == 1
    order = orders[0]
    assert order["userId"] == 1
    assert order["totalAmount"] == "25.50"
    assert order["paymentStatus"] == "Pending"
    assert order["paymentId"] == "pay_0001"
    assert order["currency"] == "INR"


async def test_provider_request_carries_amount_metadata_and_credentials(client, catalog, provider):
    await _fill_cart(client, catalog)

    await client.post("/payment/initiate", json={"userId": 1})

    request = provider.requests[-1]
    assert str(request.url) == "https://provider.test/api/v1/order/create"
    assert request.headers["x-client-id"] == "test-client-id"
    assert request.headers["x-client-secret"] == "test-client-secret"
    payload = provider.last_payload
    assert payload["orderAmount"] == 25.5
    assert payload["orderCurrency"] == "INR"
    assert payload["customerEmail"] == "user@example.com"
    assert payload["customerPhone"] == "9876543210"
    assert payload["orderId"].startswith("order_")


async def test_order_references_are_unique_per_initiation(client, catalog, provider):
    await _fill_cart(client, catalog)

    await client.post("/payment/initiate", json={"userId": 1})
    await client.post("/payment/initiate", json={"userId": 1})

    references = {json.loads(r.content)["orderId"] for r in provider.requests}
    assert len(references) == 2
    assert len({new_order_reference() for _ in range(100)}) == 100


async def test_order_created_event_is_published(client, catalog, fake_redis):
    await _fill_cart(client, catalog)

    await client.post("/payment/initiate", json={"userId": 1})

    channel, event = fake_redis.published[-1]
    assert channel == "payment_events"
    assert event["event_type"] == "OrderCreated"
    assert event["data"]["payment_id"] == "pay_0001"
    assert event["data"]["total_amount"] == "25.50"


async def test_total_is_frozen_at_initiation(client, catalog, session_factory):
    await _fill_cart(client, catalog)
    await client.post("/payment/initiate", json={"userId": 1})

    await client.put("/cart", json={"userId": 1, "productId": catalog["a"]["id"], "quantity": 9})

    orders = await _orders(session_factory)
    assert orders[0]["totalAmount"] == "25.50"


async def test_cart_is_not_modified_by_initiation(client, catalog):
    await _fill_cart(client, catalog)

    await client.post("/payment/initiate", json={"userId": 1})

    quantities = [line["quantity"] for line in (await client.get("/cart/1")).json()["cart"]]
    assert quantities == [2, 1]


async def test_empty_cart_cannot_be_paid(client, provider, session_factory):
    res = await client.post("/payment/initiate", json={"userId": 1})

    assert res.status_code == 400
    assert res.json()["code"] == "EMPTY_CART"
    assert provider.requests == []
    assert await _orders(session_factory) == []


async def test_provider_non_200_creates_no_order(client, catalog, provider, session_factory, fake_redis):
    await _fill_cart(client, catalog)
    provider.status_code = 502
    provider.body = {"message": "upstream error"}

    res = await client.post("/payment/initiate", json={"userId": 1})

    assert res.status_code == 400
    assert res.json() == {"error": "Payment initiation failed", "code": "PROVIDER_ERROR"}
    assert await _orders(session_factory) == []
    assert fake_redis.published == []


async def test_provider_connection_error_creates_no_order(client, catalog, provider, session_factory):
    await _fill_cart(client, catalog)
    provider.error = httpx.ConnectError("connection refused")

    res = await client.post("/payment/initiate", json={"userId": 1})

    assert res.status_code == 400
    assert res.json()["code"] == "PROVIDER_ERROR"
    assert await _orders(session_factory) == []


async def test_provider_timeout_is_distinguishable(client, catalog, provider, session_factory):
    await _fill_cart(client, catalog)
    provider.error = httpx.ReadTimeout("read timed out")

    res = await client.post("/payment/initiate", json={"userId": 1})

    assert res.status_code == 504
    assert res.json()["code"] == "PROVIDER_TIMEOUT"
    assert await _orders(session_factory) == []


async def test_provider_response_without_payment_id_creates_no_order(
    client, catalog, provider, session_factory,
):
    await _fill_cart(client, catalog)
    provider.body = {"status": "OK"}

    res = await client.post("/payment/initiate", json={"userId": 1})

    assert res.status_code == 400
    assert res.json()["code"] == "PROVIDER_ERROR"
    assert await _orders(session_factory) == []


async def test_initiate_requires_user_id(client):
    res = await client.post("/payment/initiate", json={})
    assert res.status_code == 400
    assert res.json()["code"] == "VALIDATION_ERROR"


async def test_initiate_succeeds_when_event_publish_fails(
    client, catalog, provider, session_factory, fake_redis,
):
    await _fill_cart(client, catalog)
    fake_redis.error = RedisConnectionError("Connection refused")

    res = await client.post("/payment/initiate", json={"userId": 1})

    assert res.status_code == 200
    assert res.json()["payment_id"] == "pay_0001"
    orders = await _orders(session_factory)
    assert [o["paymentStatus"] for o in orders] == ["Pending"]
    assert fake_redis.published == []
