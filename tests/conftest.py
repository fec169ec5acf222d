"""
テスト用フィクスチャ

- テストごとに新しい SQLite ファイル (aiosqlite)
- 決済プロバイダーは httpx.MockTransport で差し替え
- Redis Pub/Sub は発行内容を記録するだけの代替オブジェクト
- lifespan を実行してからアプリに ASGITransport で接続する
"""

import json
from decimal import Decimal

import httpx
import pytest

from cart_service import commands
from cart_service.config import Settings
from cart_service.main import create_app
from cart_service.webhook import compute_signature

WEBHOOK_SECRET = "test-webhook-secret"


class RecordingRedis:
    """
    publish された (channel, event) を記録する。

    error を設定すると publish がその例外を送出する。
    """

    def __init__(self) -> None:
        self.published: list[tuple[str, dict]] = []
        self.error: Exception | None = None

    async def publish(self, channel: str, message: str) -> int:
        if self.error is not None:
            raise self.error
        self.published.append((channel, json.loads(message)))
        return 0

    async def aclose(self) -> None:
        pass

    def event_types(self) -> list[str]:
        return [event["event_type"] for _, event in self.published]


class FakeProvider:
    """
    決済プロバイダーの注文作成 API。

    error を設定するとその例外を送出し、status_code / body で応答を変えられる。
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.error: Exception | None = None
        self.status_code = 200
        self.body: object | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        body = self.body
        if body is None:
            n = len(self.requests)
            body = {
                "status": "OK",
                "payment_id": f"pay_{n:04d}",
                "payment_link": f"https://provider.test/pay/{n:04d}",
            }
        return httpx.Response(self.status_code, json=body)

    @property
    def last_payload(self) -> dict:
        return json.loads(self.requests[-1].content)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'cart.db'}",
        provider_url="https://provider.test/api/v1/order/create",
        provider_client_id="test-client-id",
        provider_client_secret="test-client-secret",
        provider_timeout_seconds=2.0,
        webhook_secret=WEBHOOK_SECRET,
        log_level="DEBUG",
    )


@pytest.fixture
def fake_redis() -> RecordingRedis:
    return RecordingRedis()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
async def app(settings, fake_redis, provider):
    async with httpx.AsyncClient(transport=httpx.MockTransport(provider)) as http_client:
        application = create_app(settings, redis=fake_redis, http_client=http_client)
        async with application.router.lifespan_context(application):
            yield application


@pytest.fixture
async def client(app):
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c


@pytest.fixture
def session_factory(app):
    return app.state.session_factory


@pytest.fixture
async def catalog(session_factory) -> dict:
    """Product A (10.00) と Product B (5.50)"""
    async with session_factory() as session:
        product_a = await commands.create_product(session, "Product A", Decimal("10.00"), 50)
        product_b = await commands.create_product(session, "Product B", Decimal("5.50"), 20)
    return {"a": product_a, "b": product_b}


@pytest.fixture
def post_webhook(client):
    """正しい署名付きで Webhook を送る"""

    async def _post(body: dict, secret: str = WEBHOOK_SECRET) -> httpx.Response:
        payload = json.dumps(body).encode()
        return await client.post(
            "/payment/webhook",
            content=payload,
            headers={
                "content-type": "application/json",
                "x-webhook-signature": compute_signature(payload, secret),
            },
        )

    return _post
