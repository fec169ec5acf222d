"""
Cart Service — FastAPI エントリーポイント

カート操作 (Command / Query) と決済開始、決済 Webhook を公開する。

  ┌────────┐  /cart, /payment/initiate   ┌──────────────┐   order/create   ┌──────────┐
  │ Client │ ──────────────────────────▶ │ Cart Service │ ───────────────▶ │ Provider │
  └────────┘                             │              │ ◀─────────────── │          │
                                         └──────┬───────┘ /payment/webhook └──────────┘
                                                │ payment_events
                                                ▼
                                          Redis Pub/Sub

設定は create_app() に渡した Settings だけを参照する。
起動:  uvicorn cart_service.main:create_app --factory
"""

import argparse
import logging
from contextlib import asynccontextmanager

import httpx
import redis.asyncio as aioredis
import uvicorn
from fastapi import APIRouter, FastAPI, HTTPException, Path, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import commands, queries
from .config import Settings
from .errors import CartServiceError
from .money import format_amount
from .payment_gateway import PaymentProviderClient
from .payments import PaymentInitiator
from .schema import INTEGER_MAX, create_schema
from .seed import seed_demo_catalog
from .webhook import SIGNATURE_HEADER, reconcile_notification

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


# ── Request Models ───────────────────────────────


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CartItemRequest(_CamelModel):
    user_id: int = Field(alias="userId", gt=0, le=INTEGER_MAX)
    product_id: int = Field(alias="productId", gt=0, le=INTEGER_MAX)
    quantity: int = Field(gt=0, le=INTEGER_MAX)


class CartItemKey(_CamelModel):
    user_id: int = Field(alias="userId", gt=0, le=INTEGER_MAX)
    product_id: int = Field(alias="productId", gt=0, le=INTEGER_MAX)


class InitiatePaymentRequest(_CamelModel):
    user_id: int = Field(alias="userId", gt=0, le=INTEGER_MAX)


router = APIRouter()


# ── カート ───────────────────────────────────────


@router.post("/cart", status_code=status.HTTP_201_CREATED)
async def add_to_cart(req: CartItemRequest, request: Request):
    """カートに商品を追加（同じ商品なら数量を加算）"""
    async with request.app.state.session_factory() as session:
        item = await commands.add_to_cart(session, req.user_id, req.product_id, req.quantity)
        return {"message": "Item added to cart", "cartItem": item}


@router.get("/cart/{user_id}")
async def get_cart(request: Request, user_id: int = Path(gt=0, le=INTEGER_MAX)):
    async with request.app.state.session_factory() as session:
        return {"cart": await queries.get_cart(session, user_id)}


@router.get("/cart/{user_id}/total")
async def get_cart_total(request: Request, user_id: int = Path(gt=0, le=INTEGER_MAX)):
    async with request.app.state.session_factory() as session:
        total = await queries.calculate_cart_total(session, user_id)
        return {"userId": user_id, "total": format_amount(total)}


@router.put("/cart")
async def update_cart(req: CartItemRequest, request: Request):
    async with request.app.state.session_factory() as session:
        item = await commands.update_cart_item(session, req.user_id, req.product_id, req.quantity)
        return {"message": "Cart updated", "cartItem": item}


@router.delete("/cart")
async def remove_from_cart(req: CartItemKey, request: Request):
    async with request.app.state.session_factory() as session:
        await commands.remove_from_cart(session, req.user_id, req.product_id)
        return {"message": "Item removed from cart"}


# ── 決済 ─────────────────────────────────────────


@router.post("/payment/initiate")
async def initiate_payment(req: InitiatePaymentRequest, request: Request):
    """決済開始（プロバイダーの応答をそのまま返す）"""
    async with request.app.state.session_factory() as session:
        return await request.app.state.initiator.initiate(session, req.user_id)


@router.post("/payment/webhook")
async def payment_webhook(request: Request):
    """
    プロバイダーからの決済結果通知。

    署名は受信した生のボディに対して検証するため、
    リクエストモデルを使わずに request.body() を読む。
    """
    payload = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)
    state = request.app.state
    async with state.session_factory() as session:
        updated = await reconcile_notification(
            session, state.redis, payload, signature, state.settings.webhook_secret,
        )
    if not updated:
        return {"message": "Payment status already recorded"}
    return {"message": "Payment status updated"}


# ── 商品・注文 (Read 側) ─────────────────────────


@router.get("/products")
async def list_products(request: Request):
    async with request.app.state.session_factory() as session:
        return await queries.list_products(session)


@router.get("/products/{product_id}")
async def get_product(request: Request, product_id: int = Path(gt=0, le=INTEGER_MAX)):
    async with request.app.state.session_factory() as session:
        product = await queries.get_product(session, product_id)
        if not product:
            raise HTTPException(404, "Product not found")
        return product


@router.get("/orders")
async def list_orders(
    request: Request,
    user_id: int | None = Query(default=None, alias="userId", gt=0, le=INTEGER_MAX),
):
    async with request.app.state.session_factory() as session:
        return await queries.list_orders(session, user_id)


@router.get("/orders/{order_id}")
async def get_order(request: Request, order_id: int = Path(gt=0, le=INTEGER_MAX)):
    async with request.app.state.session_factory() as session:
        order = await queries.get_order(session, order_id)
        if not order:
            raise HTTPException(404, "Order not found")
        return order


@router.get("/health")
async def health():
    return {"status": "ok", "service": "cart-service"}


# ── エラーハンドラ ───────────────────────────────


def register_error_handlers(app: FastAPI) -> None:
    """すべての失敗をリクエスト境界で JSON のエラーボディに変換する。"""

    @app.exception_handler(CartServiceError)
    async def cart_service_error_handler(request: Request, exc: CartServiceError):
        if exc.http_status >= 500:
            logger.error("%s on %s: %s", exc.code, request.url.path, exc.message)
        else:
            logger.warning("%s on %s: %s", exc.code, request.url.path, exc.message)
        return JSONResponse(status_code=exc.http_status, content=exc.to_response())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning("Validation error on %s: %s", request.url.path, exc.errors())
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": "Invalid request data",
                "code": "VALIDATION_ERROR",
                "details": [
                    {
                        "field": ".".join(str(loc) for loc in e["loc"]),
                        "message": e["msg"],
                    }
                    for e in exc.errors()
                ],
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        code = "NOT_FOUND" if exc.status_code == 404 else "HTTP_ERROR"
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail, "code": code},
        )

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        logger.error("Unhandled exception on %s: %s", request.url.path, exc, exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "An unexpected error occurred", "code": "INTERNAL_ERROR"},
        )


# ── アプリケーション ─────────────────────────────


def create_app(
    settings: Settings | None = None,
    *,
    redis: aioredis.Redis | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """
    アプリケーションを組み立てる。

    redis / http_client を渡した場合はそれを使い、終了時にも閉じない
    （テストで差し替えるため）。
    """
    if settings is None:
        settings = Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level)

        engine = create_async_engine(settings.database_url, echo=False)
        await create_schema(engine)
        session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

        if redis is not None:
            redis_conn = redis
        else:
            redis_conn = aioredis.from_url(settings.redis_url, decode_responses=True)
        if http_client is not None:
            client = http_client
        else:
            client = httpx.AsyncClient(timeout=settings.provider_timeout_seconds)
        gateway = PaymentProviderClient(client, settings)

        app.state.settings = settings
        app.state.session_factory = session_factory
        app.state.redis = redis_conn
        app.state.initiator = PaymentInitiator(settings, gateway, redis_conn)

        if settings.seed_demo_catalog:
            async with session_factory() as session:
                await seed_demo_catalog(session)

        logger.info("Cart Service started")
        try:
            yield
        finally:
            logger.info("Cart Service shutting down")
            if http_client is None:
                await client.aclose()
            if redis is None:
                await redis_conn.aclose()
            await engine.dispose()

    app = FastAPI(title="Cart Service", lifespan=lifespan)
    app.include_router(router)
    register_error_handlers(app)
    return app


def run() -> None:
    p = argparse.ArgumentParser(description="Run the cart service.")
    p.add_argument("--host", type=str, default="0.0.0.0")
    p.add_argument("--port", type=int, default=8000)
    args = p.parse_args()

    uvicorn.run(create_app, factory=True, host=args.host, port=args.port)
