"""
Cart Service — コマンドハンドラ (Write 側)

状態を変更する操作。注文に関する書き込みはコミット後に
Redis Pub/Sub (payment_events) でイベントを発行する。

1 つのコマンドは 1 つの AsyncSession の中で完結し、
最後に commit する。
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal

import redis.asyncio as aioredis
from redis.exceptions import RedisError
from sqlalchemy import delete, insert, update
from sqlalchemy.ext.asyncio import AsyncSession

from . import queries
from .aggregate import OrderPayment, PaymentStatus
from .errors import (
    CartItemNotFoundError,
    OrderNotFoundError,
    ProductNotFoundError,
    ValidationError,
)
from .events import PAYMENT_EVENTS_CHANNEL, OrderCreated, PaymentStatusUpdated, to_message
from .money import format_amount, from_minor, to_minor
from .schema import INTEGER_MAX, cart_items, orders, products

logger = logging.getLogger(__name__)


async def _publish(redis: aioredis.Redis, event) -> None:
    """
    payment_events へイベントを発行する（fire-and-forget）。

    DB はコミット済みなので、発行に失敗しても警告を残して処理を続ける。
    """
    try:
        await redis.publish(PAYMENT_EVENTS_CHANNEL, to_message(event))
    except (RedisError, OSError) as e:
        logger.warning("Failed to publish %s: %s", type(event).__name__, e)


# ── 商品（シード用） ─────────────────────────────


async def create_product(
    session: AsyncSession,
    name: str,
    price: Decimal,
    stock: int,
) -> dict:
    if price < 0:
        raise ValueError("price must be >= 0")
    if stock < 0:
        raise ValueError("stock must be >= 0")
    result = await session.execute(
        insert(products)
        .values(name=name, price_minor=to_minor(price), stock=stock)
        .returning(products.c.id)
    )
    product_id = result.scalar_one()
    await session.commit()
    return {
        "id": product_id,
        "name": name,
        "price": format_amount(from_minor(to_minor(price))),
        "stock": stock,
    }


# ── カート ───────────────────────────────────────


async def add_to_cart(
    session: AsyncSession,
    user_id: int,
    product_id: int,
    quantity: int,
) -> dict:
    """
    カートに商品を追加する。

    同じ (user_id, product_id) の行が既にあれば数量を加算する。
    存在しない商品は ProductNotFoundError。
    加算後の数量が INTEGER_MAX を超える場合は ValidationError。
    """
    if await queries.get_product(session, product_id) is None:
        raise ProductNotFoundError(product_id)

    now = datetime.now(timezone.utc)
    existing = await queries.find_cart_item(session, user_id, product_id)
    if existing:
        if existing.quantity + quantity > INTEGER_MAX:
            raise ValidationError("Quantity exceeds the maximum allowed")
        result = await session.execute(
            update(cart_items)
            .where(cart_items.c.id == existing.id)
            .values(quantity=cart_items.c.quantity + quantity, updated_at=now)
            .returning(*cart_items.c)
        )
    else:
        result = await session.execute(
            insert(cart_items)
            .values(
                user_id=user_id,
                product_id=product_id,
                quantity=quantity,
                created_at=now,
                updated_at=now,
            )
            .returning(*cart_items.c)
        )
    row = result.fetchone()
    await session.commit()
    return queries.cart_item_dict(row)


async def update_cart_item(
    session: AsyncSession,
    user_id: int,
    product_id: int,
    quantity: int,
) -> dict:
    result = await session.execute(
        update(cart_items)
        .where(
            cart_items.c.user_id == user_id,
            cart_items.c.product_id == product_id,
        )
        .values(quantity=quantity, updated_at=datetime.now(timezone.utc))
        .returning(*cart_items.c)
    )
    row = result.fetchone()
    if not row:
        await session.rollback()
        raise CartItemNotFoundError(user_id, product_id)
    await session.commit()
    return queries.cart_item_dict(row)


async def remove_from_cart(
    session: AsyncSession,
    user_id: int,
    product_id: int,
) -> None:
    result = await session.execute(
        delete(cart_items).where(
            cart_items.c.user_id == user_id,
            cart_items.c.product_id == product_id,
        )
    )
    if result.rowcount == 0:
        await session.rollback()
        raise CartItemNotFoundError(user_id, product_id)
    await session.commit()


# ── 注文 ─────────────────────────────────────────


async def create_order(
    session: AsyncSession,
    redis: aioredis.Redis,
    user_id: int,
    order_reference: str,
    total_amount: Decimal,
    currency: str,
    payment_id: str,
) -> dict:
    """
    注文作成コマンド

    1. Pending の注文を 1 回の INSERT で作成してコミット
    2. OrderCreated イベントを発行
    合計金額はこの時点の値で固定され、以後再計算しない。
    """
    now = datetime.now(timezone.utc)
    result = await session.execute(
        insert(orders)
        .values(
            user_id=user_id,
            order_reference=order_reference,
            total_amount_minor=to_minor(total_amount),
            currency=currency,
            payment_status=PaymentStatus.PENDING.value,
            payment_id=payment_id,
            created_at=now,
            updated_at=now,
        )
        .returning(orders.c.id)
    )
    order_id = result.scalar_one()
    await session.commit()

    logger.info(
        "Order %s created for user %s (payment_id=%s, total=%s %s)",
        order_id, user_id, payment_id, total_amount, currency,
    )

    event = OrderCreated(
        order_id=order_id,
        user_id=user_id,
        order_reference=order_reference,
        payment_id=payment_id,
        total_amount=total_amount,
        currency=currency,
        timestamp=now,
    )
    await _publish(redis, event)

    return {
        "id": order_id,
        "userId": user_id,
        "orderReference": order_reference,
        "totalAmount": format_amount(total_amount),
        "currency": currency,
        "paymentStatus": PaymentStatus.PENDING.value,
        "paymentId": payment_id,
    }


async def update_payment_status(
    session: AsyncSession,
    redis: aioredis.Redis,
    payment_id: str,
    target: PaymentStatus,
) -> bool:
    """
    決済ステータス更新コマンド（Webhook から呼ばれる）

    Pending の行だけを条件付き UPDATE で書き換える。
    同時に別の配信が先に確定させた場合は読み直して同じ規則で判定する。

    戻り値: 書き込みを行ったら True、既に同じ状態で何もしなかったら False。
    """
    order = await queries.get_order_by_payment_id(session, payment_id)
    if not order:
        raise OrderNotFoundError(payment_id)

    payment = OrderPayment(payment_id, order["paymentStatus"])
    if payment.resolve(target) is None:
        logger.info("Payment %s already %s; redelivery ignored", payment_id, target.value)
        return False

    now = datetime.now(timezone.utc)
    result = await session.execute(
        update(orders)
        .where(
            orders.c.payment_id == payment_id,
            orders.c.payment_status == PaymentStatus.PENDING.value,
        )
        .values(payment_status=target.value, updated_at=now)
    )
    if result.rowcount == 0:
        await session.rollback()
        current = await queries.get_order_by_payment_id(session, payment_id)
        OrderPayment(payment_id, current["paymentStatus"]).resolve(target)
        logger.info("Payment %s settled concurrently as %s", payment_id, target.value)
        return False
    await session.commit()

    logger.info(
        "Payment %s: %s -> %s", payment_id, payment.status.value, target.value,
    )

    event = PaymentStatusUpdated(
        order_id=order["id"],
        payment_id=payment_id,
        previous_status=payment.status.value,
        payment_status=target.value,
        timestamp=now,
    )
    await _publish(redis, event)
    return True
