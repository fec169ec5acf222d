"""
Cart Service — クエリハンドラ (Read 側)

カート・商品・注文の読み取りと、カート合計の計算を行う。
ここには副作用を持つ処理を置かない。
"""

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import ProductNotFoundError
from .money import format_amount, from_minor
from .schema import cart_items, orders, products


def _product_dict(row) -> dict:
    return {
        "id": row.id,
        "name": row.name,
        "price": format_amount(from_minor(row.price_minor)),
        "stock": row.stock,
    }


def _order_dict(row) -> dict:
    return {
        "id": row.id,
        "userId": row.user_id,
        "orderReference": row.order_reference,
        "totalAmount": format_amount(from_minor(row.total_amount_minor)),
        "currency": row.currency,
        "paymentStatus": row.payment_status,
        "paymentId": row.payment_id,
        "createdAt": row.created_at.isoformat() if row.created_at else None,
        "updatedAt": row.updated_at.isoformat() if row.updated_at else None,
    }


def cart_item_dict(row) -> dict:
    return {
        "id": row.id,
        "userId": row.user_id,
        "productId": row.product_id,
        "quantity": row.quantity,
    }


# ── 商品 ─────────────────────────────────────────


async def get_product(session: AsyncSession, product_id: int) -> dict | None:
    result = await session.execute(
        select(products).where(products.c.id == product_id)
    )
    row = result.fetchone()
    if not row:
        return None
    return _product_dict(row)


async def list_products(session: AsyncSession) -> list[dict]:
    result = await session.execute(select(products).order_by(products.c.name))
    return [_product_dict(row) for row in result.fetchall()]


# ── カート ───────────────────────────────────────


async def find_cart_item(session: AsyncSession, user_id: int, product_id: int):
    result = await session.execute(
        select(cart_items).where(
            cart_items.c.user_id == user_id,
            cart_items.c.product_id == product_id,
        )
    )
    return result.fetchone()


async def _load_cart_lines(session: AsyncSession, user_id: int) -> list:
    """
    カート行と商品を外部結合で読み出す。
    存在しない商品を参照する行があれば ProductNotFoundError。
    """
    result = await session.execute(
        select(
            cart_items.c.product_id,
            cart_items.c.quantity,
            products.c.id.label("catalog_id"),
            products.c.name,
            products.c.price_minor,
        )
        .select_from(
            cart_items.outerjoin(products, cart_items.c.product_id == products.c.id)
        )
        .where(cart_items.c.user_id == user_id)
        .order_by(cart_items.c.id)
    )
    rows = result.fetchall()
    for row in rows:
        if row.catalog_id is None:
            raise ProductNotFoundError(row.product_id)
    return rows


async def get_cart(session: AsyncSession, user_id: int) -> list[dict]:
    rows = await _load_cart_lines(session, user_id)
    return [
        {
            "productId": row.product_id,
            "name": row.name,
            "price": format_amount(from_minor(row.price_minor)),
            "quantity": row.quantity,
        }
        for row in rows
    ]


async def calculate_cart_total(session: AsyncSession, user_id: int) -> Decimal:
    """
    カート合計 = Σ quantity × price

    最小通貨単位の整数で積算するため誤差は出ない。
    空のカートは 0.00。
    """
    rows = await _load_cart_lines(session, user_id)
    total_minor = sum(row.quantity * row.price_minor for row in rows)
    return from_minor(total_minor)


# ── 注文 ─────────────────────────────────────────


async def get_order(session: AsyncSession, order_id: int) -> dict | None:
    result = await session.execute(select(orders).where(orders.c.id == order_id))
    row = result.fetchone()
    if not row:
        return None
    return _order_dict(row)


async def get_order_by_payment_id(session: AsyncSession, payment_id: str) -> dict | None:
    result = await session.execute(
        select(orders).where(orders.c.payment_id == payment_id)
    )
    row = result.fetchone()
    if not row:
        return None
    return _order_dict(row)


async def list_orders(session: AsyncSession, user_id: int | None = None) -> list[dict]:
    stmt = select(orders).order_by(orders.c.created_at.desc(), orders.c.id.desc())
    if user_id is not None:
        stmt = stmt.where(orders.c.user_id == user_id)
    result = await session.execute(stmt)
    return [_order_dict(row) for row in result.fetchall()]
