"""
Cart Service — テーブル定義

PostgreSQL (asyncpg) と SQLite (aiosqlite, テスト用) の両方で
同じスキーマを作れるよう SQLAlchemy Core の Table で定義する。
"""

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
)
from sqlalchemy.ext.asyncio import AsyncEngine

metadata = MetaData()

# Integer 列 (32 bit) に入る最大値。API の入力もこの範囲に制限する。
INTEGER_MAX = 2**31 - 1

products = Table(
    "products",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("price_minor", BigInteger, nullable=False),
    Column("stock", Integer, nullable=False),
    CheckConstraint("price_minor >= 0", name="ck_products_price_non_negative"),
    CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
)

# (user_id, product_id) ごとに 1 行。同じ商品の追加は数量を加算する。
cart_items = Table(
    "cart_items",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("product_id", Integer, ForeignKey("products.id"), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("user_id", "product_id", name="uq_cart_items_user_product"),
    CheckConstraint("quantity > 0", name="ck_cart_items_quantity_positive"),
)

orders = Table(
    "orders",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("order_reference", String(64), nullable=False, unique=True),
    Column("total_amount_minor", BigInteger, nullable=False),
    Column("currency", String(3), nullable=False),
    Column("payment_status", String(16), nullable=False, default="Pending"),
    Column("payment_id", String(128), nullable=False, unique=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    CheckConstraint("total_amount_minor >= 0", name="ck_orders_total_non_negative"),
)


async def create_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
