"""
Cart Service — デモ用カタログ投入

    python -m cart_service.seed --database-url sqlite+aiosqlite:///cart.db

スキーマを作成し、商品が 1 件も無ければデモ商品を登録する。
SEED_DEMO_CATALOG=true の場合は起動時にも同じ処理を行う。
"""

import argparse
import asyncio
import logging
import os
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from . import commands
from .schema import create_schema, products

logger = logging.getLogger(__name__)

DEMO_CATALOG = [
    ("Wireless Mouse", Decimal("10.00"), 100),
    ("USB-C Cable", Decimal("5.50"), 250),
    ("Mechanical Keyboard", Decimal("79.99"), 40),
    ("Laptop Stand", Decimal("24.95"), 60),
]


async def seed_demo_catalog(session: AsyncSession) -> int:
    """カタログが空のときだけデモ商品を登録し、登録件数を返す。"""
    count = (await session.execute(select(func.count()).select_from(products))).scalar_one()
    if count:
        logger.info("Catalog already has %s products; skipping seed", count)
        return 0
    for name, price, stock in DEMO_CATALOG:
        await commands.create_product(session, name, price, stock)
    logger.info("Seeded %s demo products", len(DEMO_CATALOG))
    return len(DEMO_CATALOG)


async def _run(database_url: str) -> None:
    engine = create_async_engine(database_url, echo=False)
    try:
        await create_schema(engine)
        session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        async with session_factory() as session:
            await seed_demo_catalog(session)
    finally:
        await engine.dispose()


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    p = argparse.ArgumentParser(description="Create the schema and load the demo catalog.")
    p.add_argument("--database-url", type=str, default=os.environ.get("DATABASE_URL"))
    args = p.parse_args()
    if not args.database_url:
        p.error("--database-url or DATABASE_URL is required")

    asyncio.run(_run(args.database_url))


if __name__ == "__main__":
    main()
