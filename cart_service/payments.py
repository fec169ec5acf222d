"""
Cart Service — 決済開始

  1. カート合計を計算
  2. プロバイダーに支払い注文を作成させる
  3. 成功したら Pending の注文を保存
  4. プロバイダーの応答をそのまま返す

プロバイダー呼び出しが失敗した場合、注文は保存しない。
同一ユーザーの同時リクエストは重複排除しない。
"""

import secrets

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession

from . import commands, queries
from .config import Settings
from .errors import EmptyCartError
from .payment_gateway import PaymentProviderClient


def new_order_reference() -> str:
    """推測不能な注文参照。時刻から作らないので同時リクエストでも衝突しない。"""
    return f"order_{secrets.token_hex(16)}"


class PaymentInitiator:
    def __init__(
        self,
        settings: Settings,
        gateway: PaymentProviderClient,
        redis: aioredis.Redis,
    ):
        self.currency = settings.currency
        self.gateway = gateway
        self.redis = redis

    async def initiate(self, session: AsyncSession, user_id: int) -> dict:
        total = await queries.calculate_cart_total(session, user_id)
        if total == 0:
            raise EmptyCartError(user_id)

        order_reference = new_order_reference()
        payment = await self.gateway.create_order(order_reference, total)

        await commands.create_order(
            session,
            self.redis,
            user_id=user_id,
            order_reference=order_reference,
            total_amount=total,
            currency=self.currency,
            payment_id=str(payment["payment_id"]),
        )
        return payment
