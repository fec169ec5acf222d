"""
Cart Service — 決済プロバイダークライアント

プロバイダーの注文作成 API を HTTPS で呼び出す。
自動リトライはしない。失敗したら呼び出し元が決済を開始し直す。

  ┌──────────────┐  POST order/create   ┌──────────┐
  │ Cart Service │ ───────────────────▶ │ Provider │
  │              │ ◀─── payment_id ──── │          │
  └──────────────┘                      └──────────┘
"""

import logging
from decimal import Decimal

import httpx

from .config import Settings
from .errors import PaymentProviderError, PaymentTimeoutError

logger = logging.getLogger(__name__)


class PaymentProviderClient:
    """プロバイダーの注文作成 API"""

    def __init__(self, client: httpx.AsyncClient, settings: Settings):
        self.client = client
        self.url = settings.provider_url
        self.timeout = settings.provider_timeout_seconds
        self.currency = settings.currency
        self.customer_email = settings.customer_email
        self.customer_phone = settings.customer_phone
        self._headers = {
            "Content-Type": "application/json",
            "x-client-id": settings.provider_client_id,
            "x-client-secret": settings.provider_client_secret,
        }

    def build_order_request(self, order_reference: str, amount: Decimal) -> dict:
        return {
            "orderId": order_reference,
            "orderAmount": float(amount),
            "orderCurrency": self.currency,
            "customerEmail": self.customer_email,
            "customerPhone": self.customer_phone,
        }

    async def create_order(self, order_reference: str, amount: Decimal) -> dict:
        """
        プロバイダーに支払い注文を作成させ、応答ボディをそのまま返す。

        - タイムアウト → PaymentTimeoutError
        - 通信エラー / 200 以外 / payment_id の無い応答 → PaymentProviderError
        """
        try:
            resp = await self.client.post(
                self.url,
                json=self.build_order_request(order_reference, amount),
                headers=self._headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException:
            logger.warning("Payment provider timed out for %s", order_reference)
            raise PaymentTimeoutError(self.timeout)
        except httpx.HTTPError as e:
            logger.warning("Payment provider request failed for %s: %s", order_reference, e)
            raise PaymentProviderError(f"Payment initiation failed: {e}")

        if resp.status_code != 200:
            logger.warning(
                "Payment provider rejected %s with HTTP %s", order_reference, resp.status_code,
            )
            raise PaymentProviderError("Payment initiation failed")

        try:
            data = resp.json()
        except ValueError:
            raise PaymentProviderError("Payment provider returned an invalid response")
        if not isinstance(data, dict) or not data.get("payment_id"):
            raise PaymentProviderError("Payment provider response has no payment_id")
        return data
