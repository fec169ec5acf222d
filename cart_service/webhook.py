"""
Cart Service — 決済ステータス Webhook

プロバイダーからの通知を検証して注文ステータスへ反映する。

  1. 生のリクエストボディに対して HMAC-SHA256 を再計算
  2. x-webhook-signature ヘッダと定数時間で比較（不一致なら何もしない）
  3. payment_id で注文を検索
  4. status == "SUCCESS" なら SUCCESS、それ以外は FAILED
"""

import hashlib
import hmac
import json
import logging

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession

from . import commands
from .aggregate import status_from_notification
from .errors import InvalidSignatureError, ValidationError

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-webhook-signature"


def compute_signature(payload: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


def verify_signature(payload: bytes, signature: str | None, secret: str) -> None:
    expected = compute_signature(payload, secret)
    if not signature or not hmac.compare_digest(expected.encode(), signature.encode()):
        raise InvalidSignatureError()


def parse_notification(payload: bytes) -> tuple[str, str]:
    """ボディから (payment_id, status) を取り出す。"""
    try:
        data = json.loads(payload)
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise ValidationError("Webhook payload is not valid JSON")
    if not isinstance(data, dict):
        raise ValidationError("Webhook payload must be a JSON object")

    payment_id = data.get("payment_id")
    if isinstance(payment_id, int) and not isinstance(payment_id, bool):
        payment_id = str(payment_id)
    if not isinstance(payment_id, str) or not payment_id:
        raise ValidationError("Webhook payload has no payment_id")

    status = data.get("status")
    if not isinstance(status, str):
        raise ValidationError("Webhook payload has no status")
    return payment_id, status


async def reconcile_notification(
    session: AsyncSession,
    redis: aioredis.Redis,
    payload: bytes,
    signature: str | None,
    secret: str,
) -> bool:
    """
    署名付き通知を検証し、注文ステータスを更新する。

    戻り値: ステータスを書き換えたら True、同じ通知の再配信で何もしなかったら False。
    """
    try:
        verify_signature(payload, signature, secret)
    except InvalidSignatureError:
        logger.warning("Rejected webhook with invalid signature")
        raise

    payment_id, status = parse_notification(payload)
    return await commands.update_payment_status(
        session, redis, payment_id, status_from_notification(status),
    )
