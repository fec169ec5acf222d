"""
Cart Service — イベント定義

注文の書き込みがコミットされたあと、payment_events チャネルへ
発行する事実(イベント)。過去形で命名し、不変として扱う。
"""

import json
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

PAYMENT_EVENTS_CHANNEL = "payment_events"


class OrderCreated(BaseModel):
    """決済開始に成功し、Pending の注文が作成された"""
    order_id: int
    user_id: int
    order_reference: str
    payment_id: str
    total_amount: Decimal
    currency: str
    timestamp: datetime


class PaymentStatusUpdated(BaseModel):
    """Webhook により決済ステータスが確定した"""
    order_id: int
    payment_id: str
    previous_status: str
    payment_status: str
    timestamp: datetime


def to_message(event: BaseModel) -> str:
    """Redis Pub/Sub に流す JSON 文字列"""
    return json.dumps({
        "event_type": type(event).__name__,
        "data": event.model_dump(mode="json"),
    }, default=str)
