"""
Cart Service — 注文の決済ステータス

状態遷移:
    Pending → SUCCESS  (プロバイダーが SUCCESS を通知)
    Pending → FAILED   (それ以外のステータスを通知)

SUCCESS / FAILED は最終状態。同じ最終状態の再通知は何もしない。
別の最終状態への変更は拒否する。
"""

from enum import Enum

from .errors import OrderAlreadySettledError


class PaymentStatus(str, Enum):
    PENDING = "Pending"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING


def status_from_notification(reported: str) -> PaymentStatus:
    """プロバイダーの status 値を最終状態に写像する（大文字小文字を区別）。"""
    return PaymentStatus.SUCCESS if reported == "SUCCESS" else PaymentStatus.FAILED


class OrderPayment:
    """1 注文分の決済ステータスと遷移規則"""

    def __init__(self, payment_id: str, status: PaymentStatus | str) -> None:
        self.payment_id = payment_id
        self.status = PaymentStatus(status)

    def resolve(self, target: PaymentStatus) -> PaymentStatus | None:
        """
        target への遷移を判定する。

        戻り値が None なら既に target で、書き込みは不要。
        確定済みの注文を別の最終状態へ変えようとした場合は
        OrderAlreadySettledError。
        """
        if not self.status.is_terminal:
            return target
        if self.status is target:
            return None
        raise OrderAlreadySettledError(self.payment_id, self.status.value, target.value)
