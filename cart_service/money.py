"""
Cart Service — 金額の表現

DB には最小通貨単位の整数（例: paise）で保存し、
API の境界でのみ Decimal（小数 2 桁）に変換する。
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENTS = Decimal("0.01")


def to_minor(amount: Decimal | int | str) -> int:
    try:
        value = Decimal(amount)
    except (InvalidOperation, TypeError, ValueError):
        raise ValueError(f"Not a monetary amount: {amount!r}")
    if not value.is_finite():
        raise ValueError(f"Not a monetary amount: {amount!r}")
    return int((value.quantize(CENTS, rounding=ROUND_HALF_UP) * 100).to_integral_value())


def from_minor(minor: int) -> Decimal:
    return (Decimal(minor) / 100).quantize(CENTS)


def format_amount(amount: Decimal) -> str:
    """JSON に載せる金額文字列（"25.50" 形式）"""
    return str(amount.quantize(CENTS, rounding=ROUND_HALF_UP))
