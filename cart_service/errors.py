"""
Cart Service — エラー定義

すべてのドメインエラーは CartServiceError を継承し、
エラーコードと HTTP ステータスを持つ。
main.py の例外ハンドラが JSON レスポンスへ変換する。
"""


class CartServiceError(Exception):
    """Cart Service の基底例外"""

    code = "INTERNAL_ERROR"
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_response(self) -> dict:
        return {"error": self.message, "code": self.code}


class ConfigurationError(CartServiceError):
    code = "CONFIGURATION_ERROR"


# ── 400 系 ───────────────────────────────────────


class ValidationError(CartServiceError):
    code = "VALIDATION_ERROR"
    http_status = 400


class ProductNotFoundError(CartServiceError):
    """カートが存在しない商品を参照している"""

    code = "PRODUCT_NOT_FOUND"
    http_status = 400

    def __init__(self, product_id: int):
        super().__init__(f"Product {product_id} not found")
        self.product_id = product_id


class EmptyCartError(CartServiceError):
    code = "EMPTY_CART"
    http_status = 400

    def __init__(self, user_id: int):
        super().__init__(f"Cart for user {user_id} has nothing to pay for")
        self.user_id = user_id


class PaymentProviderError(CartServiceError):
    """決済プロバイダー呼び出しの失敗（通信エラー・非成功ステータス・不正な応答）"""

    code = "PROVIDER_ERROR"
    http_status = 400


class InvalidSignatureError(CartServiceError):
    code = "INVALID_SIGNATURE"
    http_status = 400

    def __init__(self) -> None:
        super().__init__("Invalid signature")


# ── 404 系 ───────────────────────────────────────


class CartItemNotFoundError(CartServiceError):
    code = "CART_ITEM_NOT_FOUND"
    http_status = 404

    def __init__(self, user_id: int, product_id: int):
        super().__init__("Item not found in cart")
        self.user_id = user_id
        self.product_id = product_id


class OrderNotFoundError(CartServiceError):
    code = "ORDER_NOT_FOUND"
    http_status = 404

    def __init__(self, reference: str):
        super().__init__("Order not found")
        self.reference = reference


# ── 409 / 504 ────────────────────────────────────


class OrderAlreadySettledError(CartServiceError):
    """確定済みの注文に別の最終ステータスが通知された"""

    code = "ORDER_ALREADY_SETTLED"
    http_status = 409

    def __init__(self, payment_id: str, current: str, reported: str):
        super().__init__(
            f"Order for payment {payment_id} is already {current}; refusing {reported}"
        )
        self.payment_id = payment_id
        self.current = current
        self.reported = reported


class PaymentTimeoutError(CartServiceError):
    code = "PROVIDER_TIMEOUT"
    http_status = 504

    def __init__(self, timeout: float):
        super().__init__(f"Payment provider did not respond within {timeout:g}s")
        self.timeout = timeout
