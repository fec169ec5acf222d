"""
Cart Service — 設定

環境変数から一度だけ読み込み、以後は読み取り専用の値として
create_app() から各コンポーネントへ参照で渡す。
モジュールグローバルから設定を参照しないこと。
"""

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict

from .errors import ConfigurationError

_TRUTHY = {"1", "true", "yes", "on"}


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    database_url: str
    redis_url: str = "redis://localhost:6379"

    # 決済プロバイダー
    provider_url: str = "https://test.cashfree.com/api/v1/order/create"
    provider_client_id: str
    provider_client_secret: str
    provider_timeout_seconds: float = 10.0
    currency: str = "INR"
    customer_email: str = "user@example.com"
    customer_phone: str = "9876543210"

    # Webhook 署名の共有シークレット
    webhook_secret: str

    log_level: str = "INFO"
    seed_demo_catalog: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """環境変数から Settings を組み立てる。必須項目が欠けていれば ConfigurationError。"""
        env = os.environ if environ is None else environ

        missing = [
            name
            for name in (
                "DATABASE_URL",
                "PAYMENT_CLIENT_ID",
                "PAYMENT_CLIENT_SECRET",
                "WEBHOOK_SECRET",
            )
            if not env.get(name)
        ]
        if missing:
            raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")

        try:
            timeout = float(env.get("PAYMENT_TIMEOUT_SECONDS", "10"))
        except ValueError:
            raise ConfigurationError("PAYMENT_TIMEOUT_SECONDS must be a number")
        if timeout <= 0:
            raise ConfigurationError("PAYMENT_TIMEOUT_SECONDS must be positive")

        return cls(
            database_url=env["DATABASE_URL"],
            redis_url=env.get("REDIS_URL", "redis://localhost:6379"),
            provider_url=env.get(
                "PAYMENT_PROVIDER_URL",
                "https://test.cashfree.com/api/v1/order/create",
            ),
            provider_client_id=env["PAYMENT_CLIENT_ID"],
            provider_client_secret=env["PAYMENT_CLIENT_SECRET"],
            provider_timeout_seconds=timeout,
            currency=env.get("PAYMENT_CURRENCY", "INR"),
            customer_email=env.get("PAYMENT_CUSTOMER_EMAIL", "user@example.com"),
            customer_phone=env.get("PAYMENT_CUSTOMER_PHONE", "9876543210"),
            webhook_secret=env["WEBHOOK_SECRET"],
            log_level=env.get("LOG_LEVEL", "INFO"),
            seed_demo_catalog=env.get("SEED_DEMO_CATALOG", "").strip().lower() in _TRUTHY,
        )
