import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


class Settings:
    @staticmethod
    def _get_int(name: str, default: int) -> int:
        return int(os.getenv(name, str(default)))

    @staticmethod
    def _get_float(name: str, default: float) -> float:
        return float(os.getenv(name, str(default)))

    @staticmethod
    def _get_bool(name: str, default: bool) -> bool:
        return os.getenv(name, str(default)).strip().lower() in {"1", "true", "yes", "on"}

    @property
    def DATABASE_URL(self) -> str:
        database_url = os.getenv("DATABASE_URL", "").strip()
        if not database_url:
            raise ValueError("DATABASE_URL is required")
        return database_url

    @property
    def DB_CONNECT_RETRIES(self) -> int:
        return self._get_int("DB_CONNECT_RETRIES", 10)

    @property
    def DB_CONNECT_RETRY_DELAY_SECONDS(self) -> int:
        return self._get_int("DB_CONNECT_RETRY_DELAY_SECONDS", 2)

    @property
    def ORDERS_TABLE(self) -> str:
        return os.getenv("ORDERS_TABLE", "orders")

    @property
    def PAYMENTS_TABLE(self) -> str:
        return os.getenv("PAYMENTS_TABLE", "payments")

    @property
    def FULFILLMENT_TABLE(self) -> str:
        return os.getenv("FULFILLMENT_TABLE", "fulfillments")

    @property
    def EVENT_BUS_NAME(self) -> str:
        return os.getenv("EVENT_BUS_NAME", "market-bus")

    @property
    def ORDERS_EVENT_SOURCE(self) -> str:
        return os.getenv("ORDERS_EVENT_SOURCE", "market.orders")

    @property
    def PAYMENTS_EVENT_SOURCE(self) -> str:
        return os.getenv("PAYMENTS_EVENT_SOURCE", "market.payment")

    @property
    def ACTIVATION_URL_BASE(self) -> str:
        return os.getenv("ACTIVATION_URL_BASE", "https://example.com/activate")

    @property
    def MAX_DELIVERY_ATTEMPTS(self) -> int:
        return self._get_int("MAX_DELIVERY_ATTEMPTS", 5)

    @property
    def DELIVERY_RETRY_DELAY_SECONDS(self) -> float:
        return self._get_float("DELIVERY_RETRY_DELAY_SECONDS", 5.0)

    @property
    def DELIVERY_VISIBILITY_TIMEOUT_SECONDS(self) -> float:
        return self._get_float("DELIVERY_VISIBILITY_TIMEOUT_SECONDS", 30.0)

    @property
    def WORKER_POLL_INTERVAL_SECONDS(self) -> float:
        return self._get_float("WORKER_POLL_INTERVAL_SECONDS", 1.0)

    @property
    def PAYMENT_PROVIDER(self) -> str:
        return os.getenv("PAYMENT_PROVIDER", "mock").strip().lower()

    @property
    def PAYMENT_WEBHOOK_SECRET(self) -> str:
        return os.getenv("PAYMENT_WEBHOOK_SECRET", "")

    @property
    def STRIPE_SECRET_KEY(self) -> str:
        return os.getenv("STRIPE_SECRET_KEY", "")

    @property
    def STRIPE_WEBHOOK_SECRET(self) -> str:
        return os.getenv("STRIPE_WEBHOOK_SECRET", "")

    @property
    def STRIPE_SUCCESS_URL(self) -> str:
        return os.getenv("STRIPE_SUCCESS_URL", "http://localhost:3000/success")

    @property
    def STRIPE_CANCEL_URL(self) -> str:
        return os.getenv("STRIPE_CANCEL_URL", "http://localhost:3000/cancel")

    @property
    def SMTP_HOST(self) -> str:
        return os.getenv("SMTP_HOST", "")

    @property
    def SMTP_PORT(self) -> int:
        return self._get_int("SMTP_PORT", 587)

    @property
    def SMTP_USER(self) -> str:
        return os.getenv("SMTP_USER", "")

    @property
    def SMTP_PASSWORD(self) -> str:
        return os.getenv("SMTP_PASSWORD", "")

    @property
    def SMTP_USE_TLS(self) -> bool:
        return self._get_bool("SMTP_USE_TLS", True)

    @property
    def SMTP_FROM_EMAIL(self) -> str:
        return os.getenv("SMTP_FROM_EMAIL", "")

    @property
    def SMTP_FROM_NAME(self) -> str:
        return os.getenv("SMTP_FROM_NAME", "Market")

    @property
    def CORS_ORIGINS(self) -> str:
        return os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:3001")


settings = Settings()


@dataclass(frozen=True)
class SagaConfig:
    """Names and limits shared by the saga components.

    Built once from the environment and passed to each component's
    constructor; components never read ``settings`` themselves.
    """

    orders_table: str = "orders"
    payments_table: str = "payments"
    fulfillments_table: str = "fulfillments"
    event_bus_name: str = "market-bus"
    orders_source: str = "market.orders"
    payments_source: str = "market.payment"
    activation_url_base: str = "https://example.com/activate"
    max_delivery_attempts: int = 5
    retry_delay_seconds: float = 5.0
    visibility_timeout_seconds: float = 30.0

    @classmethod
    def from_settings(cls, source: Settings = settings) -> "SagaConfig":
        return cls(
            orders_table=source.ORDERS_TABLE,
            payments_table=source.PAYMENTS_TABLE,
            fulfillments_table=source.FULFILLMENT_TABLE,
            event_bus_name=source.EVENT_BUS_NAME,
            orders_source=source.ORDERS_EVENT_SOURCE,
            payments_source=source.PAYMENTS_EVENT_SOURCE,
            activation_url_base=source.ACTIVATION_URL_BASE,
            max_delivery_attempts=source.MAX_DELIVERY_ATTEMPTS,
            retry_delay_seconds=source.DELIVERY_RETRY_DELAY_SECONDS,
            visibility_timeout_seconds=source.DELIVERY_VISIBILITY_TIMEOUT_SECONDS,
        )
