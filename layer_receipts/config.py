from pathlib import Path
from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Redis settings (snapshot store + task queue share one instance)
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_MAX_CONNECTIONS: int = 20

    # Layer Platform settings
    LAYER_APP_ID: str | None = None
    LAYER_API_TOKEN: str | None = None
    LAYER_API_BASE_URL: str = "https://api.layer.com"

    # Webhook settings
    WEBHOOK_SECRET: str = ""
    WEBHOOK_BASE_URL: str | None = None

    # Receipts settings
    RECEIPTS_KEY_PREFIX: str = "layer-webhooks-"
    # Expiry for snapshots written by a receipt before message.sent was applied
    RECEIPTS_PENDING_TTL_SECONDS: int = 86400
    # How long a deleted message stays closed to late or retried events
    RECEIPTS_DELETED_TTL_SECONDS: int = 86400

    # Task queue settings
    TASK_QUEUE_PREFIX: str = "layer-tasks"
    WORKER_CONCURRENCY: int = 50
    WORKER_POLL_INTERVAL_SECONDS: float = 1.0

    # Hook definitions, JSON encoded lists in the environment
    LISTEN_HOOKS: list[dict[str, Any]] = []
    RECEIPT_HOOKS: list[dict[str, Any]] = []

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def layer_app_url(self) -> str:
        """Base URL for app scoped Layer Platform endpoints."""
        base = self.LAYER_API_BASE_URL.rstrip("/")
        return f"{base}/apps/{self.LAYER_APP_ID}"

    def is_production(self) -> bool:
        return self.environment == "production"


settings = Settings()
