from functools import lru_cache
from typing import Any, List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CORS = ["http://localhost:3000", "http://localhost:5173"]


def _parse_cors_origins(v: Any) -> List[str]:
    try:
        if v is None or v == "":
            return _DEFAULT_CORS.copy()
        if isinstance(v, list):
            return [x for x in v if isinstance(x, str) and x.strip()]
        s = str(v).strip()
        if not s:
            return _DEFAULT_CORS.copy()
        if s.startswith("["):
            import json
            out = json.loads(s)
            return [x for x in out if isinstance(x, str) and x.strip()] or _DEFAULT_CORS.copy()
        return [x.strip() for x in s.split(",") if x.strip()] or _DEFAULT_CORS.copy()
    except ValueError:
        return _DEFAULT_CORS.copy()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # App
    env: str = Field(default="development", description="ENV")
    debug: bool = Field(default=False, description="DEBUG")

    # MongoDB
    mongodb_uri: str = Field(default="mongodb://localhost:27017", alias="MONGODB_URI")
    mongodb_db_name: str = Field(default="fintrack", alias="MONGODB_DB_NAME")
    # Per-operation budget; expiry surfaces as a transient storage error
    mongodb_timeout_ms: int = Field(default=10_000, alias="MONGODB_TIMEOUT_MS")
    mongodb_server_selection_timeout_ms: int = Field(default=5_000, alias="MONGODB_SERVER_SELECTION_TIMEOUT_MS")

    # Order + payment creation
    order_transaction_mode: Literal["auto", "transactional", "sequential"] = Field(
        default="auto",
        alias="ORDER_TRANSACTION_MODE",
        description="auto probes the server once per process",
    )
    order_transaction_max_attempts: int = Field(default=3, ge=1, alias="ORDER_TRANSACTION_MAX_ATTEMPTS")
    order_transaction_retry_backoff_ms: int = Field(default=50, ge=0, alias="ORDER_TRANSACTION_RETRY_BACKOFF_MS")
    order_number_prefix: str = Field(default="ORD", alias="ORDER_NUMBER_PREFIX")

    # Sentry
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")

    # CORS: env as string, exposed as list
    cors_origins_raw: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        alias="CORS_ORIGINS",
        description="Comma-separated or JSON list",
    )

    @property
    def cors_origins(self) -> List[str]:
        return _parse_cors_origins(getattr(self, "cors_origins_raw", None))


@lru_cache
def get_settings() -> Settings:
    return Settings()
