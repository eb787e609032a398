from __future__ import annotations

import json
import os
from decimal import Decimal
from urllib.parse import parse_qs, urlencode, urlsplit, urlunsplit

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        enable_decoding=False,
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./linkpay.db",
        validation_alias=AliasChoices("DATABASE_PRIVATE_URL", "DATABASE_URL", "database_url"),
    )
    cors_origins: list[str] = ["http://localhost:3000"]
    api_version: str = "0.1.0"

    default_commission_rate: Decimal = Decimal("10")
    rate_limit_window_seconds: float = 60.0
    rate_limit_max_requests: int = 10
    attribution_ttl_days: int = 30
    attribution_cookie_secure: bool = False

    # 0 disables the scheduled pending -> approved pass.
    commission_auto_approve_days: int = 0
    commission_approval_interval_minutes: int = 60

    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""

    notification_webhook_url: str = ""
    notification_timeout_seconds: float = 5.0

    @field_validator("database_url", mode="before")
    @classmethod
    def normalize_database_url(cls, value: str) -> str:
        if not isinstance(value, str):
            return value
        if not value.strip():
            return "sqlite+aiosqlite:///./linkpay.db"
        url = value
        if url.startswith("postgres://"):
            url = "postgresql+asyncpg://" + url[len("postgres://") :]
        if url.startswith("postgresql://") and "+asyncpg" not in url:
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        if url.startswith("sqlite://") and "+aiosqlite" not in url:
            url = url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        parts = urlsplit(url)
        if "asyncpg" in parts.scheme:
            query = parse_qs(parts.query, keep_blank_values=True)
            if "sslmode" in query and "ssl" not in query:
                mode = (query.pop("sslmode")[0] or "").lower()
                if mode in ("disable", "false", "0", "no"):
                    query["ssl"] = ["false"]
                else:
                    query["ssl"] = ["true"]
                url = urlunsplit(
                    (parts.scheme, parts.netloc, parts.path, urlencode(query, doseq=True), parts.fragment)
                )
        return url

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, value):
        if isinstance(value, str):
            stripped = value.strip()
            if stripped.startswith("[") and stripped.endswith("]"):
                try:
                    parsed = json.loads(stripped)
                    if isinstance(parsed, list):
                        return [str(item).strip() for item in parsed if str(item).strip()]
                except json.JSONDecodeError:
                    pass
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("rate_limit_max_requests", "attribution_ttl_days", "commission_auto_approve_days", mode="before")
    @classmethod
    def parse_blank_int(cls, value):
        if isinstance(value, str) and value.strip() == "":
            return 0
        return value

    @field_validator("default_commission_rate")
    @classmethod
    def validate_default_rate(cls, value: Decimal) -> Decimal:
        if value <= 0 or value > 100:
            raise ValueError("default_commission_rate must be within (0, 100]")
        return value


settings = Settings()


def running_in_hosted_env() -> bool:
    """Detect hosted/runtime environments (Railway/containers) by common vars."""
    markers = (
        "RAILWAY_ENVIRONMENT",
        "RAILWAY_PROJECT_ID",
        "RAILWAY_SERVICE_NAME",
        "PORT",
    )
    return any(os.getenv(name) for name in markers)


def database_dsn_safe(raw_url: str | None = None) -> str:
    """Return a redacted DB URL for logs (no password)."""
    url = raw_url or settings.database_url
    if not isinstance(url, str):
        return "<invalid>"
    if url.startswith("sqlite"):
        return f"{urlsplit(url).scheme}://<local-file>"
    parts = urlsplit(url)
    host = parts.hostname or "<unknown>"
    port = parts.port or ""
    db = (parts.path or "").lstrip("/") or "<unknown>"
    port_str = f":{port}" if port else ""
    return f"{parts.scheme}://{host}{port_str}/{db}"
