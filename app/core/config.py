"""Application configuration using Pydantic Settings.

Configuration is loaded from environment variables. Optionally, point
`ENV_FILE` at a local env file for development.
"""

import os
from enum import Enum
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.domain.enums import CatalogBackend

# Query options consumed by create_async_engine, never by the DB driver
ENGINE_ONLY_QUERY_OPTIONS = frozenset({"pool_size", "max_overflow", "pool_timeout", "pool_recycle"})

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./.local/kure-rules.db"


class AppEnvironment(str, Enum):
    """Application environment values."""

    LOCAL = "local"
    TEST = "test"
    PROD = "prod"


class Settings(BaseSettings):
    """
    Application settings with type validation.

    Configuration is loaded from environment variables, with support
    for .env files in development.
    """

    model_config = SettingsConfigDict(
        env_file=os.getenv("ENV_FILE") or None, env_prefix="", extra="ignore"
    )

    # Application
    app_env: AppEnvironment = AppEnvironment.LOCAL
    app_name: str = "kure-rules-api"
    app_log_level: str = "INFO"

    # Observability
    observability_enabled: bool = True
    observability_structured_logs: bool = True

    # OpenTelemetry Configuration
    otel_enabled: bool = False
    otel_service_name: str = "kure-rules-api"
    otel_exporter_otlp_endpoint: str = "http://localhost:4317"

    # Database (rule store)
    database_url_app: str = DEFAULT_DATABASE_URL

    # Catalogs (medications / chronic conditions)
    catalog_backend: CatalogBackend = CatalogBackend.FILE
    catalog_file: str = "data/catalog.sample.json"
    clinic_api_url: str | None = None
    clinic_api_token: str | None = None
    clinic_api_timeout_seconds: float = 5.0

    # Rule limits
    rule_max_source_bytes: int = 65536
    render_timeout_seconds: float = 10.0

    # Metrics token for protecting /metrics endpoint
    metrics_token: str | None = None

    # CORS Configuration
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_sqlite(self) -> bool:
        return self.database_url_app.startswith("sqlite")

    @property
    def async_url(self) -> str:
        """
        DATABASE_URL_APP rewritten for SQLAlchemy's async engine.

        - postgresql:// and postgres:// use the asyncpg driver
        - sqlite:// uses the aiosqlite driver
        - engine-only query options (pool_size, ...) are removed
        """
        url = self.database_url_app
        for prefix, replacement in (
            ("postgresql+psycopg://", "postgresql+asyncpg://"),
            ("postgresql://", "postgresql+asyncpg://"),
            ("postgres://", "postgresql+asyncpg://"),
            ("sqlite://", "sqlite+aiosqlite://"),
        ):
            if url.startswith(prefix):
                url = replacement + url[len(prefix) :]
                break
        return _strip_engine_query_options(url)

    @field_validator("app_env", mode="before")
    @classmethod
    def validate_app_env(cls, v: str | AppEnvironment) -> AppEnvironment:
        """Validate and parse app_env to AppEnvironment enum."""
        if isinstance(v, AppEnvironment):
            return v
        try:
            return AppEnvironment(v.lower())
        except ValueError:
            raise ValueError(
                f"app_env must be one of {[e.value for e in AppEnvironment]}, got '{v}'"
            )

    @field_validator("catalog_backend", mode="before")
    @classmethod
    def validate_catalog_backend(cls, v: str | CatalogBackend) -> CatalogBackend:
        if isinstance(v, CatalogBackend):
            return v
        return CatalogBackend(v.strip().lower())

    @field_validator("rule_max_source_bytes")
    @classmethod
    def validate_rule_max_source_bytes(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("RULE_MAX_SOURCE_BYTES must be positive")
        return v

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """
        Validate production-specific settings.

        These checks prevent insecure configurations from being deployed to production.
        """
        if self.catalog_backend == CatalogBackend.CLINIC_API and not self.clinic_api_url:
            raise ValueError("CLINIC_API_URL is required when CATALOG_BACKEND=clinic_api")

        if self.app_env == AppEnvironment.PROD:
            if self.is_sqlite:
                raise ValueError("DATABASE_URL_APP must use PostgreSQL in production")

            if self.clinic_api_url and not self.clinic_api_url.startswith("https://"):
                raise ValueError("CLINIC_API_URL must use HTTPS in production")

            # CORS must not allow localhost in production
            for origin in self.cors_origins_list:
                if "localhost" in origin or "127.0.0.1" in origin:
                    raise ValueError(
                        f"CORS origins must not contain localhost in production: {origin}"
                    )

        return self


def _strip_engine_query_options(url: str) -> str:
    parts = urlsplit(url)
    if not parts.query:
        return url
    query = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key not in ENGINE_ONLY_QUERY_OPTIONS
    ]
    return urlunsplit(parts._replace(query=urlencode(query)))


settings = Settings()
