"""Unit tests for settings: database URL normalization and production guards."""

import pytest
from pydantic import ValidationError

from app.core.config import AppEnvironment, Settings
from app.domain.enums import CatalogBackend

PG_URL = "postgresql://kure:pass@db:5432/kure"


def _make_settings(**overrides) -> Settings:
    values = {"app_env": "local", "database_url_app": "sqlite:///./.local/test.db"}
    values.update(overrides)
    return Settings(**values)


def test_async_url_strips_engine_query_options() -> None:
    """Engine-only options in DATABASE_URL_APP should not be passed to asyncpg connect()."""
    settings = _make_settings(
        database_url_app=PG_URL + "?pool_size=20&max_overflow=10&sslmode=require"
    )

    url = settings.async_url

    assert url.startswith("postgresql+asyncpg://")
    assert "pool_size=" not in url
    assert "max_overflow=" not in url
    assert "sslmode=require" in url


@pytest.mark.parametrize(
    ("database_url", "expected_prefix"),
    [
        ("postgres://kure@db/kure", "postgresql+asyncpg://"),
        ("postgresql+psycopg://kure@db/kure", "postgresql+asyncpg://"),
        ("postgresql+asyncpg://kure@db/kure", "postgresql+asyncpg://"),
        ("sqlite:///./rules.db", "sqlite+aiosqlite://"),
        ("sqlite+aiosqlite:///./rules.db", "sqlite+aiosqlite://"),
    ],
)
def test_async_url_driver(database_url: str, expected_prefix: str) -> None:
    assert _make_settings(database_url_app=database_url).async_url.startswith(expected_prefix)


def test_is_sqlite() -> None:
    assert _make_settings().is_sqlite is True
    assert _make_settings(database_url_app=PG_URL).is_sqlite is False


def test_app_env_is_case_insensitive() -> None:
    assert _make_settings(app_env="TEST").app_env == AppEnvironment.TEST


def test_unknown_app_env_is_rejected() -> None:
    with pytest.raises(ValidationError):
        _make_settings(app_env="staging")


def test_cors_origins_list() -> None:
    settings = _make_settings(cors_origins=" https://a.example , ,https://b.example")

    assert settings.cors_origins_list == ["https://a.example", "https://b.example"]


def test_rule_max_source_bytes_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        _make_settings(rule_max_source_bytes=0)


def test_clinic_api_backend_requires_url() -> None:
    with pytest.raises(ValidationError, match="CLINIC_API_URL is required"):
        _make_settings(catalog_backend="clinic_api")


def test_catalog_backend_parsing() -> None:
    settings = _make_settings(catalog_backend=" Clinic_API ", clinic_api_url="http://clinic")

    assert settings.catalog_backend == CatalogBackend.CLINIC_API


class TestProductionGuards:
    def _prod(self, **overrides) -> Settings:
        values = {
            "app_env": "prod",
            "database_url_app": PG_URL,
            "cors_origins": "https://clinic.example",
        }
        values.update(overrides)
        return Settings(**values)

    def test_valid_production_settings(self) -> None:
        settings = self._prod(
            catalog_backend="clinic_api", clinic_api_url="https://clinic.example/api"
        )

        assert settings.app_env == AppEnvironment.PROD

    def test_sqlite_rejected(self) -> None:
        with pytest.raises(ValidationError, match="PostgreSQL"):
            self._prod(database_url_app="sqlite:///./rules.db")

    def test_plain_http_clinic_api_rejected(self) -> None:
        with pytest.raises(ValidationError, match="HTTPS"):
            self._prod(catalog_backend="clinic_api", clinic_api_url="http://clinic.example/api")

    def test_localhost_cors_rejected(self) -> None:
        with pytest.raises(ValidationError, match="localhost"):
            self._prod(cors_origins="https://clinic.example,http://localhost:3000")
