"""
Unit Tests - Settings
"""
from decimal import Decimal

from virtrade.config import Settings


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.API_V1_PREFIX == "/api/v1"
        assert settings.MAX_ACCOUNT_BALANCE == Decimal("1000000000000")
        assert settings.DEFAULT_MINOR_UNITS == 2

    def test_database_url_uses_asyncpg(self):
        settings = Settings(_env_file=None, DATABASE_URL="postgresql://u:p@db:5432/virtrade")
        assert settings.database_url == "postgresql+asyncpg://u:p@db:5432/virtrade"

    def test_database_url_from_parts(self):
        settings = Settings(_env_file=None, DATABASE_URL="", POSTGRES_HOST="db", POSTGRES_DB="vt")
        assert settings.database_url.startswith("postgresql+asyncpg://")
        assert settings.database_url.endswith("@db:5432/vt")

    def test_cors_origins_from_string(self):
        settings = Settings(_env_file=None, CORS_ORIGINS="http://a.test, http://b.test")
        assert settings.CORS_ORIGINS == ["http://a.test", "http://b.test"]
