"""Tests for Settings validation.

Tests:
    - postgresql:// URLs are rewritten to the asyncpg driver
    - Production rejects development SMTP/sender/base-URL defaults
    - A fully configured production Settings loads
"""

import pytest
from pydantic import ValidationError

from gatehouse.config import Settings


def test_database_url_uses_asyncpg_driver():
    settings = Settings(
        _env_file=None, database_url="postgresql://u:p@db:5432/gatehouse",
    )
    assert settings.database_url == "postgresql+asyncpg://u:p@db:5432/gatehouse"


def test_production_rejects_development_defaults():
    with pytest.raises(ValidationError) as exc_info:
        Settings(_env_file=None, environment="production")
    message = str(exc_info.value)
    assert "SMTP_HOST" in message
    assert "EMAIL_FROM" in message
    assert "APP_BASE_URL" in message


def test_production_settings_load():
    settings = Settings(
        _env_file=None,
        environment="production",
        smtp_host="smtp.mailhost.net",
        email_from="noreply@gatehouse.io",
        app_base_url="https://gatehouse.io",
    )
    assert settings.is_production
