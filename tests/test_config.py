"""
tests/test_config.py -- Unit tests for core/config.py (Settings).

Settings are built directly with _env_file=None so a developer's .env cannot
leak into the assertions.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import Settings


def test_production_requires_secret_key(monkeypatch):
    monkeypatch.delenv("SECRET_KEY", raising=False)
    with pytest.raises(ValidationError, match="SECRET_KEY is required"):
        Settings(_env_file=None, debug=False, secret_key="")


def test_debug_generates_secret_key():
    settings = Settings(_env_file=None, debug=True, secret_key="")
    assert len(settings.secret_key) >= 32


def test_short_secret_key_rejected():
    with pytest.raises(ValidationError, match="at least 32 characters"):
        Settings(_env_file=None, debug=True, secret_key="too-short")


def test_negative_lockout_attempts_rejected():
    with pytest.raises(ValidationError, match="must not be negative"):
        Settings(_env_file=None, debug=True, lockout_max_failed_attempts=-1)


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "k" * 40)
    monkeypatch.setenv("LOCKOUT_MINUTES", "15")
    monkeypatch.setenv("SMTP_HOST", "smtp.example.com")
    settings = Settings(_env_file=None)
    assert settings.secret_key == "k" * 40
    assert settings.lockout_minutes == 15
    assert settings.smtp_host == "smtp.example.com"
    assert settings.jwt_issuer == "bridge-auth"
