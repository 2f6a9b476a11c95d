"""
tests/test_config.py -- Settings defaults, environment overrides and validation.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import Settings, get_settings


def test_defaults():
    settings = Settings(_env_file=None)
    assert settings.auth_code_length == 6
    assert settings.auth_code_ttl_seconds == 300
    assert settings.auth_code_write_mode == "blocking"
    assert settings.default_role == "user"
    assert settings.code_store_backend == "redis"


def test_environment_override(monkeypatch):
    monkeypatch.setenv("AUTH_CODE_LENGTH", "8")
    monkeypatch.setenv("CODE_STORE_BACKEND", "memory")
    settings = Settings(_env_file=None)
    assert settings.auth_code_length == 8
    assert settings.code_store_backend == "memory"


@pytest.mark.parametrize("length", [3, 13])
def test_code_length_bounds(length):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, auth_code_length=length)


@pytest.mark.parametrize(
    "field",
    ["auth_code_ttl_seconds", "auth_code_write_timeout_seconds", "request_timeout_seconds"],
)
def test_non_positive_durations_rejected(field):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: 0})


def test_unknown_write_mode_rejected():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, auth_code_write_mode="eventually")


def test_get_settings_is_cached():
    get_settings.cache_clear()
    try:
        assert get_settings() is get_settings()
    finally:
        get_settings.cache_clear()
