"""
tests/test_cli.py -- The admin CLI end to end against a temporary SQLite file.

Each test points DATABASE_URL at its own file and uses the in-process code
store, then clears the get_settings() cache so the CLI sees the overrides.
"""

from __future__ import annotations

import pytest

from core.config import get_settings
from main import main


@pytest.fixture(autouse=True)
def cli_env(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'cli.db'}")
    monkeypatch.setenv("CODE_STORE_BACKEND", "memory")
    monkeypatch.setenv("BCRYPT_ROUNDS", "4")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def _last_line(capsys) -> str:
    return capsys.readouterr().out.strip().splitlines()[-1]


def test_service_token_is_idempotent(capsys):
    assert main(["service-token", "billing"]) == 0
    first = _last_line(capsys)
    assert main(["service-token", "billing"]) == 0
    assert _last_line(capsys) == first
    assert len(first) == 64


def test_register_and_role_management(capsys):
    assert main(["register", "alice", "--password", "correct-horse"]) == 0
    assert "registered" in _last_line(capsys)

    assert main(["get-role", "1"]) == 0
    assert _last_line(capsys) == "user"

    assert main(["create-role", "auditor"]) == 0
    assert main(["set-role", "1", "auditor"]) == 0
    capsys.readouterr()
    assert main(["get-role", "1"]) == 0
    assert _last_line(capsys) == "auditor"


def test_register_prompts_for_password(monkeypatch, capsys):
    monkeypatch.setattr("main.getpass.getpass", lambda prompt: "correct-horse")
    assert main(["register", "bob"]) == 0
    assert "registered" in _last_line(capsys)


def test_service_error_exits_nonzero(capsys):
    assert main(["set-role", "1", "superuser"]) == 1
    assert "superuser" in _last_line(capsys)


def test_unknown_account(capsys):
    assert main(["get-role", "99"]) == 1
    assert "not found" in _last_line(capsys)
