"""Shared fixtures for the NousGuard test suite."""
import secrets

import pytest
import structlog

from nousguard.crypto import KEY_SPEC, KeyHandle


@pytest.fixture
def key():
    return KeyHandle("test-key", KEY_SPEC, secrets.token_bytes(32))


@pytest.fixture
def other_key():
    return KeyHandle("test-key", KEY_SPEC, secrets.token_bytes(32))


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "journal.sqlite3")


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep config files and env overrides out of the real user profile."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.setenv("APPDATA", str(tmp_path / "appdata"))
    for name in ("NOUSGUARD_DB", "NOUSGUARD_KEYSTORE", "NOUSGUARD_LOG_LEVEL", "NOUSGUARD_LOG_FILE"):
        monkeypatch.delenv(name, raising=False)
    yield
    structlog.reset_defaults()
