from __future__ import annotations

import pytest
from pydantic import ValidationError

from content_portal import config as config_module
from content_portal.config import (
    DEFAULT_POLL_INTERVAL_MS,
    DEFAULT_POLL_TIMEOUT_MS,
    DEFAULT_VIDEO_POLL_MAX_ATTEMPTS,
    Settings,
)

_ENV_KEYS = [
    "N8N_WEBHOOK_URL",
    "N8N_POLL_INTERVAL_MS",
    "N8N_POLL_TIMEOUT_MS",
    "VIDEO_POLL_MAX_ATTEMPTS",
    "SHORT_VIDEO_MAKER_URL",
    "PG_DSN",
    "DB_POSTGRESDB_HOST",
    "DB_POSTGRESDB_PORT",
    "DB_POSTGRESDB_DATABASE",
    "DB_POSTGRESDB_USER",
    "DB_POSTGRESDB_PASSWORD",
    "CONTENT_TABLE",
]


def _settings(monkeypatch, env: dict) -> Settings:
    for k in _ENV_KEYS:
        monkeypatch.delenv(k, raising=False)
    for k, v in env.items():
        monkeypatch.setenv(k, v)
    config_module.get_settings.cache_clear()
    return Settings(_env_file=None)


def test_defaults(monkeypatch):
    s = _settings(monkeypatch, {})
    assert s.N8N_WEBHOOK_URL == ""
    assert s.N8N_POLL_INTERVAL_MS == DEFAULT_POLL_INTERVAL_MS
    assert s.N8N_POLL_TIMEOUT_MS == DEFAULT_POLL_TIMEOUT_MS
    assert s.SHORT_VIDEO_MAKER_URL == "http://localhost:3123"
    assert s.PG_DSN == ""
    assert s.CONTENT_TABLE == "content_items"


@pytest.mark.parametrize("raw", ["", "abc", "0", "-100"])
def test_bad_poll_values_fall_back_to_defaults(monkeypatch, raw):
    s = _settings(
        monkeypatch,
        {"N8N_POLL_INTERVAL_MS": raw, "N8N_POLL_TIMEOUT_MS": raw, "VIDEO_POLL_MAX_ATTEMPTS": raw},
    )
    assert s.N8N_POLL_INTERVAL_MS == DEFAULT_POLL_INTERVAL_MS
    assert s.N8N_POLL_TIMEOUT_MS == DEFAULT_POLL_TIMEOUT_MS
    assert s.VIDEO_POLL_MAX_ATTEMPTS == DEFAULT_VIDEO_POLL_MAX_ATTEMPTS


def test_explicit_poll_values_kept(monkeypatch):
    s = _settings(monkeypatch, {"N8N_POLL_INTERVAL_MS": "250", "N8N_POLL_TIMEOUT_MS": "9000"})
    assert s.N8N_POLL_INTERVAL_MS == 250
    assert s.N8N_POLL_TIMEOUT_MS == 9000


def test_urls_are_trimmed(monkeypatch):
    s = _settings(
        monkeypatch,
        {"N8N_WEBHOOK_URL": "  https://n8n.local/webhook/x  ", "SHORT_VIDEO_MAKER_URL": "http://v:3123/"},
    )
    assert s.N8N_WEBHOOK_URL == "https://n8n.local/webhook/x"
    assert s.SHORT_VIDEO_MAKER_URL == "http://v:3123"


def test_dsn_built_from_components(monkeypatch):
    s = _settings(
        monkeypatch,
        {
            "DB_POSTGRESDB_HOST": "localhost",
            "DB_POSTGRESDB_DATABASE": "n8n",
            "DB_POSTGRESDB_USER": "n8n",
            "DB_POSTGRESDB_PASSWORD": "pw",
        },
    )
    assert s.PG_DSN == "postgresql://n8n:pw@localhost:5432/n8n"


def test_explicit_dsn_wins(monkeypatch):
    s = _settings(
        monkeypatch,
        {"PG_DSN": "postgresql://u@h:5432/db2", "DB_POSTGRESDB_HOST": "ignored", "DB_POSTGRESDB_DATABASE": "x"},
    )
    assert s.PG_DSN == "postgresql://u@h:5432/db2"


def test_invalid_table_name_rejected(monkeypatch):
    with pytest.raises(ValidationError):
        _settings(monkeypatch, {"CONTENT_TABLE": "items; drop table x"})
