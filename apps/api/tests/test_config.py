from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

import pytest

from parentwise import main
from parentwise.config import ConfigError, load_config

API_ROOT = Path(__file__).resolve().parents[1]

BASE_ENV = {
    "DATABASE_URL": "sqlite:///./parentwise.db",
    "AUTH_SECRET": "secret",
    "AUTH_URL": "http://localhost:3000",
}


def test_minimal_environment_loads() -> None:
    config = load_config(BASE_ENV)
    assert config.auth_url == "http://localhost:3000"
    assert config.environment == "development"
    assert config.openai_model == "gpt-4o-mini"
    assert config.google_enabled is False
    assert config.email_enabled is False
    assert config.resolved_database_path.name == "parentwise.db"
    assert (config.host, config.port) == ("127.0.0.1", 8000)


def test_missing_required_values_are_all_reported() -> None:
    with pytest.raises(ConfigError) as excinfo:
        load_config({"AUTH_URL": ""})
    problems = " ".join(excinfo.value.problems)
    assert "DATABASE_URL" in problems
    assert "AUTH_SECRET" in problems
    assert "AUTH_URL" in problems


def test_legacy_nextauth_names_are_honoured() -> None:
    config = load_config(
        {
            "DATABASE_URL": "parentwise.db",
            "NEXTAUTH_SECRET": "legacy",
            "NEXTAUTH_URL": "https://app.parentwise.com/",
        }
    )
    assert config.auth_secret == "legacy"
    assert config.auth_url == "https://app.parentwise.com"


def test_non_sqlite_database_is_rejected() -> None:
    with pytest.raises(ConfigError) as excinfo:
        load_config({**BASE_ENV, "DATABASE_URL": "postgresql://localhost/parentwise"})
    assert excinfo.value.problems[0].startswith("DATABASE_URL")


def test_unknown_environment_is_rejected() -> None:
    with pytest.raises(ConfigError):
        load_config({**BASE_ENV, "ENVIRONMENT": "staging"})


def test_optional_integrations() -> None:
    config = load_config(
        {
            **BASE_ENV,
            "GOOGLE_CLIENT_ID": "id",
            "GOOGLE_CLIENT_SECRET": "secret",
            "EMAIL_SERVER_HOST": "smtp.example.com",
            "CORS_ORIGINS": "http://localhost:3000, https://app.parentwise.com,",
        }
    )
    assert config.google_enabled is True
    assert config.email_enabled is True
    assert config.email_server_port == 587
    assert config.allowed_origins == ["http://localhost:3000", "https://app.parentwise.com"]


def test_app_exits_when_configuration_is_invalid(tmp_path) -> None:
    env = {key: value for key, value in os.environ.items() if key not in ("AUTH_SECRET", "NEXTAUTH_SECRET")}
    env["DATABASE_URL"] = f"sqlite:///{tmp_path / 'exit.db'}"
    env["PYTHONPATH"] = str(API_ROOT)
    result = subprocess.run(
        [sys.executable, "-c", "import parentwise.main"],
        env=env,
        capture_output=True,
        text=True,
        timeout=60,
    )
    assert result.returncode == 1
    assert "AUTH_SECRET" in result.stderr


def test_run_serves_app_with_uvicorn(monkeypatch) -> None:
    calls = []
    monkeypatch.setattr(main.uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))
    main.run()
    assert calls == [(main.app, {"host": main.CONFIG.host, "port": main.CONFIG.port, "log_level": main.CONFIG.log_level.lower()})]
