"""Application configuration utilities."""
from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class ConfigError(RuntimeError):
    """Raised when required environment variables are missing or invalid."""

    def __init__(self, problems: List[str]) -> None:
        self.problems = problems
        super().__init__("Invalid environment variables: " + "; ".join(problems))


class AppConfig(BaseModel):
    """Strongly typed configuration loaded from the process environment."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    # Database
    database_url: str = Field(..., alias="DATABASE_URL", min_length=1)

    # Auth
    auth_secret: str = Field(..., alias="AUTH_SECRET", min_length=1)
    auth_url: str = Field(..., alias="AUTH_URL", min_length=1)
    session_max_age_seconds: int = Field(default=30 * 24 * 60 * 60, alias="SESSION_MAX_AGE_SECONDS", gt=0)

    # OAuth providers
    google_client_id: Optional[str] = Field(default=None, alias="GOOGLE_CLIENT_ID")
    google_client_secret: Optional[str] = Field(default=None, alias="GOOGLE_CLIENT_SECRET")

    # Email
    email_server_host: Optional[str] = Field(default=None, alias="EMAIL_SERVER_HOST")
    email_server_port: int = Field(default=587, alias="EMAIL_SERVER_PORT")
    email_server_user: Optional[str] = Field(default=None, alias="EMAIL_SERVER_USER")
    email_server_password: Optional[str] = Field(default=None, alias="EMAIL_SERVER_PASSWORD")
    email_from: str = Field(default="noreply@parentwise.com", alias="EMAIL_FROM")

    # OpenAI
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-4o-mini", alias="OPENAI_MODEL")

    # Object storage and payments are read but unused by the API itself.
    aws_access_key_id: Optional[str] = Field(default=None, alias="AWS_ACCESS_KEY_ID")
    aws_secret_access_key: Optional[str] = Field(default=None, alias="AWS_SECRET_ACCESS_KEY")
    aws_region: Optional[str] = Field(default=None, alias="AWS_REGION")
    aws_s3_bucket: Optional[str] = Field(default=None, alias="AWS_S3_BUCKET")
    stripe_public_key: Optional[str] = Field(default=None, alias="STRIPE_PUBLIC_KEY")
    stripe_secret_key: Optional[str] = Field(default=None, alias="STRIPE_SECRET_KEY")
    stripe_webhook_secret: Optional[str] = Field(default=None, alias="STRIPE_WEBHOOK_SECRET")

    # Application
    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    cors_origins: str = Field(default="http://localhost:3000", alias="CORS_ORIGINS")
    host: str = Field(default="127.0.0.1", alias="HOST")
    port: int = Field(default=8000, alias="PORT", gt=0, lt=65536)

    @field_validator("database_url")
    @classmethod
    def _sqlite_only(cls, value: str) -> str:
        if "://" in value and not value.startswith("sqlite:///"):
            raise ValueError("only sqlite:/// URLs or plain file paths are supported")
        return value

    @field_validator("auth_url")
    @classmethod
    def _absolute_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("must be an absolute http(s) URL")
        return value.rstrip("/")

    @field_validator("environment")
    @classmethod
    def _known_environment(cls, value: str) -> str:
        if value not in {"development", "production", "test"}:
            raise ValueError("must be one of development, production, test")
        return value

    @property
    def resolved_database_path(self) -> Path:
        """Return the absolute path for the SQLite database file."""
        raw = self.database_url
        if raw.startswith("sqlite:///"):
            raw = raw[len("sqlite:///"):]
        path = Path(raw)
        if not path.is_absolute():
            path = Path(__file__).resolve().parents[1] / path
        return path.resolve()

    @property
    def google_enabled(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)

    @property
    def email_enabled(self) -> bool:
        return bool(self.email_server_host)

    @property
    def allowed_origins(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


def _apply_fallbacks(env: Mapping[str, str]) -> dict:
    values = {key: value for key, value in env.items() if value != ""}
    # Deployments that predate the rename still export the NEXTAUTH_* names.
    if "AUTH_SECRET" not in values and values.get("NEXTAUTH_SECRET"):
        values["AUTH_SECRET"] = values["NEXTAUTH_SECRET"]
    if "AUTH_URL" not in values and values.get("NEXTAUTH_URL"):
        values["AUTH_URL"] = values["NEXTAUTH_URL"]
    return values


def load_config(env: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Load configuration from the environment, raising helpful errors if invalid."""

    source = os.environ if env is None else env
    try:
        return AppConfig.model_validate(_apply_fallbacks(source))
    except ValidationError as exc:
        problems = []
        for error in exc.errors():
            field = ".".join(str(part) for part in error["loc"]) or "<root>"
            problems.append(f"{field}: {error['msg']}")
        raise ConfigError(problems) from exc


@lru_cache
def get_config() -> AppConfig:
    return load_config()
