from __future__ import annotations

import os
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator

from chirpy.logging import get_logger

logger = get_logger(__name__)

DEFAULT_DATABASE_PATH = "database/database.json"


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


class Settings(BaseModel):
    """Runtime settings for the chirpy server."""

    jwt_secret: str = env_field(
        "", "JWT_SECRET", description="HS256 signing secret", validate_default=True
    )
    polka_api_key: str | None = env_field(
        None, "POLKA_API_KEY", description="Shared key expected on Polka webhooks"
    )
    database_path: str = env_field(DEFAULT_DATABASE_PATH, "DATABASE_PATH")
    static_root: str = env_field("static", "STATIC_ROOT", description="Directory served under /app")
    debug: bool = env_field(False, "DEBUG")
    test_mode: bool = env_field(False, "TEST_MODE")

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_env(cls) -> "Settings":
        env_file_values = dotenv_values(".env")
        merged: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            extra = field.json_schema_extra or {}
            env_key = extra.get("env") if isinstance(extra, dict) else None
            env_name = env_key or name.upper()
            if env_name in os.environ:
                merged[name] = os.environ[env_name]
            elif env_name in env_file_values:
                merged[name] = env_file_values[env_name]
        return cls(**merged)

    @field_validator("jwt_secret")
    @classmethod
    def _ensure_jwt_secret(cls, value: str | None) -> str:
        if value and value.strip():
            return value
        logger.error("jwt_secret_missing")
        raise ValueError("JWT_SECRET must be set to a non-empty value")

    @field_validator("database_path")
    @classmethod
    def _ensure_database_path(cls, value: str) -> str:
        return value.strip() or DEFAULT_DATABASE_PATH


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings.from_env()
    return _settings_cache


_settings_cache: Settings | None = None


def reset_settings_cache() -> None:
    """Clear cached settings so future calls re-read the environment."""

    global _settings_cache
    _settings_cache = None
