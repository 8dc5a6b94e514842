from __future__ import annotations

import os
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator

from tokenstore.logging import get_logger

logger = get_logger(__name__)

_HOUR = 60 * 60
_DAY = 24 * _HOUR


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


class Settings(BaseModel):
    """Runtime settings for the session store."""

    redis_url: str = env_field("redis://localhost:6379/0", "REDIS_URL")
    redis_socket_timeout: float = env_field(
        5.0,
        "REDIS_SOCKET_TIMEOUT",
        description="Socket and connect timeout for every Redis command, in seconds",
    )
    session_key_prefix: str = env_field(
        "session",
        "SESSION_KEY_PREFIX",
        description="Namespace shared by token, user-tokens and bindings keys",
    )
    # Expiry per login channel; unknown channels use the app value
    session_ttl_web_seconds: int = env_field(7 * _DAY, "SESSION_TTL_WEB_SECONDS")
    session_ttl_app_seconds: int = env_field(3 * _DAY, "SESSION_TTL_APP_SECONDS")
    session_ttl_wx_seconds: int = env_field(2 * _HOUR, "SESSION_TTL_WX_SECONDS")
    session_ttl_alipay_seconds: int = env_field(_HOUR, "SESSION_TTL_ALIPAY_SECONDS")
    session_max_tokens_default: int = env_field(
        10,
        "SESSION_MAX_TOKENS_DEFAULT",
        description="Device limit used when the cache-resident limit is absent or unreadable",
    )
    session_default_role: str = env_field(
        "admin",
        "SESSION_DEFAULT_ROLE",
        description="Role whose scope is granted to sessions created without an explicit role",
    )

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

    @field_validator(
        "session_ttl_web_seconds",
        "session_ttl_app_seconds",
        "session_ttl_wx_seconds",
        "session_ttl_alipay_seconds",
        "session_max_tokens_default",
    )
    @classmethod
    def _require_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value

    @field_validator("redis_socket_timeout")
    @classmethod
    def _validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("session_key_prefix", "session_default_role")
    @classmethod
    def _require_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("session_key_prefix")
    @classmethod
    def _validate_prefix(cls, value: str) -> str:
        # ':' separates the namespace from the key family
        if ":" in value:
            raise ValueError("must not contain ':'")
        return value


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings.from_env()
        logger.debug(
            "settings_loaded",
            namespace=_settings_cache.session_key_prefix,
            max_tokens_default=_settings_cache.session_max_tokens_default,
        )
    return _settings_cache


_settings_cache: Settings | None = None


def reset_settings_cache() -> None:
    """Clear cached settings so future calls re-read the environment."""

    global _settings_cache
    _settings_cache = None
