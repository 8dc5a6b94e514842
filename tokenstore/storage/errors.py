from __future__ import annotations

from typing import Any, Dict, Optional


class CacheError(Exception):
    """Raised when a Redis command fails at the transport or server level."""

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        key: Optional[str] = None,
        detail: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.key = key
        self.detail = detail or {}


class CacheReadError(CacheError):
    pass


class CacheWriteError(CacheError):
    pass


class CacheDeleteError(CacheError):
    pass


class DecodeError(Exception):
    """Raised when a stored session hash is missing fields or holds garbage."""

    def __init__(self, message: str, *, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class ConfigFallbackWarning(UserWarning):
    """The cache-resident device limit was malformed; the default was used."""


__all__ = [
    "CacheError",
    "CacheReadError",
    "CacheWriteError",
    "CacheDeleteError",
    "DecodeError",
    "ConfigFallbackWarning",
]
