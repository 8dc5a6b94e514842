"""Redis key builders for the session store.

Every key lives under one namespace prefix and a fixed family segment, so the
three families can never collide::

    <prefix>:token:<token>          session hash
    <prefix>:user:<user_id>         set of the user's active tokens
    <prefix>:bind:<token>           set of index key names referencing the token
    <prefix>:config:max_tokens      device limit override

Keys are small frozen dataclasses rather than bare strings; ``str(key)`` (or
``key.name``) gives the Redis key.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

TOKEN_FAMILY = "token"
USER_TOKENS_FAMILY = "user"
BINDINGS_FAMILY = "bind"
CONFIG_FAMILY = "config"


@dataclass(frozen=True)
class TokenKey:
    prefix: str
    token: str

    @property
    def name(self) -> str:
        return f"{self.prefix}:{TOKEN_FAMILY}:{self.token}"

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class UserTokensKey:
    prefix: str
    user_id: str

    @property
    def name(self) -> str:
        return f"{self.prefix}:{USER_TOKENS_FAMILY}:{self.user_id}"

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class TokenBindingsKey:
    prefix: str
    token: str

    @property
    def name(self) -> str:
        return f"{self.prefix}:{BINDINGS_FAMILY}:{self.token}"

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class ConfigKey:
    prefix: str
    setting: str

    @property
    def name(self) -> str:
        return f"{self.prefix}:{CONFIG_FAMILY}:{self.setting}"

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class ForeignIndexKey:
    """A bindings member that is not an index this store maintains."""

    name: str

    def __str__(self) -> str:
        return self.name


IndexKey = Union[UserTokensKey, ForeignIndexKey]
CacheKey = Union[TokenKey, UserTokensKey, TokenBindingsKey, ConfigKey, ForeignIndexKey]


class KeyScheme:
    """Builds and parses the store's keys for one namespace."""

    def __init__(self, prefix: str = "session"):
        if not prefix or ":" in prefix:
            raise ValueError("key prefix must be non-empty and contain no ':'")
        self.prefix = prefix

    def token_key(self, token: str) -> TokenKey:
        return TokenKey(self.prefix, _require(token, "token"))

    def user_tokens_key(self, user_id: str) -> UserTokensKey:
        return UserTokensKey(self.prefix, _require(str(user_id), "user_id"))

    def token_bindings_key(self, token: str) -> TokenBindingsKey:
        return TokenBindingsKey(self.prefix, _require(token, "token"))

    def max_tokens_key(self) -> ConfigKey:
        return ConfigKey(self.prefix, "max_tokens")

    def parse_index_key(self, name: str) -> IndexKey:
        """Tag a member of a bindings set by the index family it belongs to."""
        user_prefix = f"{self.prefix}:{USER_TOKENS_FAMILY}:"
        if name.startswith(user_prefix) and len(name) > len(user_prefix):
            return UserTokensKey(self.prefix, name[len(user_prefix):])
        return ForeignIndexKey(name)


def _require(value: str, what: str) -> str:
    if not value:
        raise ValueError(f"{what} must not be empty")
    return value


__all__ = [
    "CacheKey",
    "ConfigKey",
    "ForeignIndexKey",
    "IndexKey",
    "KeyScheme",
    "TokenBindingsKey",
    "TokenKey",
    "UserTokensKey",
]
