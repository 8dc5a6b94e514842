from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum, IntFlag
from typing import Dict, Mapping, Union

from tokenstore.storage.errors import DecodeError


class LoginType(str, Enum):
    """Channel a session was established through; drives expiry."""

    WEB = "web"
    APP = "app"
    WX = "wx"
    ALIPAY = "alipay"


class AuthType(str, Enum):
    PASSWORD = "password"
    SMS = "sms"
    OAUTH = "oauth"


class Scope(IntFlag):
    NONE = 0
    READ = 1 << 0
    WRITE = 1 << 1
    MANAGE = 1 << 2
    ADMIN = READ | WRITE | MANAGE


# Values written by other producers that this version does not know are kept
# as plain strings instead of failing the whole decode.
LoginTypeValue = Union[LoginType, str]
AuthTypeValue = Union[AuthType, str]

SESSION_FIELDS = ("user_id", "login_type", "auth_type", "creation_date", "expires_in", "scope")
_REQUIRED_FIELDS = ("user_id", "login_type", "auth_type", "creation_date", "scope")


@dataclass(frozen=True)
class Session:
    user_id: str
    login_type: LoginTypeValue
    auth_type: AuthTypeValue
    creation_date: int
    scope: int = Scope.NONE
    expires_in: int = 0

    @classmethod
    def new(
        cls,
        user_id: Union[int, str],
        *,
        login_type: LoginTypeValue = LoginType.WEB,
        auth_type: AuthTypeValue = AuthType.PASSWORD,
        scope: int = Scope.NONE,
        expires_in: int = 0,
        now: float | None = None,
    ) -> "Session":
        user_id = str(user_id)
        if not is_unsigned_id(user_id):
            raise ValueError(f"user_id must be an unsigned integer: {user_id!r}")
        created = int(time.time() if now is None else now)
        return cls(
            user_id=user_id,
            login_type=login_type,
            auth_type=auth_type,
            creation_date=created,
            scope=int(scope),
            expires_in=expires_in,
        )


def is_unsigned_id(value: str) -> bool:
    return bool(value) and value.isascii() and value.isdigit()


def _enum_value(value: Union[Enum, str]) -> str:
    return value.value if isinstance(value, Enum) else str(value)


def encode_session(session: Session) -> Dict[str, str]:
    """Flatten a session into hash fields; every value is stringified."""
    return {
        "user_id": session.user_id,
        "login_type": _enum_value(session.login_type),
        "auth_type": _enum_value(session.auth_type),
        "creation_date": str(int(session.creation_date)),
        "expires_in": str(int(session.expires_in)),
        "scope": str(int(session.scope)),
    }


def _parse_unsigned(mapping: Mapping[str, str], name: str) -> int:
    raw = mapping[name]
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise DecodeError(f"session field {name!r} is not an integer: {raw!r}", field=name) from None
    if value < 0:
        raise DecodeError(f"session field {name!r} is negative: {value}", field=name)
    return value


def decode_session(mapping: Mapping[str, str]) -> Session:
    """Rebuild a session from an HGETALL result.

    Raises:
        DecodeError: a required field is missing or a numeric field is malformed.
    """
    for name in _REQUIRED_FIELDS:
        if not mapping.get(name):
            raise DecodeError(f"session field {name!r} is missing", field=name)

    login_raw = mapping["login_type"]
    try:
        login_type: LoginTypeValue = LoginType(login_raw)
    except ValueError:
        login_type = login_raw

    auth_raw = mapping["auth_type"]
    try:
        auth_type: AuthTypeValue = AuthType(auth_raw)
    except ValueError:
        auth_type = auth_raw

    creation_date = _parse_unsigned(mapping, "creation_date")
    scope = _parse_unsigned(mapping, "scope")
    expires_in = _parse_unsigned(mapping, "expires_in") if mapping.get("expires_in") else 0

    return Session(
        user_id=mapping["user_id"],
        login_type=login_type,
        auth_type=auth_type,
        creation_date=creation_date,
        scope=scope,
        expires_in=expires_in,
    )


__all__ = [
    "AuthType",
    "LoginType",
    "Scope",
    "Session",
    "SESSION_FIELDS",
    "decode_session",
    "encode_session",
    "is_unsigned_id",
]
