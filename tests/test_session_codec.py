"""Tests for the session hash codec."""

import pytest

from tokenstore.storage.errors import DecodeError
from tokenstore.storage.models import (
    SESSION_FIELDS,
    AuthType,
    LoginType,
    Scope,
    Session,
    decode_session,
    encode_session,
    is_unsigned_id,
)


def make_session(**overrides) -> Session:
    values = dict(
        user_id="1001",
        login_type=LoginType.WX,
        auth_type=AuthType.SMS,
        creation_date=1_700_000_000,
        scope=int(Scope.ADMIN),
        expires_in=7200,
    )
    values.update(overrides)
    return Session(**values)


def test_round_trip_with_all_fields():
    session = make_session()
    assert decode_session(encode_session(session)) == session


def test_encode_stringifies_every_field():
    encoded = encode_session(make_session())
    assert set(encoded) == set(SESSION_FIELDS)
    assert all(isinstance(v, str) for v in encoded.values())
    assert encoded["login_type"] == "wx"
    assert encoded["auth_type"] == "sms"
    assert encoded["scope"] == "7"


def test_new_uses_given_timestamp_and_defaults():
    session = Session.new(55, now=1234.9)
    assert session.user_id == "55"
    assert session.creation_date == 1234
    assert session.login_type is LoginType.WEB
    assert session.auth_type is AuthType.PASSWORD
    assert session.expires_in == 0
    assert session.scope == Scope.NONE


def test_expires_in_is_optional():
    encoded = encode_session(make_session())
    del encoded["expires_in"]
    assert decode_session(encoded).expires_in == 0


@pytest.mark.parametrize("field", ["user_id", "login_type", "auth_type", "creation_date", "scope"])
def test_missing_required_field_raises(field):
    encoded = encode_session(make_session())
    del encoded[field]
    with pytest.raises(DecodeError) as exc:
        decode_session(encoded)
    assert exc.value.field == field


@pytest.mark.parametrize(
    "field,value",
    [("creation_date", "yesterday"), ("scope", "-1"), ("expires_in", "1.5")],
)
def test_malformed_numeric_field_raises(field, value):
    encoded = encode_session(make_session())
    encoded[field] = value
    with pytest.raises(DecodeError):
        decode_session(encoded)


def test_empty_mapping_raises():
    with pytest.raises(DecodeError):
        decode_session({})


def test_unknown_login_and_auth_types_are_preserved():
    encoded = encode_session(make_session())
    encoded["login_type"] = "kiosk"
    encoded["auth_type"] = "passkey"
    session = decode_session(encoded)
    assert session.login_type == "kiosk"
    assert session.auth_type == "passkey"
    assert decode_session(encode_session(session)) == session


@pytest.mark.parametrize("user_id", [-1, "", "abc", "12a", "²", " 7"])
def test_new_rejects_non_unsigned_user_id(user_id):
    with pytest.raises(ValueError):
        Session.new(user_id, now=0)


def test_is_unsigned_id():
    assert is_unsigned_id("0")
    assert is_unsigned_id("18446744073709551615")
    assert not is_unsigned_id("")
    assert not is_unsigned_id("-1")
    assert not is_unsigned_id("²")
