"""Token sessions in Redis with per-user indices.

Three key families are kept in step (see ``tokenstore.storage.keys``): the
session hash per token, the set of active tokens per user, and the set of
index keys that reference each token. Redis offers no transaction across the
sequence of commands used here, so composite operations can interleave with
concurrent callers. Token-key existence is the only validity signal; an index
entry pointing at a missing token key is harmless and can be cleared with
``reconcile_user_tokens``.
"""

from __future__ import annotations

import time
import warnings
from typing import Callable, List, Optional, Set, Type, Union

from tokenstore.config import Settings, get_settings
from tokenstore.logging import get_logger
from tokenstore.service.errors import (
    DeviceLimitExceededError,
    TokenInvalidError,
    TokenNotFoundError,
)
from tokenstore.service.policy import SessionPolicy
from tokenstore.storage.errors import CacheReadError, ConfigFallbackWarning, DecodeError
from tokenstore.storage.keys import KeyScheme, UserTokensKey
from tokenstore.storage.models import (
    AuthType,
    AuthTypeValue,
    LoginType,
    LoginTypeValue,
    Session,
    decode_session,
    encode_session,
    is_unsigned_id,
)
from tokenstore.storage.redis_cache import RedisCache

logger = get_logger(__name__)


class SessionStore:
    """Session lookup, device limiting and cascading revocation over Redis."""

    def __init__(
        self,
        cache: RedisCache,
        *,
        policy: Optional[SessionPolicy] = None,
        keys: Optional[KeyScheme] = None,
        max_tokens_default: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.cache = cache
        settings = get_settings()
        self.policy = policy or SessionPolicy.from_settings(settings)
        self.keys = keys or KeyScheme()
        self.max_tokens_default = (
            settings.session_max_tokens_default
            if max_tokens_default is None
            else max_tokens_default
        )
        self._clock = clock

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def _load(
        self, token: str, missing: Type[TokenInvalidError] = TokenInvalidError
    ) -> Session:
        key = self.keys.token_key(token)
        # EXISTS first: HGETALL on a missing key returns an empty mapping
        if not await self.cache.exists(key):
            raise missing()
        mapping = await self.cache.read_hash(key)
        if not mapping:
            # expired between the two calls
            raise missing()
        try:
            return decode_session(mapping)
        except DecodeError as exc:
            logger.error("session_decode_failed", field=exc.field, error=exc.message)
            raise

    async def get_session(self, token: str) -> Session:
        """Return the session bound to ``token``.

        Raises:
            TokenInvalidError: the token key does not exist.
            DecodeError: the stored hash is corrupt.
        """
        return await self._load(token)

    async def get_auth_id(self, token: str) -> int:
        """Resolve ``token`` to the numeric id of the user that owns it."""
        session = await self._load(token)
        user_id = session.user_id
        if not is_unsigned_id(user_id):
            logger.error("session_user_id_invalid", user_id=user_id)
            raise DecodeError(f"session user_id is not numeric: {user_id!r}", field="user_id")
        return int(user_id)

    async def get_token_ttl(self, token: str) -> int:
        return await self.cache.ttl(self.keys.token_key(token))

    # ------------------------------------------------------------------
    # Device limit
    # ------------------------------------------------------------------

    async def user_token_count(self, user_id: Union[int, str]) -> int:
        return await self.cache.cardinality(self.keys.user_tokens_key(str(user_id)))

    async def user_token_max_count(self) -> int:
        """Device limit from the cache-resident config key, else the default."""
        key = self.keys.max_tokens_key()
        try:
            raw = await self.cache.get(key)
        except CacheReadError:
            # already logged by the cache layer
            return self.max_tokens_default
        if raw is None:
            return self.max_tokens_default
        try:
            value = int(raw)
        except (TypeError, ValueError):
            value = 0
        if value <= 0:
            warnings.warn(
                f"device limit {raw!r} is not a positive integer; "
                f"using {self.max_tokens_default}",
                ConfigFallbackWarning,
                stacklevel=2,
            )
            return self.max_tokens_default
        return value

    async def set_user_token_max_count(self, value: int) -> None:
        if value <= 0:
            raise ValueError("device limit must be a positive integer")
        await self.cache.set(self.keys.max_tokens_key(), str(int(value)))
        logger.info("device_limit_updated", limit=value)

    async def is_user_token_over(self, user_id: Union[int, str]) -> bool:
        """True when the user already holds the maximum number of sessions.

        What to do about it (reject the login or evict an older session) is up
        to the caller.
        """
        count = await self.user_token_count(user_id)
        limit = await self.user_token_max_count()
        logger.debug("user_token_count", user_id=str(user_id), count=count, limit=limit)
        return count >= limit

    async def list_user_tokens(self, user_id: Union[int, str]) -> Set[str]:
        return await self.cache.members(self.keys.user_tokens_key(str(user_id)))

    # ------------------------------------------------------------------
    # Create / index / expire
    # ------------------------------------------------------------------

    async def to_cache(
        self,
        token: str,
        user_id: Union[int, str],
        *,
        login_type: LoginTypeValue = LoginType.WEB,
        auth_type: AuthTypeValue = AuthType.PASSWORD,
        role: Optional[str] = None,
        expires_in: int = 0,
    ) -> Session:
        """Write the session hash for ``token``.

        Indexing and expiry are separate calls (``sync_user_token_cache`` and
        ``update_user_token_cache_expire``); a session written without them is
        valid but not counted against the device limit.

        Raises:
            ValueError: ``user_id`` is not an unsigned integer; nothing is written.
        """
        session = Session.new(
            user_id,
            login_type=login_type,
            auth_type=auth_type,
            scope=self.policy.scope_for(role),
            expires_in=expires_in,
            now=self._clock(),
        )
        await self.cache.write_hash(self.keys.token_key(token), encode_session(session))
        return session

    async def sync_user_token_cache(self, token: str) -> None:
        """Add ``token`` to its owner's token set and record that binding.

        If the second write fails the token is already in the user's set; a
        retry or ``revoke_user_tokens`` repairs it.
        """
        session = await self._load(token, TokenNotFoundError)
        user_key = self.keys.user_tokens_key(session.user_id)
        await self.cache.add_member(user_key, token)
        await self.cache.add_member(self.keys.token_bindings_key(token), user_key.name)

    async def update_user_token_cache_expire(self, token: str) -> int:
        """Apply the login-type TTL to the token key and return it.

        Only the token key expires; index keys are removed by revocation.
        """
        session = await self._load(token, TokenNotFoundError)
        ttl = self.policy.expiry_for(session.login_type)
        if not await self.cache.expire(self.keys.token_key(token), ttl):
            raise TokenNotFoundError()
        return ttl

    async def open_session(
        self,
        token: str,
        user_id: Union[int, str],
        *,
        login_type: LoginTypeValue = LoginType.WEB,
        auth_type: AuthTypeValue = AuthType.PASSWORD,
        role: Optional[str] = None,
        enforce_device_limit: bool = True,
    ) -> Session:
        """Login chain: limit check, write, index, expire.

        Raises:
            DeviceLimitExceededError: the user is at or over the device limit;
                nothing has been written.
        """
        if enforce_device_limit and await self.is_user_token_over(user_id):
            logger.info("device_limit_reached", user_id=str(user_id))
            raise DeviceLimitExceededError(
                "too many active sessions", detail={"user_id": str(user_id)}
            )
        session = await self.to_cache(
            token, user_id, login_type=login_type, auth_type=auth_type, role=role
        )
        await self.sync_user_token_cache(token)
        await self.update_user_token_cache_expire(token)
        return session

    # ------------------------------------------------------------------
    # Revocation
    # ------------------------------------------------------------------

    async def del_token_cache(self, token: str) -> None:
        """Delete the bindings key and the token key; user sets are untouched."""
        await self.cache.delete(self.keys.token_bindings_key(token))
        await self.cache.delete(self.keys.token_key(token))

    async def del_user_token_cache(self, token: str) -> None:
        """Remove ``token`` from its owner's set, then delete its keys.

        Raises ``TokenNotFoundError`` when the session has already expired,
        since the owner can no longer be found.
        """
        session = await self._load(token, TokenNotFoundError)
        await self.cache.remove_member(self.keys.user_tokens_key(session.user_id), token)
        await self.del_token_cache(token)

    async def user_token_expired(self, token: str) -> None:
        """Unlink ``token`` from every user set it is bound to.

        The token key itself is left alone.
        """
        bindings_key = self.keys.token_bindings_key(token)
        for name in sorted(await self.cache.members(bindings_key)):
            index_key = self.keys.parse_index_key(name)
            if not isinstance(index_key, UserTokensKey):
                continue
            await self.cache.remove_member(index_key, token)
        await self.cache.delete(bindings_key)

    async def revoke_user_tokens(self, user_id: Union[int, str]) -> int:
        """Revoke every token in the user's set, one by one.

        Not transactional: the set is deleted first, then tokens are revoked
        in order and the first failure stops the loop.
        """
        user_key = self.keys.user_tokens_key(str(user_id))
        tokens = await self.cache.members(user_key)
        await self.cache.delete(user_key)
        revoked = 0
        for token in sorted(tokens):
            await self.del_token_cache(token)
            revoked += 1
        logger.info("user_tokens_revoked", user_id=str(user_id), count=revoked)
        return revoked

    async def clean_user_token_cache(self, token: str) -> int:
        """Revoke all sessions of the user that owns ``token``."""
        session = await self._load(token, TokenNotFoundError)
        return await self.revoke_user_tokens(session.user_id)

    async def reconcile_user_tokens(self, user_id: Union[int, str]) -> List[str]:
        """Drop set members whose token key has expired; return them."""
        user_key = self.keys.user_tokens_key(str(user_id))
        removed: List[str] = []
        for token in sorted(await self.cache.members(user_key)):
            if await self.cache.exists(self.keys.token_key(token)):
                continue
            await self.cache.remove_member(user_key, token)
            await self.cache.delete(self.keys.token_bindings_key(token))
            removed.append(token)
        if removed:
            logger.info("user_tokens_reconciled", user_id=str(user_id), removed=len(removed))
        return removed

    async def close(self) -> None:
        await self.cache.close()


def create_session_store(settings: Optional[Settings] = None) -> SessionStore:
    """Build a store wired from settings (environment by default)."""
    settings = settings or get_settings()
    cache = RedisCache(settings.redis_url, socket_timeout=settings.redis_socket_timeout)
    return SessionStore(
        cache,
        policy=SessionPolicy.from_settings(settings),
        keys=KeyScheme(settings.session_key_prefix),
        max_tokens_default=settings.session_max_tokens_default,
    )


__all__ = ["SessionStore", "create_session_store"]
