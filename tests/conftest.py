import asyncio
import inspect
import os
import sys
from pathlib import Path
from typing import Dict, Optional, Set

os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402
from redis import ConnectionError as RedisConnectionError  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from tokenstore.config import reset_settings_cache  # noqa: E402
from tokenstore.service.policy import SessionPolicy  # noqa: E402
from tokenstore.service.session_store import SessionStore  # noqa: E402
from tokenstore.storage.keys import KeyScheme  # noqa: E402
from tokenstore.storage.models import LoginType  # noqa: E402
from tokenstore.storage.redis_cache import RedisCache  # noqa: E402


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedis:
    """In-memory stand-in for ``redis.asyncio.Redis`` (decode_responses=True).

    Covers the strings, hashes, sets and TTL commands the session store uses.
    Commands listed in ``fail_on`` raise ``redis.ConnectionError``.
    """

    def __init__(self, clock: Optional[FakeClock] = None):
        self.clock = clock or FakeClock()
        self.data: Dict[str, object] = {}
        self.expiry: Dict[str, float] = {}
        self.fail_on: Set[str] = set()
        self.commands: list = []
        self.closed = 0

    def _check(self, command: str) -> None:
        self.commands.append(command)
        if command in self.fail_on:
            raise RedisConnectionError(f"simulated failure on {command}")

    def _purge(self, key: str) -> None:
        deadline = self.expiry.get(key)
        if deadline is not None and deadline <= self.clock():
            self.data.pop(key, None)
            self.expiry.pop(key, None)

    def _lookup(self, key: str):
        self._purge(key)
        return self.data.get(key)

    async def exists(self, *keys: str) -> int:
        self._check("exists")
        return sum(1 for k in keys if self._lookup(k) is not None)

    async def hset(self, name: str, mapping: Dict[str, str]) -> int:
        self._check("hset")
        current = self._lookup(name)
        if current is None:
            current = {}
            self.data[name] = current
        added = sum(1 for f in mapping if f not in current)
        current.update({f: str(v) for f, v in mapping.items()})
        return added

    async def hgetall(self, name: str) -> Dict[str, str]:
        self._check("hgetall")
        return dict(self._lookup(name) or {})

    async def hkeys(self, name: str) -> list:
        self._check("hkeys")
        return list((self._lookup(name) or {}).keys())

    async def sadd(self, name: str, *values: str) -> int:
        self._check("sadd")
        current = self._lookup(name)
        if current is None:
            current = set()
            self.data[name] = current
        added = len(set(values) - current)
        current.update(values)
        return added

    async def srem(self, name: str, *values: str) -> int:
        self._check("srem")
        current = self._lookup(name)
        if not current:
            return 0
        removed = len(current & set(values))
        current.difference_update(values)
        if not current:
            self.data.pop(name, None)
            self.expiry.pop(name, None)
        return removed

    async def smembers(self, name: str) -> Set[str]:
        self._check("smembers")
        return set(self._lookup(name) or set())

    async def scard(self, name: str) -> int:
        self._check("scard")
        return len(self._lookup(name) or set())

    async def get(self, name: str) -> Optional[str]:
        self._check("get")
        return self._lookup(name)

    async def set(self, name: str, value: str, ex: Optional[int] = None) -> bool:
        self._check("set")
        self.data[name] = str(value)
        self.expiry.pop(name, None)
        if ex:
            self.expiry[name] = self.clock() + ex
        return True

    async def delete(self, *names: str) -> int:
        self._check("delete")
        removed = 0
        for name in names:
            if self._lookup(name) is not None:
                removed += 1
            self.data.pop(name, None)
            self.expiry.pop(name, None)
        return removed

    async def expire(self, name: str, seconds: int) -> bool:
        self._check("expire")
        if self._lookup(name) is None:
            return False
        self.expiry[name] = self.clock() + seconds
        return True

    async def ttl(self, name: str) -> int:
        self._check("ttl")
        if self._lookup(name) is None:
            return -2
        deadline = self.expiry.get(name)
        if deadline is None:
            return -1
        return int(deadline - self.clock())

    async def execute_command(self, *args):
        self._check("execute_command")
        handler = getattr(self, str(args[0]).lower())
        return await handler(*args[1:])

    async def aclose(self) -> None:
        self.closed += 1


@pytest.fixture(autouse=True)
def reset_settings_state():
    reset_settings_cache()
    yield
    reset_settings_cache()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_redis(clock):
    return FakeRedis(clock)


@pytest.fixture
def cache(fake_redis):
    return RedisCache("redis://localhost:6379/15", client=fake_redis)


@pytest.fixture
def policy():
    return SessionPolicy(
        {
            LoginType.WEB: 7 * 24 * 3600,
            LoginType.APP: 3 * 24 * 3600,
            LoginType.WX: 2 * 3600,
            LoginType.ALIPAY: 3600,
        }
    )


@pytest.fixture
def store(cache, policy, clock):
    return SessionStore(
        cache,
        policy=policy,
        keys=KeyScheme("session"),
        max_tokens_default=3,
        clock=clock,
    )


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None


def pytest_configure(config):
    config.addinivalue_line("markers", "asyncio: mark test as async")
