from __future__ import annotations

import asyncio

import pytest

import progression.db.redis as redis_module
from progression.db.redis import lifespan_redis, redis_status


class _FakeRedis:
    def __init__(self, reachable: bool = True) -> None:
        self.reachable = reachable
        self.closed = False

    async def ping(self) -> bool:
        if not self.reachable:
            raise ConnectionError("redis down")
        return True

    async def aclose(self) -> None:
        self.closed = True


def test_status_without_redis_url() -> None:
    assert asyncio.run(redis_status()) == "not_configured"


@pytest.mark.parametrize(("reachable", "expected"), [(True, "ok"), (False, "degraded")])
def test_status_reflects_ping(monkeypatch, reachable: bool, expected: str) -> None:
    monkeypatch.setattr(redis_module, "redis_pool", _FakeRedis(reachable))
    assert asyncio.run(redis_status()) == expected


def test_lifespan_closes_pool_even_when_unreachable(monkeypatch) -> None:
    fake = _FakeRedis(reachable=False)
    monkeypatch.setattr(redis_module, "redis_pool", fake)

    async def scenario() -> None:
        async with lifespan_redis():
            assert fake.closed is False

    asyncio.run(scenario())
    assert fake.closed is True
