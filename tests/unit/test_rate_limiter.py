from __future__ import annotations

import asyncio

import pytest

from catalog_discovery.utils.rate_limiter import DomainRateLimiter


class FakeTime:
    def __init__(self) -> None:
        self.now = 100.0
        self.sleeps: list[float] = []

    def clock(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def test_loads_on_same_domain_are_spaced() -> None:
    t = FakeTime()
    limiter = DomainRateLimiter(2.0, clock=t.clock, sleep=t.sleep)

    async def scenario():
        return [await limiter.wait_for_slot("https://www.shop.example.com/c/1") for _ in range(3)]

    waits = asyncio.run(scenario())
    assert waits == [0.0, pytest.approx(0.5), pytest.approx(0.5)]
    assert limiter.waited_s["shop.example.com"] == pytest.approx(1.0)


def test_domains_are_independent() -> None:
    t = FakeTime()
    limiter = DomainRateLimiter(1.0, clock=t.clock, sleep=t.sleep)

    async def scenario():
        await limiter.wait_for_slot("https://a.example.com/")
        await limiter.wait_for_slot("https://b.example.com/")

    asyncio.run(scenario())
    assert t.sleeps == []


def test_disabled_limiter_never_waits() -> None:
    t = FakeTime()
    limiter = DomainRateLimiter(0, clock=t.clock, sleep=t.sleep)
    assert not limiter.enabled
    assert asyncio.run(limiter.wait_for_slot("https://a.example.com/")) == 0.0
