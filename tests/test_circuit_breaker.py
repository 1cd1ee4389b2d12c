import asyncio

import pytest

from capability_adapter.errors import CircuitOpenError, TransportError
from capability_adapter.infra.circuit_breaker import CircuitBreaker, CircuitState


class Counter:
    def __init__(self, fail=True):
        self.calls = 0
        self.fail = fail

    async def __call__(self):
        self.calls += 1
        if self.fail:
            raise TransportError("boom")
        return "ok"


@pytest.mark.asyncio
async def test_opens_after_threshold_and_fails_fast(clock):
    breaker = CircuitBreaker("mcp:sandbox", threshold=3, cool_down=30, clock=clock)
    fn = Counter()
    for _ in range(3):
        with pytest.raises(TransportError):
            await breaker.call(fn)
    assert breaker.state is CircuitState.OPEN

    with pytest.raises(CircuitOpenError) as exc:
        await breaker.call(fn)
    assert fn.calls == 3
    assert exc.value.retry_after == pytest.approx(30)


@pytest.mark.asyncio
async def test_trial_call_after_cool_down(clock):
    breaker = CircuitBreaker("mcp:sandbox", threshold=2, cool_down=30, clock=clock)
    fn = Counter()
    for _ in range(2):
        with pytest.raises(TransportError):
            await breaker.call(fn)

    clock.advance(29.9)
    with pytest.raises(CircuitOpenError):
        await breaker.call(fn)

    clock.advance(0.2)
    assert breaker.state is CircuitState.CLOSED
    with pytest.raises(TransportError):
        await breaker.call(fn)
    assert fn.calls == 3
    # failed trial re-opens immediately
    with pytest.raises(CircuitOpenError):
        await breaker.call(fn)

    clock.advance(31)
    fn.fail = False
    assert await breaker.call(fn) == "ok"
    assert breaker.consecutive_failures == 0
    assert breaker.state is CircuitState.CLOSED


@pytest.mark.asyncio
async def test_success_resets_the_count(clock):
    breaker = CircuitBreaker("b", threshold=3, clock=clock)
    fn = Counter()
    for _ in range(2):
        with pytest.raises(TransportError):
            await breaker.call(fn)
    fn.fail = False
    await breaker.call(fn)
    fn.fail = True
    for _ in range(2):
        with pytest.raises(TransportError):
            await breaker.call(fn)
    assert breaker.state is CircuitState.CLOSED
    assert breaker.consecutive_failures == 2


@pytest.mark.asyncio
async def test_cancellation_is_not_counted(clock):
    breaker = CircuitBreaker("b", threshold=1, clock=clock)

    async def slow():
        await asyncio.sleep(10)

    task = asyncio.ensure_future(breaker.call(slow))
    await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert breaker.consecutive_failures == 0
    assert breaker.state is CircuitState.CLOSED


def test_threshold_must_be_positive():
    with pytest.raises(ValueError):
        CircuitBreaker("b", threshold=0)


def test_snapshot(clock):
    breaker = CircuitBreaker("mcp:production", threshold=4, cool_down=10, clock=clock)
    snap = breaker.snapshot()
    assert snap["name"] == "mcp:production"
    assert snap["state"] == "closed"
    assert snap["threshold"] == 4
