from __future__ import annotations

import pytest

from common.rate_limiter import SlidingWindowRateLimiter, RateLimitError


class FakeClock:
    def __init__(self, t: float = 0.0) -> None:
        self.t = t

    def __call__(self) -> float:  # acts like time.monotonic
        return self.t

    def advance(self, dt: float) -> None:
        self.t += dt


def test_window_frees_permits_after_expiry():
    clock = FakeClock()
    rl = SlidingWindowRateLimiter(max_calls=2, per_seconds=60.0, clock=clock)

    rl.acquire(timeout=0)
    rl.acquire(timeout=0)
    with pytest.raises(RateLimitError):
        rl.acquire(timeout=0)

    clock.advance(60.0)
    rl.acquire(timeout=0)


def test_acquire_with_zero_timeout_raises_when_full():
    clock = FakeClock()
    rl = SlidingWindowRateLimiter(max_calls=1, per_seconds=10.0, clock=clock)

    rl.acquire()
    with pytest.raises(RateLimitError):
        rl.acquire(timeout=0)


def test_blocking_acquire_sleeps_until_slot_frees():
    clock = FakeClock()
    slept = []

    def fake_sleep(dt: float) -> None:
        slept.append(dt)
        clock.advance(dt)

    rl = SlidingWindowRateLimiter(max_calls=1, per_seconds=2.5, clock=clock, sleep=fake_sleep)
    rl.acquire()
    rl.acquire()

    assert slept == [1.0, 1.0, 0.5]
    assert clock.t == 2.5


@pytest.mark.parametrize("max_calls, per_seconds", [(0, 1.0), (1, 0.0)])
def test_invalid_config(max_calls, per_seconds):
    with pytest.raises(ValueError):
        SlidingWindowRateLimiter(max_calls=max_calls, per_seconds=per_seconds)
