"""Tests for perch.token_bucket — lazy refill with an injectable clock."""

import pytest

from perch.errors import ConfigurationError
from perch.token_bucket import TokenBucket


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestConstruction:
    @pytest.mark.parametrize(("capacity", "rate"), [(0, 1), (1, 0), (-1, 1), (1, -5), ("1", 1), (None, 1)])
    def test_invalid_arguments(self, capacity: object, rate: object) -> None:
        with pytest.raises(ConfigurationError):
            TokenBucket(capacity, rate)  # type: ignore[arg-type]

    def test_starts_full(self) -> None:
        bucket = TokenBucket(5, 1, clock=FakeClock())
        assert bucket.size == 5


class TestConsume:
    def test_two_then_denied_then_one_after_a_second(self) -> None:
        clock = FakeClock()
        bucket = TokenBucket(2, 1, clock=clock)

        assert bucket.consume(1) is True
        assert bucket.consume(1) is True
        assert bucket.consume(1) is False

        clock.advance(1)
        assert bucket.consume(1) is True
        assert bucket.consume(1) is False

    def test_denial_does_not_mutate(self) -> None:
        bucket = TokenBucket(3, 1, clock=FakeClock())
        assert bucket.consume(5) is False
        assert bucket.size == 3

    @pytest.mark.parametrize("quantity", [-1, "1", None, float("nan")])
    def test_invalid_quantity_denied(self, quantity: object) -> None:
        bucket = TokenBucket(3, 1, clock=FakeClock())
        assert bucket.consume(quantity) is False  # type: ignore[arg-type]
        assert bucket.size == 3

    def test_zero_quantity_allowed(self) -> None:
        bucket = TokenBucket(1, 1, clock=FakeClock())
        bucket.consume(1)
        assert bucket.consume(0) is True


class TestRefill:
    def test_capped_at_capacity(self) -> None:
        clock = FakeClock()
        bucket = TokenBucket(2, 10, clock=clock)
        bucket.consume(2)
        clock.advance(60)
        assert bucket.size == 2

    def test_partial_interval_carries_over(self) -> None:
        clock = FakeClock()
        bucket = TokenBucket(1, 1, clock=clock)
        bucket.consume(1)

        clock.advance(0.4)
        assert bucket.consume(1) is False
        clock.advance(0.4)
        # 0.8s since the last whole-token refill rounds to one token
        assert bucket.consume(1) is True

    def test_refill_returns_bucket(self) -> None:
        bucket = TokenBucket(1, 1, clock=FakeClock())
        assert bucket.refill() is bucket

    def test_is_full_after(self) -> None:
        bucket = TokenBucket(10, 5, clock=FakeClock())
        assert bucket.is_full_after(2) is True
        assert bucket.is_full_after(1.9) is False

    def test_last_refill_advances_only_on_whole_tokens(self) -> None:
        clock = FakeClock(100.0)
        bucket = TokenBucket(5, 1, clock=clock)
        bucket.consume(5)
        clock.advance(0.3)
        bucket.refill()
        assert bucket.last_refill == 100.0
        clock.advance(1.0)
        bucket.refill()
        assert bucket.last_refill == clock.now
