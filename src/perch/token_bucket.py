"""Token bucket — the rate-limiting primitive.

Tokens accrue at a fixed rate up to a maximum capacity. Each request
consumes one or more tokens; if the bucket holds enough, the request is
allowed and the tokens are removed, otherwise it is denied and nothing
changes. The capacity cap prevents token hoarding while still allowing
controlled bursts.

Thread safety:
    ``consume()`` and ``refill()`` run under a per-bucket lock, so
    refill-then-consume is atomic even when worker threads share a
    bucket. No ``await`` happens inside, so the same holds under asyncio.
"""

import logging
import threading
import time
from collections.abc import Callable

from perch._internal.checks import is_number
from perch.errors import ConfigurationError

logger = logging.getLogger("perch.ratelimit")


class TokenBucket:
    """A lazily refilled token bucket.

    Usage::

        bucket = TokenBucket(capacity=2, refill_rate_per_second=1)
        bucket.consume()  # True
        bucket.consume()  # True
        bucket.consume()  # False, wait ~1s for the next token
    """

    __slots__ = ("_capacity", "_clock", "_current", "_last_refill", "_lock", "_refill_rate")

    def __init__(
        self,
        capacity: float,
        refill_rate_per_second: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        for value in (capacity, refill_rate_per_second):
            if not is_number(value) or value <= 0:
                msg = f"Expecting a positive non-zero number, got {value!r}"
                raise ConfigurationError(msg)

        self._capacity = capacity
        self._refill_rate = refill_rate_per_second
        self._clock = clock
        self._current = capacity
        self._last_refill = clock()
        self._lock = threading.Lock()

    @property
    def capacity(self) -> float:
        return self._capacity

    @property
    def refill_rate_per_second(self) -> float:
        return self._refill_rate

    @property
    def last_refill(self) -> float:
        """Clock reading of the most recent refill."""
        return self._last_refill

    @property
    def size(self) -> float:
        """Currently available tokens (refills first)."""
        with self._lock:
            self._refill()
            return self._current

    def refill(self) -> "TokenBucket":
        """Add the tokens accrued since the last refill, capped at capacity."""
        with self._lock:
            self._refill()
        return self

    def consume(self, quantity: float = 1) -> bool:
        """Try to take *quantity* tokens.

        Returns ``True`` and decrements on success. Returns ``False``
        without mutating the bucket when there are not enough tokens or
        when *quantity* is negative or not a number.
        """
        if not is_number(quantity) or quantity < 0:
            return False
        with self._lock:
            self._refill()
            if self._current >= quantity:
                self._current -= quantity
                return True
            return False

    def is_full_after(self, elapsed: float) -> bool:
        """Whether *elapsed* idle seconds are enough to refill completely."""
        return elapsed >= self._capacity / self._refill_rate

    def _refill(self) -> None:
        # MUST be called while holding _lock.
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        added = round(elapsed * self._refill_rate)
        if added <= 0:
            # Partial intervals carry over until a whole token accrues.
            return
        self._current = min(self._capacity, self._current + added)
        self._last_refill = now
        logger.debug(
            "refill: elapsed=%.3fs added=%d size=%s/%s",
            elapsed,
            added,
            self._current,
            self._capacity,
        )

    def __repr__(self) -> str:
        return (
            f"TokenBucket(capacity={self._capacity!r}, "
            f"refill_rate_per_second={self._refill_rate!r}, size={self._current!r})"
        )
