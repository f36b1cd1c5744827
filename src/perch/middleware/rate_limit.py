"""Per-client token-bucket rate limiting middleware.

One ``TokenBucket`` per client id, created lazily on the client's first
request. Idle clients are swept probabilistically: on a configurable
fraction of requests, every client idle long enough for its bucket to
be full again is evicted. No background timer.

Denial raises ``TooManyRequests`` through the regular error path, so a
custom error handler sees it like any other failure.

Usage::

    app.use(rate_limit(lambda request, info, ctx: ctx.ip))
    app.post("/login", rate_limit(by_ip, RateLimitConfig(capacity=5)), login)
"""

import logging
import math
import random
import threading
import time
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Any, TypeAlias

from perch._internal.checks import is_number
from perch._internal.invoke import invoke
from perch.config import RateLimitConfig
from perch.context import RequestContext
from perch.errors import TooManyRequests
from perch.http.connection import ConnectionInfo
from perch.http.request import Request
from perch.token_bucket import TokenBucket

logger = logging.getLogger("perch.ratelimit")

# (request, info, ctx) -> client id; falsy ids are not limited
ClientIdGetter: TypeAlias = Callable[[Request, ConnectionInfo, RequestContext], Any]


def _client_key(client_id: Any) -> Hashable:
    """Ids are kept as given (1 and "1" are distinct); unhashable ids use their repr."""
    try:
        hash(client_id)
    except TypeError:
        return repr(client_id)
    return client_id


@dataclass(slots=True)
class _Client:
    bucket: TokenBucket
    last_access: float


class RateLimiter:
    """The rate-limit middleware. Build it with ``rate_limit()``."""

    __slots__ = ("_clients", "_clock", "_config", "_get_client_id", "_lock", "_random")

    def __init__(
        self,
        get_client_id: ClientIdGetter,
        config: RateLimitConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        random_source: Callable[[], float] = random.random,
    ) -> None:
        if not callable(get_client_id):
            msg = "get_client_id must be callable"
            raise TypeError(msg)
        self._get_client_id = get_client_id
        self._config = config or RateLimitConfig()
        self._clock = clock
        self._random = random_source
        self._lock = threading.Lock()
        self._clients: dict[Hashable, _Client] = {}

    @property
    def config(self) -> RateLimitConfig:
        return self._config

    def __len__(self) -> int:
        """Number of tracked clients."""
        return len(self._clients)

    def __contains__(self, client_id: object) -> bool:
        return client_id in self._clients

    async def __call__(self, request: Request, info: ConnectionInfo, ctx: RequestContext) -> None:
        client_id = await invoke(self._get_client_id, request, info, ctx)
        if not client_id:
            return None

        cost = self._config.cost_per_request
        if callable(cost):
            cost = await invoke(cost, request, info, ctx)

        if self._random() < self._config.cleanup_probability:
            self.cleanup()

        bucket = self._bucket_for(_client_key(client_id))
        if not bucket.consume(cost):
            retry_after = None
            if is_number(cost):
                missing = cost - bucket.size
                retry_after = max(1, math.ceil(missing / bucket.refill_rate_per_second))
            logger.debug("rate limit exceeded for client %r", client_id)
            raise TooManyRequests(retry_after=retry_after)
        return None

    def _bucket_for(self, client_id: Hashable) -> TokenBucket:
        now = self._clock()
        with self._lock:
            client = self._clients.get(client_id)
            if client is None:
                client = _Client(
                    TokenBucket(
                        self._config.capacity,
                        self._config.refill_rate_per_second,
                        clock=self._clock,
                    ),
                    now,
                )
                self._clients[client_id] = client
            else:
                client.last_access = now
            return client.bucket

    def cleanup(self) -> int:
        """Evict clients whose buckets would already be full. Returns the count."""
        now = self._clock()
        with self._lock:
            stale = [
                cid
                for cid, client in self._clients.items()
                if client.bucket.is_full_after(now - client.last_access)
            ]
            for cid in stale:
                del self._clients[cid]
        if stale:
            logger.debug("rate limit cleanup: evicted %d idle client(s)", len(stale))
        return len(stale)


def rate_limit(get_client_id: ClientIdGetter, config: RateLimitConfig | None = None, **kwargs: Any) -> RateLimiter:
    """Create a rate-limit middleware.

    *config* defaults to ``RateLimitConfig()``; keyword arguments build
    one instead (``rate_limit(get, capacity=2, refill_rate_per_second=1)``).
    """
    if kwargs:
        if config is not None:
            msg = "Pass either a RateLimitConfig or keyword settings, not both"
            raise TypeError(msg)
        config = RateLimitConfig(**kwargs)
    return RateLimiter(get_client_id, config)
