"""Application and middleware configuration.

Frozen dataclasses — immutable after creation, IDE-autocompletable,
no string-key dict lookups. Invalid values fail fast at construction.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from perch._internal.checks import is_number
from perch.errors import ConfigurationError


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Dispatcher configuration. Immutable after creation.

    All fields have sensible defaults. Override what you need::

        config = AppConfig(x_powered_by=False, verbose=True)
    """

    # Instrumentation headers (only on auto-generated responses)
    x_powered_by: bool = True
    x_response_time: bool = True
    powered_by: str = "Perch"

    # Log every successful route registration at DEBUG
    verbose: bool = False

    # Pipeline behavior
    preexecute_sort: bool = True
    check_duplicates: bool = True


@dataclass(frozen=True, slots=True)
class RateLimitConfig:
    """Token-bucket rate limit settings, one bucket per client.

    ``capacity`` is the allowed burst, ``refill_rate_per_second`` the
    sustained rate. ``cleanup_probability`` is the fraction of requests
    that also sweep idle clients (0 disables cleanup, 1 sweeps on every
    request). ``cost_per_request`` is a fixed cost or a callable
    ``(request, info, ctx) -> int``.
    """

    capacity: float = 20
    refill_rate_per_second: float = 10
    cleanup_probability: float = 0.001
    cost_per_request: int | Callable[..., Any] = 1

    def __post_init__(self) -> None:
        for name in ("capacity", "refill_rate_per_second"):
            value = getattr(self, name)
            if not is_number(value) or value <= 0:
                msg = f"RateLimitConfig.{name} must be a positive number, got {value!r}"
                raise ConfigurationError(msg)
        p = self.cleanup_probability
        if not is_number(p) or not 0 <= p <= 1:
            msg = f"RateLimitConfig.cleanup_probability must be within [0, 1], got {p!r}"
            raise ConfigurationError(msg)
        cost = self.cost_per_request
        if not callable(cost) and (not is_number(cost) or cost < 0):
            msg = f"RateLimitConfig.cost_per_request must be >= 0 or callable, got {cost!r}"
            raise ConfigurationError(msg)
