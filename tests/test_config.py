"""Tests for perch.config — frozen configuration dataclasses."""

import pytest

from perch.config import AppConfig, RateLimitConfig
from perch.errors import ConfigurationError


class TestAppConfig:
    def test_defaults(self) -> None:
        cfg = AppConfig()
        assert cfg.x_powered_by is True
        assert cfg.x_response_time is True
        assert cfg.powered_by == "Perch"
        assert cfg.verbose is False
        assert cfg.preexecute_sort is True
        assert cfg.check_duplicates is True

    def test_frozen(self) -> None:
        cfg = AppConfig()
        with pytest.raises(AttributeError):
            cfg.verbose = True  # type: ignore[misc]


class TestRateLimitConfig:
    def test_defaults(self) -> None:
        cfg = RateLimitConfig()
        assert cfg.capacity == 20
        assert cfg.refill_rate_per_second == 10
        assert cfg.cleanup_probability == 0.001
        assert cfg.cost_per_request == 1

    @pytest.mark.parametrize("capacity", [0, -1, "2", None, float("inf"), True])
    def test_invalid_capacity(self, capacity: object) -> None:
        with pytest.raises(ConfigurationError):
            RateLimitConfig(capacity=capacity)  # type: ignore[arg-type]

    def test_invalid_refill_rate(self) -> None:
        with pytest.raises(ConfigurationError):
            RateLimitConfig(refill_rate_per_second=0)

    @pytest.mark.parametrize("probability", [-0.1, 1.5])
    def test_cleanup_probability_range(self, probability: float) -> None:
        with pytest.raises(ConfigurationError):
            RateLimitConfig(cleanup_probability=probability)

    def test_cleanup_probability_bounds_accepted(self) -> None:
        assert RateLimitConfig(cleanup_probability=0).cleanup_probability == 0
        assert RateLimitConfig(cleanup_probability=1).cleanup_probability == 1

    def test_callable_cost(self) -> None:
        def cost(request, info, ctx):
            return 2

        assert RateLimitConfig(cost_per_request=cost).cost_per_request is cost

    def test_negative_cost_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            RateLimitConfig(cost_per_request=-1)
