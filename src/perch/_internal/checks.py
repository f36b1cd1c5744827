"""Small value checks shared by config validation and the token bucket."""

import math


def is_number(value: object) -> bool:
    """True for finite ints and floats; ``bool`` does not count."""
    if isinstance(value, bool) or not isinstance(value, int | float):
        return False
    return math.isfinite(value)
