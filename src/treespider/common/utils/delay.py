"""Delay helpers shared across crawler components."""

from __future__ import annotations

import random


def get_random_delay(base: float, random_range: float) -> float:
    """Return a randomized delay in seconds."""
    if base <= 0 and random_range <= 0:
        return 0.0
    return base + random.uniform(0, max(random_range, 0.0))
