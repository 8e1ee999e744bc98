"""Capped exponential backoff shared by the supervisor and the subscriber client."""

from __future__ import annotations


def backoff_delay(attempt: int, initial: float, maximum: float) -> float:
    """Delay before retry number `attempt` (1-based): initial * 2^(attempt-1), capped at maximum."""
    if attempt < 1:
        return 0.0
    # Clamp the exponent so large attempt counts cannot overflow the float.
    exponent = min(attempt - 1, 62)
    return min(initial * (2**exponent), maximum)
