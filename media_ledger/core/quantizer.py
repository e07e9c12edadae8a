"""
Duration quantization for time-based billing.

Rounds raw media durations up to billable seconds.
"""

import math


def ceil_div(a: int, b: int) -> int:
    """Integer ceiling division for positive operands.

    Returns 0 when either operand is not positive.
    """
    if b <= 0 or a <= 0:
        return 0
    return (a + b - 1) // b


def billable_seconds(raw_seconds: float, quantum_seconds: int, min_billable_seconds: int) -> int:
    """Round a raw duration up to billable seconds.

    The duration is rounded up to a whole second, then up to the next
    multiple of the quantum, then clamped to the minimum billable time.

    Args:
        raw_seconds: Measured media duration
        quantum_seconds: Billing quantum (>= 1)
        min_billable_seconds: Floor applied to any positive duration

    Returns:
        Billable seconds, or 0 for missing, non-finite or non-positive durations
    """
    if raw_seconds is None:
        return 0
    duration = float(raw_seconds)
    if not math.isfinite(duration) or duration <= 0:
        return 0

    whole = math.ceil(duration)
    quantum = max(1, int(quantum_seconds))
    rounded = ceil_div(whole, quantum) * quantum

    return max(int(min_billable_seconds), rounded)
