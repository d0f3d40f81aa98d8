from __future__ import annotations


def billed_minutes(duration_minutes: int, increment_minutes: int) -> int:
    """Round DOWN to the nearest multiple of the increment (favors the payer).

    Total: the increment is clamped to >= 1 and the duration to >= 0.
    """
    inc = max(1, int(increment_minutes))
    m = max(0, int(duration_minutes))
    return (m // inc) * inc
