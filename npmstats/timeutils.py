"""Time formatting helpers."""

import math
import time


def format_time_until_reset(reset_time: float, now: float | None = None) -> str:
    """
    Describe how long until a rate limit resets.

    Args:
        reset_time: Epoch seconds of the reset
        now: Current epoch seconds (default: ``time.time()``)

    Returns:
        "now", "N minute(s)" below one hour, otherwise "N hour(s)"; both round up
    """
    if now is None:
        now = time.time()
    diff = reset_time - now

    if diff <= 0:
        return "now"

    minutes = math.ceil(diff / 60)
    if minutes < 60:
        return f"{minutes} minute{'' if minutes == 1 else 's'}"

    hours = math.ceil(diff / 3600)
    return f"{hours} hour{'' if hours == 1 else 's'}"
