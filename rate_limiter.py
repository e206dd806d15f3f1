"""Fixed-window per-agent, per-action rate limiting.

Windows do not slide: a burst straddling two windows can pass up to twice the
nominal limit in a short span. That is accepted behaviour.
"""

import math

from errors import RateLimitError
from store import RATE_LIMITS
from timeutil import system_clock

HOUR = 3600

# action -> (limit, window seconds)
RATE_LIMITS_CONFIG = {
    "signal": (10, HOUR),
    "claim": (5, HOUR),
    "task": (20, 60),  # not enforced by any endpoint yet
}


class RateLimiter:
    def __init__(self, store, clock=None, limits=None):
        self.store = store
        self.clock = clock or system_clock
        self.limits = dict(RATE_LIMITS_CONFIG)
        if limits:
            self.limits.update(limits)

    def check(self, agent_id, action):
        """Consume one slot for (agent_id, action) or raise RateLimitError."""
        limit, window = self.limits[action]
        key = f"{agent_id}:{action}"
        with self.store.transaction(RATE_LIMITS) as docs:
            windows = docs[RATE_LIMITS]
            now = self.clock()
            entry = windows.get(key)
            if entry is None or now - entry["window_start"] > window:
                entry = {"count": 0, "window_start": now}
                windows[key] = entry

            if entry["count"] >= limit:
                reset_in = math.ceil(entry["window_start"] + window - now)
                raise RateLimitError(
                    "Rate limit exceeded",
                    reset_in_seconds=reset_in,
                    message=f"Max {limit} {action}s per {_window_label(window)}",
                    current=entry["count"],
                    limit=limit,
                )

            entry["count"] += 1
            return {"allowed": True, "current": entry["count"], "limit": limit}


def _window_label(window):
    if window == HOUR:
        return "hour"
    if window == 60:
        return "minute"
    return f"{window}s"
