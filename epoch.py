"""Rotating epoch identifier stamped onto every signal."""

import logging
import threading
import uuid

import config
from timeutil import system_clock, to_iso

logger = logging.getLogger("sigmine.epoch")


class EpochClock:
    """Process-wide epoch window, re-rolled lazily on access once expired."""

    def __init__(self, duration_seconds=None, clock=None):
        self.duration = duration_seconds or config.EPOCH_DURATION_SECONDS
        self.clock = clock or system_clock
        self._lock = threading.Lock()
        self._epoch = self._new_epoch(self.clock())

    def _new_epoch(self, now):
        return {
            "id": uuid.uuid4().hex[:8],
            "start_time": now,
            "end_time": now + self.duration,
        }

    def is_expired(self, now=None):
        now = self.clock() if now is None else now
        return now > self._epoch["end_time"]

    def current(self):
        """Return the live epoch, starting a new one if the old one ended."""
        with self._lock:
            now = self.clock()
            if self.is_expired(now):
                self._epoch = self._new_epoch(now)
                logger.info("New epoch: %s", self._epoch["id"])
            return dict(self._epoch)

    def describe(self):
        epoch = self.current()
        now = self.clock()
        return {
            "epoch_id": epoch["id"],
            "started_at": to_iso(epoch["start_time"]),
            "ends_at": to_iso(epoch["end_time"]),
            "remaining_seconds": max(0, int(epoch["end_time"] - now)),
        }
