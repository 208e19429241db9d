from __future__ import annotations

from datetime import datetime, timedelta


class CooldownGuard:
    """Rate limiter for scheduler- and event-triggered runs.

    try_acquire() only succeeds when at least min_interval has passed since
    the last successful acquisition.
    """

    def __init__(self, min_interval: timedelta) -> None:
        self.min_interval = min_interval
        self.last_run: datetime | None = None

    def try_acquire(self, now: datetime) -> bool:
        if self.last_run is not None and now - self.last_run < self.min_interval:
            return False
        self.last_run = now
        return True

    def reset(self) -> None:
        self.last_run = None
