"""Per-guild fixed-window rate limiting for expensive slash commands.

Setup, approve, and repair all create channels and write server config; a
moderator hammering the command would otherwise race the store against itself.
State lives only in this process and is lost on restart.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from math import ceil
from typing import Callable


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    retry_after_s: int = 0


class RateLimiter:
    """Fixed-window counter keyed by guild id.

    ``check`` admits the first ``max_requests`` calls per guild inside a window
    of ``window_s`` seconds and reports how long to wait after that.
    """

    def __init__(
        self,
        window_s: float = 60,
        max_requests: int = 5,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if window_s <= 0:
            raise ValueError("window_s must be positive")
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self.window_s = float(window_s)
        self.max_requests = int(max_requests)
        self._clock = clock
        self._lock = threading.Lock()
        self._state: dict[str, tuple[float, int]] = {}

    def check(self, guild_id: str) -> RateLimitDecision:
        with self._lock:
            now = self._clock()
            entry = self._state.get(guild_id)
            if entry is None:
                self._state[guild_id] = (now, 1)
                return RateLimitDecision(allowed=True)

            window_start, count = entry
            elapsed = now - window_start
            if elapsed > self.window_s:
                self._state[guild_id] = (now, 1)
                return RateLimitDecision(allowed=True)
            if count >= self.max_requests:
                wait = max(1, ceil(self.window_s - elapsed))
                return RateLimitDecision(allowed=False, retry_after_s=wait)

            self._state[guild_id] = (window_start, count + 1)
            return RateLimitDecision(allowed=True)

    def cleanup(self) -> int:
        """Drop expired windows; returns how many entries were removed."""

        with self._lock:
            now = self._clock()
            expired = [
                guild_id
                for guild_id, (window_start, _count) in self._state.items()
                if now - window_start > self.window_s
            ]
            for guild_id in expired:
                del self._state[guild_id]
            return len(expired)

    def tracked_guilds(self) -> int:
        with self._lock:
            return len(self._state)
