"""Fixed-window rate limiting keyed by client identifier.

Each identifier gets a window that starts on its first request. Requests
are counted until the window has elapsed, then a fresh window starts. A
background sweep drops entries whose window is over so the table stays
bounded by the number of recently active clients.
"""
import asyncio
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional
import structlog

from docqa import config
from docqa.errors import RateLimitExceeded

logger = structlog.get_logger()


@dataclass
class RateLimitEntry:
    """Request count for one identifier in its current window."""

    identifier: str
    window_start: float
    count: int


class RateLimiter:
    """Fixed-window limiter; safe to share across concurrent requests."""

    def __init__(
        self,
        window_seconds: float,
        max_requests: int,
        name: str = "default",
        cleanup_interval: float = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the limiter.

        Args:
            window_seconds: Length of a window
            max_requests: Requests allowed per identifier per window
            name: Label used in logs (e.g. "chat", "upload")
            cleanup_interval: Seconds between background sweeps (default from config)
            clock: Time source returning epoch seconds
        """
        if window_seconds <= 0 or max_requests <= 0:
            raise ValueError("window_seconds and max_requests must be positive")

        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.name = name
        self.cleanup_interval = cleanup_interval or config.RATE_LIMIT_CLEANUP_INTERVAL
        self._clock = clock
        self._entries: Dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()
        self._cleanup_task: Optional[asyncio.Task] = None

    def _expired(self, entry: RateLimitEntry, now: float) -> bool:
        return now - entry.window_start > self.window_seconds

    def is_allowed(self, identifier: str) -> bool:
        """Count a request and report whether it is admitted."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(identifier)

            if entry is None or self._expired(entry, now):
                self._entries[identifier] = RateLimitEntry(identifier, now, 1)
                return True

            if entry.count >= self.max_requests:
                logger.warning(
                    "rate_limit_exceeded",
                    limiter=self.name,
                    identifier=identifier,
                    count=entry.count,
                )
                return False

            entry.count += 1
            return True

    def get_remaining_requests(self, identifier: str) -> int:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(identifier)
            if entry is None or self._expired(entry, now):
                return self.max_requests
            return max(0, self.max_requests - entry.count)

    def get_reset_time(self, identifier: str) -> float:
        """Epoch seconds at which the current window ends; 0 if there is none."""
        with self._lock:
            entry = self._entries.get(identifier)
            if entry is None:
                return 0.0
            return entry.window_start + self.window_seconds

    def check(self, identifier: str) -> None:
        """Admit a request or raise.

        Raises:
            RateLimitExceeded: With the time the window resets
        """
        if not self.is_allowed(identifier):
            raise RateLimitExceeded(self.get_reset_time(identifier))

    def cleanup(self) -> int:
        """Drop entries whose window has elapsed; returns how many were dropped."""
        now = self._clock()
        with self._lock:
            expired = [
                key for key, entry in self._entries.items() if self._expired(entry, now)
            ]
            for key in expired:
                del self._entries[key]

        if expired:
            logger.debug("rate_limit_cleanup", limiter=self.name, removed=len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval)
            self.cleanup()

    def start(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())
            logger.info(
                "rate_limit_cleanup_started",
                limiter=self.name,
                interval=self.cleanup_interval,
            )

    async def stop(self) -> None:
        """Cancel the periodic sweep."""
        if self._cleanup_task is None:
            return
        self._cleanup_task.cancel()
        try:
            await self._cleanup_task
        except asyncio.CancelledError:
            pass
        self._cleanup_task = None


def client_identifier(headers: Mapping[str, str], remote_addr: Optional[str] = None) -> str:
    """Derive a rate-limit key from request headers.

    Uses the first X-Forwarded-For hop (or the peer address) plus the start of
    the user agent.
    """
    forwarded = headers.get("X-Forwarded-For", "")
    address = forwarded.split(",")[0].strip() or remote_addr or "localhost"
    user_agent = headers.get("User-Agent") or "unknown"
    return f"{address}-{user_agent[:50]}"


def create_chat_limiter() -> RateLimiter:
    return RateLimiter(config.CHAT_RATE_WINDOW, config.CHAT_RATE_MAX, name="chat")


def create_upload_limiter() -> RateLimiter:
    return RateLimiter(config.UPLOAD_RATE_WINDOW, config.UPLOAD_RATE_MAX, name="upload")
