"""Client-side mirror of the backend's rate-limit headers.

The backend reports quota on every response through ``x-ratelimit-*``
headers. The store persists the latest values under a single storage key so
every view and every other context sharing the storage can show them, and
computes the absolute reset instant once, when the values arrive.

Stored format (camelCase, shared with the browser client):

    {"limit": "100", "remaining": "42", "resetSeconds": "3600",
     "resetAt": 1767225600000,
     "minute": {"limit": ..., "remaining": ..., "resetSeconds": ...},
     "day": {...}}
"""

import json
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from aceai.app.core.config import settings
from aceai.app.core.logging import get_logger
from aceai.app.core.storage import (
    ChangeChannel,
    NullChannel,
    StorageBackend,
    get_storage,
)

logger = get_logger(__name__)

HEADER_PREFIX = "x-ratelimit"
MINUTE_PREFIX = f"{HEADER_PREFIX}-minute"
DAY_PREFIX = f"{HEADER_PREFIX}-day"

Clock = Callable[[], float]


def _now_ms() -> float:
    return time.time() * 1000


def _seconds(value: str) -> float:
    """Parse a reset value; anything non-numeric counts as zero."""
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return 0.0
    return seconds if math.isfinite(seconds) else 0.0


def _text(value: Any) -> str:
    if value is None or value is False:
        return ""
    return str(value)


@dataclass(frozen=True)
class RateLimitWindow:
    """One quota window (per minute, per day) as reported by the backend."""

    limit: str
    remaining: str
    reset_seconds: str

    def to_dict(self) -> dict:
        return {
            "limit": self.limit,
            "remaining": self.remaining,
            "resetSeconds": self.reset_seconds,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Optional["RateLimitWindow"]:
        if not isinstance(data, dict):
            return None
        limit = _text(data.get("limit"))
        remaining = _text(data.get("remaining"))
        reset_seconds = _text(data.get("resetSeconds"))
        if not limit or not remaining or not reset_seconds:
            return None
        return cls(limit=limit, remaining=remaining, reset_seconds=reset_seconds)


@dataclass(frozen=True)
class RateLimitSnapshot:
    """Latest quota state.

    Attributes:
        limit: Headline limit (taken from the day window)
        remaining: Headline remaining requests
        reset_seconds: Seconds until the headline window resets, as received
        reset_at: Epoch milliseconds of the reset, fixed at write time
        minute: Optional per-minute window
        day: Optional per-day window
    """

    limit: str
    remaining: str
    reset_seconds: str
    reset_at: int
    minute: Optional[RateLimitWindow] = None
    day: Optional[RateLimitWindow] = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "limit": self.limit,
            "remaining": self.remaining,
            "resetSeconds": self.reset_seconds,
            "resetAt": self.reset_at,
        }
        if self.minute is not None:
            data["minute"] = self.minute.to_dict()
        if self.day is not None:
            data["day"] = self.day.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Any, now_ms: float) -> Optional["RateLimitSnapshot"]:
        """Build a snapshot from stored data.

        Incomplete data yields None. A missing ``resetAt`` (older writers) is
        derived from ``resetSeconds`` relative to ``now_ms``.
        """
        headline = RateLimitWindow.from_dict(data)
        if headline is None:
            return None

        reset_at = data.get("resetAt")
        if (
            not isinstance(reset_at, (int, float))
            or isinstance(reset_at, bool)
            or not math.isfinite(reset_at)
            or not reset_at
        ):
            reset_at = now_ms + _seconds(headline.reset_seconds) * 1000

        return cls(
            limit=headline.limit,
            remaining=headline.remaining,
            reset_seconds=headline.reset_seconds,
            reset_at=int(reset_at),
            minute=RateLimitWindow.from_dict(data.get("minute")),
            day=RateLimitWindow.from_dict(data.get("day")),
        )


def read_window(headers: Mapping[str, str], prefix: str) -> Optional[RateLimitWindow]:
    """Read ``<prefix>-limit``, ``-remaining`` and ``-reset``; all three or nothing."""
    limit = headers.get(f"{prefix}-limit")
    remaining = headers.get(f"{prefix}-remaining")
    reset_seconds = headers.get(f"{prefix}-reset")
    if not limit or not remaining or not reset_seconds:
        return None
    return RateLimitWindow(limit=limit, remaining=remaining, reset_seconds=reset_seconds)


class RateLimitStore:
    """Persisted rate-limit snapshot with change notification.

    Subscribers are called with no arguments; they re-read the store, since
    the value may already have been superseded by the time they run.

    Example:
        >>> store = RateLimitStore(storage=InMemoryStorage())
        >>> unsubscribe = store.subscribe(lambda: print(store.read().remaining))
        >>> _ = store.write(limit="100", remaining="42", reset_seconds="60")
        42
        >>> unsubscribe()
    """

    def __init__(
        self,
        storage: Optional[StorageBackend] = None,
        channel: Optional[ChangeChannel] = None,
        clock: Optional[Clock] = None,
        key: Optional[str] = None,
    ) -> None:
        """Initialize the store.

        Args:
            storage: Storage backend. If None, uses the global storage.
            channel: Cross-context change channel. If None, changes stay local.
            clock: Returns the current time in epoch milliseconds.
            key: Storage key. Defaults to ``settings.rate_limit_storage_key``.
        """
        self._storage = storage
        self._channel = channel or NullChannel()
        self._clock = clock or _now_ms
        self.key = key or settings.rate_limit_storage_key
        self._subscribers: dict[object, Callable[[], None]] = {}

    def _get_storage(self) -> StorageBackend:
        if self._storage is None:
            self._storage = get_storage()
        return self._storage

    def write(
        self,
        limit: str,
        remaining: str,
        reset_seconds: str,
        minute: Optional[RateLimitWindow] = None,
        day: Optional[RateLimitWindow] = None,
    ) -> RateLimitSnapshot:
        """Replace the stored snapshot and notify subscribers.

        Returns:
            The snapshot that was written, with ``reset_at`` computed now.
        """
        reset_at = int(self._clock() + _seconds(reset_seconds) * 1000)
        snapshot = RateLimitSnapshot(
            limit=limit,
            remaining=remaining,
            reset_seconds=reset_seconds,
            reset_at=reset_at,
            minute=minute,
            day=day,
        )

        try:
            self._get_storage().set_item(self.key, json.dumps(snapshot.to_dict()))
        except OSError as e:
            logger.warning(f"Failed to persist rate limit snapshot: {e}")
            return snapshot

        self._notify()
        self._channel.publish(self.key)
        return snapshot

    def write_from_headers(self, headers: Mapping[str, str]) -> Optional[RateLimitSnapshot]:
        """Mirror ``x-ratelimit-*`` response headers into the store.

        Nothing is written unless the generic ``limit``/``remaining``/``reset``
        headers and a complete ``day`` window are all present. The headline
        values come from the day window.

        Args:
            headers: Response headers; any mapping, lookups are case-insensitive.

        Returns:
            The written snapshot, or None when the update was skipped.
        """
        lowered = {str(k).lower(): v for k, v in headers.items()}

        remaining = lowered.get(f"{HEADER_PREFIX}-remaining")
        limit = lowered.get(f"{HEADER_PREFIX}-limit")
        reset_seconds = lowered.get(f"{HEADER_PREFIX}-reset")
        if not remaining or not limit or not reset_seconds:
            return None

        minute = read_window(lowered, MINUTE_PREFIX)
        day = read_window(lowered, DAY_PREFIX)

        # TODO: a minute-only response drops usable minute data; keep until the
        # backend guarantees a day window on every response.
        if day is None:
            logger.debug("Rate limit headers without a day window, skipping update")
            return None

        return self.write(
            limit=day.limit,
            remaining=day.remaining,
            reset_seconds=day.reset_seconds,
            minute=minute,
            day=day,
        )

    def read(self) -> Optional[RateLimitSnapshot]:
        """Return the stored snapshot, or None if absent or unreadable."""
        try:
            raw = self._get_storage().get_item(self.key)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to read rate limit snapshot: {e}")
            return None
        if not raw:
            return None

        try:
            data = json.loads(raw)
            return RateLimitSnapshot.from_dict(data, now_ms=self._clock())
        except (ValueError, OverflowError):
            logger.debug("Stored rate limit snapshot is unreadable")
            return None

    def subscribe(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Call ``callback`` after every write, local or from another context.

        Returns:
            Function removing both registrations; safe to call more than once.
        """
        token = object()
        self._subscribers[token] = callback

        def on_external_change(key: str) -> None:
            if key == self.key:
                callback()

        stop_listening = self._channel.listen(on_external_change)

        def unsubscribe() -> None:
            if self._subscribers.pop(token, None) is not None:
                stop_listening()

        return unsubscribe

    def seconds_until_reset(self, snapshot: Optional[RateLimitSnapshot] = None) -> Optional[int]:
        """Whole seconds left until reset, never negative.

        Args:
            snapshot: Snapshot to measure. If None, reads the store.

        Returns:
            Seconds remaining, or None when there is no snapshot.
        """
        if snapshot is None:
            snapshot = self.read()
        if snapshot is None:
            return None
        return max(0, math.ceil((snapshot.reset_at - self._clock()) / 1000))

    def _notify(self) -> None:
        for callback in list(self._subscribers.values()):
            try:
                callback()
            except Exception:
                logger.exception("Rate limit subscriber failed")


_rate_limit_store: Optional[RateLimitStore] = None


def get_rate_limit_store() -> RateLimitStore:
    """Get or create the process-wide rate limit store."""
    global _rate_limit_store
    if _rate_limit_store is None:
        _rate_limit_store = RateLimitStore()
    return _rate_limit_store


def reset_rate_limit_store() -> None:
    """Reset the global store (useful for testing)."""
    global _rate_limit_store
    _rate_limit_store = None
