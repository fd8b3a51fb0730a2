"""Live rate-limit badge text with a once-per-second countdown."""

import asyncio
from typing import Callable, Optional

from aceai.app.core.logging import get_logger
from aceai.app.services.rate_limit_store import (
    RateLimitSnapshot,
    RateLimitStore,
    get_rate_limit_store,
)

logger = get_logger(__name__)


class RateLimitBadge:
    """Keeps the latest snapshot and renders it as badge text.

    The badge re-reads the store whenever the store reports a change. Call
    :meth:`close` to stop listening.
    """

    def __init__(self, store: Optional[RateLimitStore] = None) -> None:
        self.store = store or get_rate_limit_store()
        self.snapshot: Optional[RateLimitSnapshot] = self.store.read()
        self._unsubscribe: Optional[Callable[[], None]] = self.store.subscribe(self.refresh)

    def refresh(self) -> None:
        self.snapshot = self.store.read()

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def context(self) -> Optional[str]:
        info = self.snapshot
        if info is None:
            return None
        if info.minute is not None and info.day is not None:
            return (
                f"Minute {info.minute.remaining}/{info.minute.limit} · "
                f"Day {info.day.remaining}/{info.day.limit}"
            )
        return f"{info.remaining}/{info.limit}"

    def render(self) -> Optional[str]:
        """Badge text, or None when there is nothing to show."""
        if self.snapshot is None:
            return None
        countdown = self.store.seconds_until_reset(self.snapshot) or 0
        reset = f"resets in {countdown}s" if countdown > 0 else "resetting…"
        return f"Rate limit: {self.context()} · {reset}"

    async def run(
        self,
        on_render: Callable[[Optional[str]], None],
        stop: asyncio.Event,
        interval: float = 1.0,
    ) -> None:
        """Render every ``interval`` seconds until ``stop`` is set."""
        while not stop.is_set():
            on_render(self.render())
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue
        logger.debug("Rate limit badge stopped")
