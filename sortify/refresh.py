"""Background token refresh.

``RefreshScheduler`` owns one ``asyncio.Task`` at most.  The task sleeps
until ``BUFFER`` seconds before expiry, refreshes, and re-arms itself from
the new credential's lifetime.  A failed refresh clears the stored
credential and stops the loop.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from sortify.errors import AuthError
from sortify.storage import Clock, Credential

logger = logging.getLogger(__name__)

REFRESH_BUFFER_SECONDS = 300

RefreshFn = Callable[[], Awaitable[Credential]]
ClearFn = Callable[[], Awaitable[None]]


class RefreshScheduler:
    """Single-slot, self-rescheduling refresh timer."""

    def __init__(
        self,
        refresh: RefreshFn,
        *,
        clear: Optional[ClearFn] = None,
        on_refreshed: Optional[Callable[[Credential], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        buffer_seconds: float = REFRESH_BUFFER_SECONDS,
        clock: Clock = time.time,
    ):
        self._refresh = refresh
        self._clear = clear
        self._on_refreshed = on_refreshed
        self._on_error = on_error
        self.buffer_seconds = buffer_seconds
        self._clock = clock
        self._task: Optional[asyncio.Task] = None

    @property
    def armed(self) -> bool:
        return self._task is not None and not self._task.done()

    def delay_for(self, lifetime_seconds: float) -> float:
        return max(0.0, lifetime_seconds - self.buffer_seconds)

    def schedule(self, lifetime_seconds: float) -> float:
        """Cancel any pending refresh and arm a new one; returns the delay."""
        self.cancel()
        return self._arm(lifetime_seconds)

    def cancel(self) -> None:
        """Drop the pending refresh, if any.  Safe to call repeatedly."""
        task, self._task = self._task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _arm(self, lifetime_seconds: float) -> float:
        delay = self.delay_for(lifetime_seconds)
        self._task = asyncio.get_running_loop().create_task(self._fire(delay))
        logger.info("Token refresh scheduled in %.0fs", delay)
        return delay

    async def _fire(self, delay: float) -> None:
        await asyncio.sleep(delay)
        logger.info("Refreshing access token")
        try:
            credential = await self._refresh()
        except Exception as exc:
            if isinstance(exc, AuthError):
                logger.warning("Scheduled token refresh failed: %s", exc)
            else:
                logger.exception("Scheduled token refresh failed unexpectedly")
            if self._task is asyncio.current_task():
                self._task = None
            if self._clear is not None:
                try:
                    await self._clear()
                except Exception:
                    logger.exception("Could not clear credential after failed refresh")
            if self._on_error is not None:
                self._on_error(exc)
            return

        if self._on_refreshed is not None:
            self._on_refreshed(credential)
        if self._task is asyncio.current_task():
            self._arm(credential.lifetime_seconds(self._clock()))
