"""Tests for the background token refresh scheduler."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from sortify.errors import RefreshError
from sortify.refresh import REFRESH_BUFFER_SECONDS, RefreshScheduler
from sortify.storage import Credential

NOW = 1_700_000_000.0


def _clock() -> float:
    return NOW


def _credential(lifetime: float) -> Credential:
    return Credential(
        access_token="fresh",
        refresh_token="rt",
        expires_at=int((NOW + lifetime) * 1000),
    )


def test_delay_for():
    scheduler = RefreshScheduler(AsyncMock(), clock=_clock)
    assert scheduler.buffer_seconds == REFRESH_BUFFER_SECONDS
    assert scheduler.delay_for(3600) == 3300
    assert scheduler.delay_for(120) == 0
    assert scheduler.delay_for(-50) == 0


@pytest.mark.asyncio
async def test_fires_and_rearms():
    refreshed = asyncio.Event()
    received: list[Credential] = []

    def on_refreshed(credential):
        received.append(credential)
        refreshed.set()

    refresh = AsyncMock(return_value=_credential(3600))
    scheduler = RefreshScheduler(refresh, on_refreshed=on_refreshed, clock=_clock)

    assert scheduler.schedule(100) == 0
    await asyncio.wait_for(refreshed.wait(), timeout=1)
    await asyncio.sleep(0)

    refresh.assert_awaited_once()
    assert received == [_credential(3600)]
    assert scheduler.armed  # re-armed for the new credential
    scheduler.cancel()


@pytest.mark.asyncio
async def test_failure_clears_and_stops():
    failed = asyncio.Event()
    errors: list[Exception] = []

    def on_error(exc):
        errors.append(exc)
        failed.set()

    clear = AsyncMock()
    on_refreshed = AsyncMock()
    scheduler = RefreshScheduler(
        AsyncMock(side_effect=RefreshError("Token refresh failed: Bad Request")),
        clear=clear,
        on_refreshed=on_refreshed,
        on_error=on_error,
        clock=_clock,
    )

    scheduler.schedule(0)
    await asyncio.wait_for(failed.wait(), timeout=1)

    clear.assert_awaited_once()
    on_refreshed.assert_not_called()
    assert isinstance(errors[0], RefreshError)
    assert not scheduler.armed


@pytest.mark.asyncio
async def test_schedule_replaces_pending_task():
    scheduler = RefreshScheduler(AsyncMock(), clock=_clock)
    scheduler.schedule(3600)
    first = scheduler._task
    scheduler.schedule(7200)
    await asyncio.sleep(0)

    assert first.cancelled()
    assert scheduler.armed
    scheduler.cancel()


@pytest.mark.asyncio
async def test_cancel_is_idempotent():
    refresh = AsyncMock()
    scheduler = RefreshScheduler(refresh, clock=_clock)
    scheduler.schedule(0)
    scheduler.cancel()
    scheduler.cancel()
    await asyncio.sleep(0.01)

    assert not scheduler.armed
    refresh.assert_not_called()


@pytest.mark.asyncio
async def test_unexpected_failure_clears_and_stops():
    failed = asyncio.Event()
    errors: list[Exception] = []

    def on_error(exc):
        errors.append(exc)
        failed.set()

    clear = AsyncMock()
    scheduler = RefreshScheduler(
        AsyncMock(side_effect=OSError("disk full")),
        clear=clear,
        on_error=on_error,
        clock=_clock,
    )

    scheduler.schedule(0)
    await asyncio.wait_for(failed.wait(), timeout=1)
    await asyncio.sleep(0)

    clear.assert_awaited_once()
    assert isinstance(errors[0], OSError)
    assert not scheduler.armed


@pytest.mark.asyncio
async def test_failed_clear_still_notifies():
    failed = asyncio.Event()
    scheduler = RefreshScheduler(
        AsyncMock(side_effect=RefreshError()),
        clear=AsyncMock(side_effect=OSError("locked")),
        on_error=lambda exc: failed.set(),
        clock=_clock,
    )

    scheduler.schedule(0)
    await asyncio.wait_for(failed.wait(), timeout=1)
    assert not scheduler.armed
