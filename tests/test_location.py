# tests/test_location.py

from __future__ import annotations

import asyncio

import pytest

from fieldcheck.capture.location import UNSUPPORTED_MESSAGE, CaptureStatus, LocationChannel
from fieldcheck.core.ports import GeolocationOptions

from .fakes import MUMBAI, FakeGeolocation


@pytest.mark.asyncio
async def test_missing_capability_errors_without_pending_request() -> None:
    channel = LocationChannel(None)

    assert channel.start() is None
    assert channel.status == CaptureStatus.ERROR
    assert channel.error == UNSUPPORTED_MESSAGE
    assert channel.pending is None
    assert channel.requests_issued == 0

    # capture() returns straight away instead of hanging.
    assert await channel.capture() == CaptureStatus.ERROR


@pytest.mark.asyncio
async def test_start_is_noop_while_capturing_and_after_capture() -> None:
    geo = FakeGeolocation(hold=True)
    channel = LocationChannel(geo)

    first = channel.start()
    assert first is not None
    assert channel.status == CaptureStatus.CAPTURING
    assert channel.start() is None
    assert channel.requests_issued == 1

    geo.release()
    await first
    assert channel.status == CaptureStatus.CAPTURED
    assert channel.coords == MUMBAI
    assert channel.captured_at is not None

    assert channel.start() is None
    assert await channel.capture() == CaptureStatus.CAPTURED
    assert geo.calls == 1
    assert channel.requests_issued == 1


@pytest.mark.asyncio
async def test_request_uses_single_shot_options() -> None:
    geo = FakeGeolocation()
    channel = LocationChannel(geo)

    await channel.capture()

    assert geo.last_options == GeolocationOptions(high_accuracy=True, timeout_ms=15_000, max_age_ms=0)


@pytest.mark.asyncio
async def test_timeout_then_manual_retry() -> None:
    geo = FakeGeolocation(hold=True)
    channel = LocationChannel(geo, GeolocationOptions(timeout_ms=20))

    assert await channel.capture() == CaptureStatus.ERROR
    assert channel.coords is None
    assert "Timed out" in (channel.error or "")

    geo.hold = False
    assert await channel.capture() == CaptureStatus.CAPTURED
    assert channel.error is None
    assert channel.coords == MUMBAI
    assert channel.requests_issued == 2


@pytest.mark.asyncio
async def test_capability_failure_is_recorded() -> None:
    geo = FakeGeolocation(error=RuntimeError("User denied Geolocation"))
    channel = LocationChannel(geo)

    assert await channel.capture() == CaptureStatus.ERROR
    assert channel.error == "User denied Geolocation"
    assert channel.pending is None


@pytest.mark.asyncio
async def test_cancelled_request_leaves_channel_retryable() -> None:
    geo = FakeGeolocation(hold=True)
    channel = LocationChannel(geo)

    pending = channel.start()
    assert pending is not None
    await asyncio.sleep(0)
    pending.cancel()
    with pytest.raises(asyncio.CancelledError):
        await pending

    assert channel.status == CaptureStatus.ERROR
    geo.hold = False
    assert await channel.capture() == CaptureStatus.CAPTURED
