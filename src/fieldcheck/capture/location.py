# src/fieldcheck/capture/location.py

from __future__ import annotations

"""
Location capture channel.

State machine:
    idle -> capturing -> captured
                      -> error -> capturing (manual retry only)

While capturing or captured, start() is a no-op: no second request is issued.
A missing geolocation capability moves the channel to error immediately,
without leaving a pending request behind.
"""

import asyncio
import logging
from datetime import datetime, timezone
from enum import StrEnum

from ..core.ports import GeolocationCapability, GeolocationOptions
from ..tasks.task_models import Coordinates

logger = logging.getLogger(__name__)

UNSUPPORTED_MESSAGE = "Geolocation is not supported on this device."


class CaptureStatus(StrEnum):
    IDLE = "idle"
    CAPTURING = "capturing"
    CAPTURED = "captured"
    ERROR = "error"


class LocationChannel:
    def __init__(
        self,
        geolocation: GeolocationCapability | None,
        options: GeolocationOptions | None = None,
    ) -> None:
        self._geolocation = geolocation
        self._options = options or GeolocationOptions()
        self._pending: asyncio.Task[None] | None = None

        self.status = CaptureStatus.IDLE
        self.coords: Coordinates | None = None
        self.captured_at: datetime | None = None
        self.error: str | None = None
        self.requests_issued = 0

    @property
    def options(self) -> GeolocationOptions:
        return self._options

    @property
    def pending(self) -> asyncio.Task[None] | None:
        if self._pending is not None and not self._pending.done():
            return self._pending
        return None

    def start(self) -> asyncio.Task[None] | None:
        """
        Begin a capture if the channel is idle or in error.

        Returns the task running the request, or None when nothing was issued
        (already capturing/captured, or no capability).
        Must be called from within a running event loop.
        """
        if self.status in (CaptureStatus.CAPTURING, CaptureStatus.CAPTURED):
            logger.debug("Location capture ignored (status=%s)", self.status)
            return None

        if self._geolocation is None:
            self.status = CaptureStatus.ERROR
            self.error = UNSUPPORTED_MESSAGE
            logger.warning("Location capture failed: %s", UNSUPPORTED_MESSAGE)
            return None

        self.status = CaptureStatus.CAPTURING
        self.error = None
        self.requests_issued += 1
        self._pending = asyncio.get_running_loop().create_task(self._acquire(self._geolocation))
        return self._pending

    async def capture(self) -> CaptureStatus:
        """Start (if allowed) and wait for the in-flight request, if any."""
        self.start()
        pending = self.pending
        if pending is not None:
            await asyncio.shield(pending)
        return self.status

    async def _acquire(self, geolocation: GeolocationCapability) -> None:
        timeout_s = self._options.timeout_ms / 1000.0
        try:
            coords = await asyncio.wait_for(
                geolocation.get_current_position(self._options),
                timeout=timeout_s,
            )
        except asyncio.TimeoutError:
            self._fail(f"Timed out after {timeout_s:g}s waiting for a GPS fix.")
            return
        except asyncio.CancelledError:
            self._fail("Location request was cancelled.")
            raise
        except Exception as e:
            logger.debug("Geolocation error", exc_info=True)
            self._fail(str(e) or e.__class__.__name__)
            return

        self.coords = coords
        self.captured_at = datetime.now(timezone.utc)
        self.status = CaptureStatus.CAPTURED
        logger.info("Location captured: %s", coords.format())

    def _fail(self, reason: str) -> None:
        self.status = CaptureStatus.ERROR
        self.error = reason
        logger.warning("Location capture failed: %s", reason)


class FixedGeolocation:
    """
    GeolocationCapability returning preconfigured coordinates.

    Used by the console, where there is no device sensor.
    """

    def __init__(self, lat: float, lng: float) -> None:
        self._coords = Coordinates(float(lat), float(lng))

    async def get_current_position(self, options: GeolocationOptions) -> Coordinates:
        return self._coords
