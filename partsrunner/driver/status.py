"""
Driver status tracking

Availability state machine for the runner:

    offline ──go_online──▶ online_tracking   (location fix obtained)
       ▲          └──────▶ online_untracked  (no fix; still dispatchable)
       └──go_offline / auto-offline timer──┘

While online the driver profile's `isAvailable` flag is set, a periodic
location watch publishes fixes within the accuracy threshold, and an
inactivity timer takes the driver offline after the auto-offline delay.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Protocol

import httpx
import structlog

from partsrunner.config import get_settings
from partsrunner.driver.location import (
    TIMEOUT,
    Location,
    LocationError,
    LocationProvider,
)
from partsrunner.kernel.errors import PartsRunnerError
from partsrunner.kernel.time import epoch_millis, utc_now
from partsrunner.notifications import Notice, Notifier, log_notifier

logger = structlog.get_logger()

DRIVER_ROLE = "driver"


class DriverMode(str, Enum):
    OFFLINE = "offline"
    ONLINE_TRACKING = "online_tracking"
    ONLINE_UNTRACKED = "online_untracked"


ALLOWED_TRANSITIONS: dict[DriverMode, set[DriverMode]] = {
    DriverMode.OFFLINE: {DriverMode.ONLINE_TRACKING, DriverMode.ONLINE_UNTRACKED},
    DriverMode.ONLINE_TRACKING: {DriverMode.OFFLINE, DriverMode.ONLINE_UNTRACKED},
    DriverMode.ONLINE_UNTRACKED: {DriverMode.OFFLINE, DriverMode.ONLINE_TRACKING},
}


def can_transition(current: DriverMode, target: DriverMode) -> bool:
    """Return True if the transition is allowed."""
    if current == target:
        return True
    return target in ALLOWED_TRANSITIONS.get(current, set())


def require_transition(current: DriverMode, target: DriverMode) -> None:
    """Raise ValueError if transition is not allowed."""
    if not can_transition(current, target):
        raise ValueError(f"Invalid driver transition: {current.value} -> {target.value}")


@dataclass(frozen=True)
class DriverUser:
    id: str
    role: str

    @property
    def is_driver(self) -> bool:
        return self.role == DRIVER_ROLE


@dataclass
class DriverState:
    mode: DriverMode = DriverMode.OFFLINE
    last_active: datetime = field(default_factory=utc_now)
    current_location: Location | None = None
    is_tracking_location: bool = False

    @property
    def is_online(self) -> bool:
        return self.mode != DriverMode.OFFLINE


class ProfileUpdater(Protocol):
    async def update_profile(self, user_id: str, updates: dict[str, Any]) -> None: ...


LocationCallback = Callable[[Location], Awaitable[None]]


class DriverStatusTracker:
    def __init__(
        self,
        *,
        user: DriverUser,
        profiles: ProfileUpdater,
        location_provider: LocationProvider | None = None,
        notifier: Notifier = log_notifier,
        on_location: LocationCallback | None = None,
        auto_offline_delay: float = 30 * 60,
        location_interval: float = 30.0,
        accuracy_threshold: float = 100.0,
        location_timeout: float = 15.0,
    ) -> None:
        self.user = user
        self._profiles = profiles
        self._provider = location_provider
        self._notify = notifier
        self._on_location = on_location
        self.auto_offline_delay = auto_offline_delay
        self.location_interval = location_interval
        self.accuracy_threshold = accuracy_threshold
        self.location_timeout = location_timeout
        self._state = DriverState()
        self._timer_task: asyncio.Task[None] | None = None
        self._watch_task: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(
        cls,
        *,
        user: DriverUser,
        profiles: ProfileUpdater,
        location_provider: LocationProvider | None = None,
        notifier: Notifier = log_notifier,
        on_location: LocationCallback | None = None,
    ) -> "DriverStatusTracker":
        settings = get_settings()
        return cls(
            user=user,
            profiles=profiles,
            location_provider=location_provider,
            notifier=notifier,
            on_location=on_location,
            auto_offline_delay=settings.driver_auto_offline_seconds,
            location_interval=settings.driver_location_interval_seconds,
            accuracy_threshold=settings.driver_location_accuracy_threshold_m,
            location_timeout=settings.driver_location_timeout_seconds,
        )

    @property
    def state(self) -> DriverState:
        return self._state

    @property
    def mode(self) -> DriverMode:
        return self._state.mode

    @property
    def is_online(self) -> bool:
        return self._state.is_online

    @property
    def auto_offline_pending(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    def _transition(self, target: DriverMode) -> None:
        require_transition(self._state.mode, target)
        if target != self._state.mode:
            logger.info("Driver status changed", user_id=self.user.id, from_mode=self._state.mode.value, to_mode=target.value)
        self._state.mode = target

    # ------------------------------------------------------------------
    # Location
    # ------------------------------------------------------------------

    async def _request_fix(self) -> Location:
        if self._provider is None:
            raise LocationError(message="Your device doesn't support location tracking")
        try:
            fix = await asyncio.wait_for(
                self._provider.get_current_position(high_accuracy=True, timeout=10.0, maximum_age=60.0),
                timeout=self.location_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise LocationError(geo_code=TIMEOUT) from exc
        return Location(
            latitude=fix.latitude,
            longitude=fix.longitude,
            accuracy=fix.accuracy or 0,
            timestamp=epoch_millis(),
        )

    async def start_location_tracking(self) -> bool:
        if self._provider is None:
            self._notify(
                Notice(
                    title="Location not supported",
                    description="Your device doesn't support location tracking",
                    variant="destructive",
                )
            )
            return False

        try:
            location = await self._request_fix()
        except LocationError as exc:
            logger.warning("Location access error", user_id=self.user.id, geo_code=exc.geo_code, error=exc.message)
            self._notify(Notice(title="Location access failed", description=exc.message, variant="destructive"))
            return False

        self._state.current_location = location
        self._state.is_tracking_location = True
        if self._state.mode == DriverMode.ONLINE_UNTRACKED:
            self._transition(DriverMode.ONLINE_TRACKING)
            self._start_location_watch()
        return True

    def _start_location_watch(self) -> None:
        if self._watch_task is not None and not self._watch_task.done():
            return
        self._watch_task = asyncio.create_task(self._watch_location())

    async def _watch_location(self) -> None:
        while self.is_online:
            await asyncio.sleep(self.location_interval)
            try:
                location = await self._request_fix()
            except LocationError as exc:
                logger.warning("Location update failed", user_id=self.user.id, error=exc.message)
                continue

            if location.accuracy > self.accuracy_threshold:
                logger.debug(
                    "Discarding inaccurate location fix",
                    user_id=self.user.id,
                    accuracy=location.accuracy,
                    threshold=self.accuracy_threshold,
                )
                continue

            self._state.current_location = location
            try:
                await self._profiles.update_profile(
                    self.user.id,
                    {
                        "currentLocationLatitude": location.latitude,
                        "currentLocationLongitude": location.longitude,
                    },
                )
                if self._on_location is not None:
                    await self._on_location(location)
            except (PartsRunnerError, httpx.HTTPError) as exc:
                logger.warning("Failed to publish location", user_id=self.user.id, error=str(exc))
            except Exception as exc:
                # Keep watching after a failing publish.
                logger.exception("Location publish crashed", user_id=self.user.id, error=str(exc))

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    async def go_online(self) -> bool:
        if not self.user.is_driver:
            return False
        if self.is_online:
            return True

        try:
            if self._provider is not None and await self._provider.permission_state() == "denied":
                self._notify(
                    Notice(
                        title="Location Access Required",
                        description="Please enable location access in your settings to go online.",
                        variant="destructive",
                    )
                )
                return False

            if not await self.start_location_tracking():
                self._notify(
                    Notice(
                        title="Location Access Failed",
                        description="You can go online without location tracking, but won't receive nearby deliveries.",
                        variant="destructive",
                    )
                )
                await self._profiles.update_profile(self.user.id, {"isAvailable": True})
                self._transition(DriverMode.ONLINE_UNTRACKED)
                self._state.last_active = utc_now()
                self._notify(
                    Notice(
                        title="You're now Online!",
                        description="Location tracking disabled. You're available for deliveries.",
                    )
                )
                return True

            location = self._state.current_location
            await self._profiles.update_profile(
                self.user.id,
                {
                    "isAvailable": True,
                    "currentLocationLatitude": location.latitude if location else None,
                    "currentLocationLongitude": location.longitude if location else None,
                },
            )
            self._transition(DriverMode.ONLINE_TRACKING)
            self._state.last_active = utc_now()
            self._restart_auto_offline_timer()
            self._start_location_watch()
            self._notify(
                Notice(
                    title="You're now Online!",
                    description="Location tracking active. You're available for deliveries.",
                )
            )
            return True
        except (PartsRunnerError, httpx.HTTPError) as exc:
            logger.error("Failed to go online", user_id=self.user.id, error=str(exc))
            self._notify(
                Notice(
                    title="Failed to go online",
                    description="Please try again or check your connection.",
                    variant="destructive",
                )
            )
            return False

    async def go_offline(self) -> None:
        if not self.user.is_driver:
            return

        try:
            await self._profiles.update_profile(self.user.id, {"isAvailable": False})
        except (PartsRunnerError, httpx.HTTPError) as exc:
            logger.error("Failed to go offline", user_id=self.user.id, error=str(exc))
            self._notify(Notice(title="Failed to go offline", description="Please try again", variant="destructive"))
            return

        self._cancel_background_tasks()
        self._transition(DriverMode.OFFLINE)
        self._state.is_tracking_location = False
        self._notify(
            Notice(
                title="You're now Offline",
                description="Location tracking stopped. You're not available for deliveries.",
            )
        )

    def record_activity(self) -> None:
        """Restart the inactivity timer; call on any driver interaction."""
        if not self.is_online or not self.user.is_driver:
            return
        self._restart_auto_offline_timer()
        self._state.last_active = utc_now()

    def _restart_auto_offline_timer(self) -> None:
        if self._timer_task is not None:
            self._timer_task.cancel()
        self._timer_task = asyncio.create_task(self._auto_offline())

    async def _auto_offline(self) -> None:
        await asyncio.sleep(self.auto_offline_delay)
        # Detach first so go_offline does not cancel the task running it.
        self._timer_task = None
        minutes = int(self.auto_offline_delay // 60)
        self._notify(
            Notice(
                title="Auto-offline reminder",
                description=f"You've been inactive for {minutes} minutes. Going offline automatically.",
            )
        )
        await self.go_offline()

    def _cancel_background_tasks(self) -> list[asyncio.Task[None]]:
        cancelled: list[asyncio.Task[None]] = []
        current = asyncio.current_task()
        for task in (self._timer_task, self._watch_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
                cancelled.append(task)
        self._timer_task = None
        self._watch_task = None
        return cancelled

    async def aclose(self) -> None:
        """Stop the timer and the location watch."""
        cancelled = self._cancel_background_tasks()
        await asyncio.gather(*cancelled, return_exceptions=True)
