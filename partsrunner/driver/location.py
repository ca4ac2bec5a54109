"""Location fixes and the provider interface the device implements."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Protocol

from partsrunner.kernel.errors import PartsRunnerError

PermissionState = Literal["granted", "denied", "prompt"]

PERMISSION_DENIED = 1
POSITION_UNAVAILABLE = 2
TIMEOUT = 3

_MESSAGES = {
    PERMISSION_DENIED: "Location access denied. Please enable in browser settings.",
    POSITION_UNAVAILABLE: "Location unavailable. Please try again.",
    TIMEOUT: "Location request timed out. Please try again.",
}
DEFAULT_MESSAGE = "Please enable location access to go online"


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float
    accuracy: float
    timestamp: int


class LocationError(PartsRunnerError):
    """Geolocation failure carrying the standard position error code."""

    def __init__(self, *, geo_code: int | None = None, message: str | None = None, meta: dict[str, Any] | None = None):
        self.geo_code = geo_code
        super().__init__(
            code="location.unavailable",
            message=message or describe_location_error(geo_code),
            status_code=503,
            meta=meta,
        )


def describe_location_error(geo_code: int | None) -> str:
    return _MESSAGES.get(geo_code, DEFAULT_MESSAGE) if geo_code is not None else DEFAULT_MESSAGE


class LocationProvider(Protocol):
    async def permission_state(self) -> PermissionState: ...

    async def get_current_position(
        self,
        *,
        high_accuracy: bool,
        timeout: float,
        maximum_age: float,
    ) -> Location:
        """Return a fix or raise LocationError."""
        ...
