"""Driver availability and location tracking."""

from partsrunner.driver.location import Location, LocationError, LocationProvider
from partsrunner.driver.status import DriverMode, DriverStatusTracker, DriverUser

__all__ = [
    "DriverMode",
    "DriverStatusTracker",
    "DriverUser",
    "Location",
    "LocationError",
    "LocationProvider",
]
