"""Remote endpoints: driver API and hosted driver profiles."""

from partsrunner.api.client import DriverApiClient
from partsrunner.api.profiles import DriverProfileRepository

__all__ = ["DriverApiClient", "DriverProfileRepository"]
