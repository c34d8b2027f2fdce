"""
Error taxonomy shared by venue clients and services.
"""
from typing import Optional


class FarmerError(Exception):
    """Base class for all application errors."""


class ConfigurationError(FarmerError):
    """Required configuration is missing or unusable."""


class InvalidMarketDataError(FarmerError):
    """A data invariant was violated (bad probability, unknown resolution, ...)."""


class VenueRequestError(FarmerError):
    """
    A request to an external venue or service failed.

    `status` is the HTTP status when one was received, None for transport
    failures (connection errors, timeouts).
    """

    def __init__(self, venue: str, message: str, status: Optional[int] = None):
        self.venue = venue
        self.status = status
        self.message = message
        prefix = f"{venue} {status}" if status is not None else f"{venue} network error"
        super().__init__(f"{prefix}: {message}")

    @property
    def retryable(self) -> bool:
        """Transport failures, throttling and server errors are worth retrying."""
        if self.status is None:
            return True
        if self.status == 429:
            return True
        return self.status >= 500
