"""Custom exceptions for the candle sync.

All error types live here to avoid circular imports between the
client, data and orchestration layers.
"""


class SyncError(Exception):
    """Base exception for all candle sync errors."""


class ConfigError(SyncError):
    """Raised when configuration is missing or invalid (credentials, granularity, whitelist)."""


class UpstreamError(SyncError):
    """Raised when the broker API call fails or returns an unusable response.

    ``transient`` marks failures worth retrying (transport errors, timeouts,
    HTTP 429 and 5xx). Authentication and deserialization failures are not.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        transient: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.transient = transient


class DataFormatError(SyncError):
    """Raised when a single candle record cannot be parsed."""


class StorageError(SyncError):
    """Raised when a table creation, query or write transaction fails."""
