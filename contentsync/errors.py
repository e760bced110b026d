class ContentSyncError(Exception):
    """Base class for every error raised by the content engine."""


class ConfigurationError(ContentSyncError):
    """Device API credentials are missing or invalid. Fatal for a whole tick."""


class DeviceApiError(ContentSyncError):
    """A single device API call failed. Fails one screen, retried next tick."""

    def __init__(self, message: str, endpoint: str | None = None) -> None:
        super().__init__(message)
        self.endpoint = endpoint


class TransportError(DeviceApiError):
    """Network-level failure such as a timeout or a refused connection."""


class ApiError(DeviceApiError):
    """The device API answered with a non-2xx status."""

    def __init__(self, message: str, endpoint: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message, endpoint)
        self.status_code = status_code


class MalformedResponseError(ApiError):
    """The device API answered 2xx but the body was not JSON (e.g. an HTML error page)."""


class HashComputeError(ContentSyncError):
    """Image bytes could not be decoded or fetched for fingerprinting."""
