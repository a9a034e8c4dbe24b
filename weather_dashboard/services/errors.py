"""Weather service error taxonomy."""


class WeatherServiceError(Exception):
    """Weather service error."""

    pass


class ConfigurationError(WeatherServiceError):
    """Required configuration is missing; never retried."""

    pass


class TransportError(WeatherServiceError):
    """Timeout, abort or connectivity failure."""

    pass


class RemoteError(WeatherServiceError):
    """Remote API answered with a non-success status or an unusable body."""

    def __init__(self, message: str, status_code: int | None = None, error_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
