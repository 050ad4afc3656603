"""Exception hierarchy for the analytics pipeline."""


class AnalyticsError(Exception):
    """Base class for every error raised by the pipeline."""


class ConfigurationError(AnalyticsError):
    """Invalid constructor or configuration input. Raised before any
    message is processed."""


class InvalidArgumentError(ConfigurationError):
    """A required argument was missing, empty, or of the wrong kind."""


class DuplicateInterceptorError(ConfigurationError):
    """The same interceptor instance was registered twice."""


class ClientShutdownError(AnalyticsError):
    """An operation was attempted after shutdown() was called."""


class SendError(AnalyticsError):
    """Transport-level failure inside a sender (connection, timeout, TLS)."""


class UploadFailure(AnalyticsError):
    """A sealed batch could not be delivered to the ingestion endpoint."""

    def __init__(self, message: str, batch_size: int, status_code: int | None = None):
        super().__init__(message)
        self.batch_size = batch_size
        self.status_code = status_code
