"""Custom exceptions for pipeline stages."""

from typing import Optional


class StageError(Exception):
    """Base exception for all stage errors.

    Catching this exception catches any failure that should abort the
    current job without affecting other jobs or the scheduler.
    """

    pass


class StageConfigurationError(StageError):
    """A job references a stage definition or extension that does not exist."""

    pass


class RequestError(StageError):
    """A request stage could not retrieve its data."""

    def __init__(self, message: str, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.url = url

    @property
    def retryable(self) -> bool:
        return False


class RequestHTTPError(RequestError):
    """HTTP request failed with a 4xx or 5xx status, or at the connection level."""

    def __init__(self, message: str, status_code: int, url: str) -> None:
        """
        Args:
            message: Human-readable error message
            status_code: HTTP status code (0 for connection failures)
            url: URL that failed
        """
        super().__init__(message, url=url)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.status_code == 0 or self.status_code == 429 or self.status_code >= 500


class RequestTimeoutError(RequestError):
    """HTTP request did not complete within the configured timeout."""

    @property
    def retryable(self) -> bool:
        return True


class RequestAuthError(RequestError):
    """No usable credential, missing scope, or the API rejected the token (401/403).

    ``status_code`` is set only when the API rejected the request.
    """

    def __init__(
        self, message: str, url: Optional[str] = None, status_code: Optional[int] = None
    ) -> None:
        super().__init__(message, url=url)
        self.status_code = status_code


class RequestResponseError(RequestError):
    """The response could not be parsed (invalid JSON, unexpected shape)."""

    pass


class TransformError(StageError):
    """A transform function raised."""

    pass


class TemplateRenderError(StageError):
    """A template could not be loaded or rendered."""

    pass


class ExportError(StageError):
    """An artifact could not be delivered to its sink."""

    pass
