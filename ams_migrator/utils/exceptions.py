"""Custom exception classes for the ams-migrator."""

from typing import Any, List, Optional


class MigratorError(Exception):
    """Base exception class for all migrator errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigurationError(MigratorError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, config_key: Optional[str] = None) -> None:
        self.config_key = config_key
        super().__init__(message)


class AuthenticationError(MigratorError):
    """Raised when a token is missing or rejected by the control plane."""

    def __init__(self, message: str, provider: Optional[str] = None) -> None:
        self.provider = provider
        super().__init__(message)


class TransportError(MigratorError):
    """Raised when a request fails before any response is received."""

    def __init__(
        self,
        message: str,
        method: Optional[str] = None,
        url: Optional[str] = None,
    ) -> None:
        self.method = method
        self.url = url
        super().__init__(message)


class ResponseError(MigratorError):
    """Raised when the control plane answers with an unexpected status code."""

    def __init__(
        self,
        message: str,
        status_code: int,
        error_code: Optional[str] = None,
        method: Optional[str] = None,
        url: Optional[str] = None,
        body: str = "",
    ) -> None:
        self.status_code = status_code
        self.error_code = error_code
        self.method = method
        self.url = url
        self.body = body
        super().__init__(message)


class NotFoundError(ResponseError):
    """Raised when the requested resource does not exist (HTTP 404)."""


class RateLimitError(ResponseError):
    """Raised when the backoff schedule is exhausted while still rate limited."""

    def __init__(
        self,
        message: str,
        status_code: int = 429,
        error_code: Optional[str] = None,
        method: Optional[str] = None,
        url: Optional[str] = None,
        body: str = "",
        retry_after: Optional[float] = None,
    ) -> None:
        self.retry_after = retry_after
        super().__init__(
            message,
            status_code=status_code,
            error_code=error_code,
            method=method,
            url=url,
            body=body,
        )

    @property
    def is_retryable(self) -> bool:
        return True


class InvalidResourceError(MigratorError):
    """Raised when a resource record cannot be interpreted."""

    def __init__(self, message: str, kind: Optional[str] = None) -> None:
        self.kind = kind
        super().__init__(message)


class SnapshotError(MigratorError):
    """Raised when the migration file cannot be read or written."""

    def __init__(self, message: str, path: Optional[Any] = None) -> None:
        self.path = path
        super().__init__(message)


class CdnProviderMismatchError(MigratorError):
    """Raised when a streaming endpoint uses a CDN provider mk.io does not support."""

    def __init__(self, message: str, provider: Optional[str] = None) -> None:
        self.provider = provider
        super().__init__(message)


class BatchError(MigratorError):
    """Summarises the per-item failures of one export or import batch."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        kind: Optional[str] = None,
        failed_names: Optional[List[str]] = None,
    ) -> None:
        self.operation = operation
        self.kind = kind
        self.failed_names: List[str] = failed_names or []
        super().__init__(message)


class ValidationError(MigratorError):
    """Raised when imported streaming locators are missing or not playable."""

    def __init__(
        self,
        message: str,
        missing: Optional[List[str]] = None,
        failed: Optional[List[str]] = None,
    ) -> None:
        self.missing: List[str] = missing or []
        self.failed: List[str] = failed or []
        super().__init__(message)
