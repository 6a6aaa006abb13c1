from .rate_limiter import RateLimiter
from .logger import setup_logging, get_logger, DEFAULT_LOG_DIR, DEFAULT_LOG_FORMAT
from .exceptions import (
    MigratorError,
    ConfigurationError,
    AuthenticationError,
    TransportError,
    ResponseError,
    NotFoundError,
    RateLimitError,
    InvalidResourceError,
    SnapshotError,
    CdnProviderMismatchError,
    BatchError,
    ValidationError,
)

__all__ = [
    "RateLimiter",
    "setup_logging",
    "get_logger",
    "DEFAULT_LOG_DIR",
    "DEFAULT_LOG_FORMAT",
    "MigratorError",
    "ConfigurationError",
    "AuthenticationError",
    "TransportError",
    "ResponseError",
    "NotFoundError",
    "RateLimitError",
    "InvalidResourceError",
    "SnapshotError",
    "CdnProviderMismatchError",
    "BatchError",
    "ValidationError",
]
