"""
Custom exceptions for the service.
"""

from typing import Any


class ConfigError(Exception):
    """Raised when the service configuration cannot be loaded."""

    pass


class MissingRequiredError(ConfigError):
    """Raised when a mandatory setting is absent or empty."""

    def __init__(self, field: str):
        self.field = field
        super().__init__(f'{field} must be set')


class InvalidValueError(ConfigError):
    """Raised when a setting is present but cannot be parsed."""

    def __init__(self, field: str, raw_value: Any, cause: str):
        self.field = field
        self.raw_value = raw_value
        self.cause = cause
        super().__init__(f'Invalid {field}={raw_value!r}: {cause}')


class PoolError(Exception):
    """Base class for connection pool failures."""

    def __init__(self, message: str, cause: Exception | None = None):
        self.cause = cause
        super().__init__(message)


class ConnectFailedError(PoolError):
    """Raised when the initial connection to the database fails."""

    def __init__(self, cause: Exception):
        super().__init__(f'Failed to create database pool: {cause}', cause)


class AcquireTimeoutError(PoolError):
    """Raised when no connection could be checked out in time."""

    def __init__(self, timeout_seconds: float, cause: Exception | None = None):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f'Timed out after {timeout_seconds}s acquiring a database connection',
            cause,
        )


class ProbeFailedError(PoolError):
    """Raised when the liveness query against the database fails."""

    def __init__(self, cause: Exception):
        super().__init__(f'Database health check query failed: {cause}', cause)


class PoolClosedError(PoolError):
    """Raised when the pool is used after it has been closed."""

    def __init__(self):
        super().__init__('Database pool is closed')
