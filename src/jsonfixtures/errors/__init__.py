"""jsonfixtures error handling.

Custom exception hierarchy with error codes, structured context and
troubleshooting suggestions.
"""

from jsonfixtures.errors.base import (
    ConfigurationError,
    ErrorCode,
    ErrorContext,
    FixtureError,
    FixtureFormatError,
    FixtureIsolationWarning,
    FixtureNotFoundError,
    PersistenceError,
    StoreNotConnectedError,
)

__all__ = [
    "ErrorCode",
    "ErrorContext",
    "FixtureError",
    "ConfigurationError",
    "FixtureNotFoundError",
    "FixtureFormatError",
    "PersistenceError",
    "StoreNotConnectedError",
    "FixtureIsolationWarning",
]
