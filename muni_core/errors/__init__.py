# =============================================================================
# muni_core/errors/__init__.py
# Centralized Error Handling for the municipal services core
# =============================================================================

from .exceptions import (
    MuniServicesError,
    LocalStorageError,
    RemoteStoreError,
    SyncFailedError,
    DataValidationError,
    RecordNotFoundError,
    ReadOnlyCollectionError,
    ConfigurationError,
)

from .handlers import (
    USER_MESSAGES,
    handle_error,
    is_recoverable,
    user_message_for,
    ErrorContext,
    error_boundary,
)

__all__ = [
    # Exceptions
    "MuniServicesError",
    "LocalStorageError",
    "RemoteStoreError",
    "SyncFailedError",
    "DataValidationError",
    "RecordNotFoundError",
    "ReadOnlyCollectionError",
    "ConfigurationError",
    # Handlers
    "USER_MESSAGES",
    "handle_error",
    "is_recoverable",
    "user_message_for",
    "ErrorContext",
    "error_boundary",
]
