# =============================================================================
# muni_core/errors/handlers.py
# Turning core errors into sidebar messages for residents and staff
# =============================================================================
"""
Helpers the Streamlit layer wraps around calls into the offline core.

Remote failures are expected while the device is offline: they are shown
as warnings because the change is already kept on the device. Local
storage failures mean a change may be lost, so they are shown as errors
and re-raised to stop the page.
"""

from __future__ import annotations
import functools
from typing import Any, Callable, Dict, Optional, Type, TypeVar
import streamlit as st

from muni_core.logging import get_logger
from .exceptions import (
    ConfigurationError,
    LocalStorageError,
    MuniServicesError,
    ReadOnlyCollectionError,
    RecordNotFoundError,
    RemoteStoreError,
    SyncFailedError,
)

logger = get_logger(__name__)

T = TypeVar("T")

# Fallback text per error type when the caller gives none
USER_MESSAGES: Dict[Type[Exception], str] = {
    LocalStorageError: "Your changes could not be saved on this device",
    RemoteStoreError: "The municipal server could not be reached; your changes are kept on this device",
    SyncFailedError: "Some changes could not be sent to the municipal office",
    RecordNotFoundError: "That record is no longer available",
    ReadOnlyCollectionError: "This list can only be changed by the municipal office",
    ConfigurationError: "The app is not configured correctly",
}


def is_recoverable(error: BaseException) -> bool:
    """Core errors carry their own flag; anything else is assumed recoverable."""
    return getattr(error, "recoverable", True)


def user_message_for(error: BaseException) -> str:
    for error_type in type(error).__mro__:
        if error_type in USER_MESSAGES:
            return USER_MESSAGES[error_type]
    if isinstance(error, MuniServicesError):
        return error.message
    return "Something went wrong"


def handle_error(
    error: BaseException,
    show_user_message: bool = True,
    user_message: Optional[str] = None,
) -> None:
    """
    Log an error and tell the user about it, once per exception object.

    Args:
        error: The exception that was caught
        show_user_message: Render a Streamlit message as well as logging
        user_message: Text to show instead of the per-type default
    """
    if getattr(error, "_muni_handled", False):
        return
    error._muni_handled = True

    message = user_message or user_message_for(error)

    if isinstance(error, MuniServicesError):
        logger.error(f"[{error.code}] {error.message}", extra={"details": error.details})
    else:
        logger.error(f"Unexpected {type(error).__name__}: {error}", exc_info=error)

    if not show_user_message:
        return

    if isinstance(error, RemoteStoreError):
        st.warning(f"⚠️ {message}")
    elif is_recoverable(error):
        st.error(f"Error: {message}")
    else:
        st.error(f"Critical Error: {message}. Please contact the municipal office.")


class ErrorContext:
    """
    Context manager around one user action.

    Recoverable errors are reported and swallowed so the page keeps
    rendering; unrecoverable ones are reported and re-raised.

    Usage:
        with ErrorContext("Syncing queued changes"):
            services.engine.request_drain()
    """

    def __init__(
        self,
        operation: str,
        show_user_message: bool = True,
        success_message: Optional[str] = None,
    ):
        self.operation = operation
        self.show_user_message = show_user_message
        self.success_message = success_message
        self.error: Optional[BaseException] = None

    def __enter__(self) -> ErrorContext:
        logger.debug(f"Starting: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            logger.debug(f"Completed: {self.operation}")
            if self.success_message:
                st.success(self.success_message)
            return False

        if not issubclass(exc_type, Exception):
            return False

        self.error = exc_val
        user_message = None if isinstance(exc_val, MuniServicesError) else f"Error during: {self.operation}"
        handle_error(exc_val, show_user_message=self.show_user_message, user_message=user_message)
        return is_recoverable(exc_val)


def error_boundary(default_return: Any = None, user_message: Optional[str] = None):
    """
    Decorator form of ErrorContext for render helpers.

    A recoverable error makes the wrapped function return default_return.

    Usage:
        @error_boundary(default_return=0)
        def render_failed_records(repository) -> int:
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., Optional[T]]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Optional[T]:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                handle_error(e, user_message=user_message)
                if not is_recoverable(e):
                    raise
                return default_return

        return wrapper

    return decorator
