"""
Tether Exception Hierarchy
Provides specific exception types for relay failures. Each maps to one
HTTP status in ``tether.exceptions.handlers``.
"""

import time
from typing import Any, Optional


class RelayError(Exception):
    """
    Base exception class for all relay errors.
    Carries a machine-readable code, context and trace ID.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
        recoverable: bool = True,
        trace_id: Optional[str] = None
    ):
        """
        Initialize a relay exception with context.

        Args:
            message: Human-readable error message (sent to clients)
            error_code: Machine-readable error code for categorization
            context: Additional context about the error (logged, never sent)
            recoverable: Whether the caller may reasonably retry
            trace_id: Request trace ID for correlation
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = context or {}
        self.recoverable = recoverable
        self.trace_id = trace_id or get_current_trace_id()
        self.timestamp = time.time()

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for logging.

        Returns:
            Dictionary representation of the exception
        """
        result = {
            'error': self.error_code,
            'message': self.message,
            'type': self.__class__.__name__,
            'recoverable': self.recoverable,
            'timestamp': self.timestamp
        }

        if self.context:
            result['context'] = self.context

        if self.trace_id:
            result['trace_id'] = self.trace_id

        return result

    def __str__(self) -> str:
        """String representation of the exception."""
        parts = [f"{self.error_code}: {self.message}"]

        if self.context:
            parts.append(f"Context: {self.context}")

        if self.trace_id:
            parts.append(f"Trace ID: {self.trace_id}")

        return " | ".join(parts)


# Session lifecycle errors

class SessionNotFoundError(RelayError):
    """Raised when no record exists for a session id"""

    def __init__(
        self,
        session_id: str,
        message: str = "Session not found",
        context: Optional[dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="SESSION_NOT_FOUND",
            context={
                "session_id": session_id,
                **(context or {})
            },
            recoverable=False
        )
        self.session_id = session_id


class SessionExpiredError(RelayError):
    """Raised when a session's inactivity window has elapsed. Permanent."""

    def __init__(
        self,
        session_id: str,
        last_activity: Optional[float] = None,
        message: str = "Session expired",
        context: Optional[dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="SESSION_EXPIRED",
            context={
                "session_id": session_id,
                "last_activity": last_activity,
                **(context or {})
            },
            recoverable=False
        )
        self.session_id = session_id
        self.last_activity = last_activity


class SessionInitError(RelayError):
    """Raised when a new session could not be persisted"""

    def __init__(
        self,
        session_id: str,
        message: str = "Failed to initialize session",
        context: Optional[dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="SESSION_INIT_FAILED",
            context={
                "session_id": session_id,
                **(context or {})
            },
            recoverable=True
        )
        self.session_id = session_id


# Authorization errors

class InvalidKeyError(RelayError):
    """Raised when a supplied write or read key does not match"""

    def __init__(
        self,
        session_id: str,
        key_type: str,
        message: Optional[str] = None,
        context: Optional[dict[str, Any]] = None
    ):
        if message is None:
            message = f"Invalid {key_type} key"

        super().__init__(
            message=message,
            error_code="INVALID_KEY",
            context={
                "session_id": session_id,
                "key_type": key_type,
                **(context or {})
            },
            recoverable=False
        )
        self.session_id = session_id
        self.key_type = key_type


# Message validation and limit errors

class PayloadTooLargeError(RelayError):
    """Raised when a message body exceeds the byte limit"""

    def __init__(
        self,
        session_id: str,
        size: Optional[int] = None,
        limit: Optional[int] = None,
        message: str = "Payload too large",
        context: Optional[dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="PAYLOAD_TOO_LARGE",
            context={
                "session_id": session_id,
                "size": size,
                "limit": limit,
                **(context or {})
            },
            recoverable=False
        )
        self.session_id = session_id
        self.size = size
        self.limit = limit


class MessageLimitExceededError(RelayError):
    """Raised when a session already holds the maximum number of messages"""

    def __init__(
        self,
        session_id: str,
        current_value: Optional[int] = None,
        limit_value: Optional[int] = None,
        message: str = "Message limit reached",
        context: Optional[dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="MESSAGE_LIMIT_EXCEEDED",
            context={
                "session_id": session_id,
                "current_value": current_value,
                "limit_value": limit_value,
                **(context or {})
            },
            recoverable=True
        )
        self.session_id = session_id
        self.current_value = current_value
        self.limit_value = limit_value


class MalformedBodyError(RelayError):
    """Raised when a message body is not valid JSON"""

    def __init__(
        self,
        session_id: str,
        reason: Optional[str] = None,
        message: str = "Invalid JSON body",
        context: Optional[dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="MALFORMED_BODY",
            context={
                "session_id": session_id,
                "reason": reason,
                **(context or {})
            },
            recoverable=False
        )
        self.session_id = session_id
        self.reason = reason


# Storage and concurrency errors

class StorageError(RelayError):
    """Raised when the backing store fails"""

    def __init__(
        self,
        storage_type: str,
        operation: str,
        resource_id: Optional[str] = None,
        message: str = "Storage unavailable",
        context: Optional[dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="STORAGE_ERROR",
            context={
                "storage_type": storage_type,
                "operation": operation,
                "resource_id": resource_id,
                **(context or {})
            },
            recoverable=True
        )
        self.storage_type = storage_type
        self.operation = operation
        self.resource_id = resource_id


class ConcurrencyError(RelayError):
    """Raised when a compare-and-set write loses against another writer"""

    def __init__(
        self,
        resource_id: str,
        operation: str,
        expected_version: Optional[int] = None,
        actual_version: Optional[int] = None,
        message: str = "Concurrent update conflict",
        context: Optional[dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="CONCURRENCY_ERROR",
            context={
                "resource_id": resource_id,
                "operation": operation,
                "expected_version": expected_version,
                "actual_version": actual_version,
                **(context or {})
            },
            recoverable=True
        )
        self.resource_id = resource_id
        self.operation = operation
        self.expected_version = expected_version
        self.actual_version = actual_version


# Convenience functions for common error patterns

def session_not_found(session_id: str, additional_context: Optional[dict[str, Any]] = None):
    """Create a SessionNotFoundError with standard context"""
    return SessionNotFoundError(
        session_id=session_id,
        context=additional_context
    )


def session_expired(session_id: str, last_activity: Optional[float] = None):
    """Create a SessionExpiredError with standard context"""
    return SessionExpiredError(
        session_id=session_id,
        last_activity=last_activity
    )


def invalid_key(session_id: str, key_type: str):
    """Create an InvalidKeyError for a write or read key"""
    return InvalidKeyError(session_id=session_id, key_type=key_type)


def get_current_trace_id() -> Optional[str]:
    """
    Get the current trace ID from logging context.

    Returns:
        Current trace ID or None
    """
    from tether.config.logging_config import get_trace_id
    return get_trace_id()
