# src/cloud_helpers/exceptions.py

"""
Shared custom exceptions for the cloud helpers library.

Centralizing exception definitions in a separate module prevents circular
import errors between other modules that need to raise or catch them.

Exception Hierarchy:
- CloudHelpersError (base)
  - RetryableError (can be retried by the caller)
    - TransportError
    - StorageThrottlingError
    - StorageTimeoutError
    - StorageOperationError
    - TaskQueueError
  - NonRetryableError (should not be retried)
    - ConfigurationError
    - ValidationError
      - SerializationError
      - InvalidContentTypeError
      - PayloadTooLargeError
    - StorageObjectNotFoundError
    - StorageAccessDeniedError
    - DispatchCancelledError
  - StorageError (mixin base for every storage error above)
"""

from typing import Any, Dict, Optional


class CloudHelpersError(Exception):
    """Base exception for all cloud helper errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = dict(context) if context else {}
        self.correlation_id = correlation_id

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "correlation_id": self.correlation_id,
            "retryable": isinstance(self, RetryableError),
        }


class RetryableError(CloudHelpersError):
    """Base class for errors a caller may retry."""

    pass


class NonRetryableError(CloudHelpersError):
    """Base class for errors that should not be retried."""

    pass


# === Configuration Errors ===


class ConfigurationError(NonRetryableError):
    """Raised when the library configuration or environment is unusable."""

    def __init__(self, message: str, **kwargs):
        if "error_code" not in kwargs:
            kwargs["error_code"] = "CONFIGURATION_ERROR"
        super().__init__(message, **kwargs)


# === Validation Errors ===


class ValidationError(NonRetryableError):
    """Base class for validation errors."""

    pass


class SerializationError(ValidationError):
    """Raised when a payload cannot be marshaled or unmarshaled."""

    def __init__(self, message: str, **kwargs):
        if "error_code" not in kwargs:
            kwargs["error_code"] = "SERIALIZATION_ERROR"
        super().__init__(message, **kwargs)


class InvalidContentTypeError(ValidationError):
    """Raised when a request body is not declared as JSON."""

    def __init__(self, content_type: str, **kwargs):
        message = f"Content type must be application/json, got '{content_type}'"
        context = {"content_type": content_type}
        super().__init__(
            message, error_code="INVALID_CONTENT_TYPE", context=context, **kwargs
        )


class PayloadTooLargeError(ValidationError):
    """Raised when a request body exceeds the accepted size."""

    def __init__(self, size_bytes: int, limit_bytes: int, **kwargs):
        message = f"Payload size {size_bytes} exceeds limit {limit_bytes}"
        context = {"size_bytes": size_bytes, "limit_bytes": limit_bytes}
        super().__init__(
            message, error_code="PAYLOAD_TOO_LARGE", context=context, **kwargs
        )


# === Dispatch Errors ===


class TransportError(RetryableError):
    """Raised when a transmission to the queue service fails."""

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        context = {}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        if status_code is not None:
            context["status_code"] = status_code
        if "error_code" not in kwargs:
            kwargs["error_code"] = "TRANSPORT_ERROR"
        super().__init__(message, context=context, **kwargs)
        self.status_code = status_code


class DispatchCancelledError(NonRetryableError):
    """Raised when a dispatch is cancelled or runs past its deadline."""

    def __init__(self, reason: str, transmissions_sent: int, **kwargs):
        message = f"Dispatch stopped before transmission: {reason}"
        context = {"reason": reason, "transmissions_sent": transmissions_sent}
        super().__init__(
            message, error_code="DISPATCH_CANCELLED", context=context, **kwargs
        )


# === Storage Errors ===


class StorageError(CloudHelpersError):
    """Base class for object storage errors."""

    pass


class StorageObjectNotFoundError(StorageError, NonRetryableError):
    """Raised when a requested object does not exist."""

    def __init__(self, bucket: str, key: str, **kwargs):
        message = f"Object not found: s3://{bucket}/{key}"
        context = {"bucket": bucket, "key": key}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        super().__init__(
            message, error_code="STORAGE_OBJECT_NOT_FOUND", context=context, **kwargs
        )


class StorageAccessDeniedError(StorageError, NonRetryableError):
    """Raised when access is denied to an object."""

    def __init__(self, bucket: str, key: str, **kwargs):
        message = f"Access denied to object: s3://{bucket}/{key}"
        context = {"bucket": bucket, "key": key}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        super().__init__(
            message, error_code="STORAGE_ACCESS_DENIED", context=context, **kwargs
        )


class StorageThrottlingError(StorageError, RetryableError):
    """Raised when storage operations are being throttled."""

    def __init__(self, operation: str, **kwargs):
        message = f"Storage operation throttled: {operation}"
        context = {"operation": operation}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        super().__init__(
            message, error_code="STORAGE_THROTTLING", context=context, **kwargs
        )


class StorageTimeoutError(StorageError, RetryableError):
    """Raised when storage operations time out or cannot connect."""

    def __init__(self, operation: str, **kwargs):
        message = f"Storage operation timed out: {operation}"
        context = {}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        context.update({"operation": operation})
        super().__init__(
            message, error_code="STORAGE_TIMEOUT", context=context, **kwargs
        )


class StorageOperationError(StorageError, RetryableError):
    """Raised for any other provider-side storage failure."""

    def __init__(self, operation: str, reason: str, **kwargs):
        message = f"Storage operation '{operation}' failed: {reason}"
        context = {"operation": operation, "reason": reason}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        super().__init__(
            message, error_code="STORAGE_OPERATION_FAILED", context=context, **kwargs
        )


# === Task Queue Errors ===


class TaskQueueError(RetryableError):
    """Raised when a task cannot be enqueued."""

    def __init__(self, queue_name: str, reason: str, **kwargs):
        message = f"Failed to enqueue task on '{queue_name}': {reason}"
        context = {"queue_name": queue_name, "reason": reason}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        super().__init__(
            message, error_code="TASK_QUEUE_ERROR", context=context, **kwargs
        )


# === Utility Functions ===


def is_retryable_error(error: Exception) -> bool:
    """Check if an error is retryable."""
    return isinstance(error, RetryableError)


def get_error_context(error: Exception) -> Dict[str, Any]:
    """Extract error context for logging."""
    if isinstance(error, CloudHelpersError):
        return error.to_dict()
    else:
        return {
            "error_type": error.__class__.__name__,
            "message": str(error),
            "retryable": False,
        }
