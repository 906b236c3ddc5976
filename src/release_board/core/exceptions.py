"""
Core Exceptions
================

Custom exceptions for the application.

Raised inside the engine and translated to user-facing messages or HTTP
responses at the application boundaries.
"""

from typing import Any, Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationException(ApplicationException):
    """Exception for validation errors, including malformed service payloads."""


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class ConfirmationRequiredException(ApplicationException):
    """Raised when a destructive action is attempted without confirmation."""

    def __init__(self, prompt: str, details: Optional[dict] = None):
        self.prompt = prompt
        super().__init__(prompt, details)


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class WorkItemServiceException(ExternalServiceException):
    """
    Exception for work item service failures.

    `error` holds the server-provided error text verbatim (or a generic
    description for transport failures) so it can be shown to the user.
    """

    def __init__(
        self,
        error: str,
        status_code: Optional[int] = None,
        payload: Any = None,
    ):
        self.error = error
        self.status_code = status_code
        self.payload = payload
        super().__init__(
            "Work Item Service",
            error,
            {"status_code": status_code} if status_code is not None else None,
        )
