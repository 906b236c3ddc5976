"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from release_board.core.exceptions import (
    ApplicationException,
    ValidationException,
    ResourceNotFoundException,
    ConfigurationException,
    ConfirmationRequiredException,
    ExternalServiceException,
    WorkItemServiceException,
)

__all__ = [
    "ApplicationException",
    "ValidationException",
    "ResourceNotFoundException",
    "ConfigurationException",
    "ConfirmationRequiredException",
    "ExternalServiceException",
    "WorkItemServiceException",
]
