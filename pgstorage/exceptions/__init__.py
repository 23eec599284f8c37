"""
Custom exceptions for the PostgreSQL storage provisioner.

This module defines all custom exceptions used throughout the application
for consistent error handling and reporting.
"""
from typing import Optional, Dict, Any
from fastapi import status


class PgStorageException(Exception):
    """
    Base exception for all provisioner errors.

    All custom exceptions should inherit from this base class.
    """

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(PgStorageException):
    """
    Raised when request validation fails.

    Used for invalid input data, schema validation errors, etc.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
        )


class StorageError(PgStorageException):
    """
    Base class for failures while provisioning a single logical volume.

    The cluster orchestrator stops its sequence on the first StorageError.
    """


class MalformedSelectorError(StorageError):
    """
    Raised when a matchLabels value is not a single "key=value" pair.

    Detected before any Kubernetes API call is made.
    """

    def __init__(self, raw: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=f"match labels '{raw}' is not formatted correctly, expected key=value",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details or {"match_labels": raw},
        )


class OrchestrationError(StorageError):
    """
    Raised when a Kubernetes API operation fails.

    Carries the HTTP status and reason reported by the API server.
    """

    def __init__(
        self,
        message: str,
        api_status: Optional[int] = None,
        reason: Optional[str] = None,
        status_code: int = status.HTTP_502_BAD_GATEWAY,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.api_status = api_status
        self.reason = reason
        super().__init__(
            message=f"Kubernetes error: {message}",
            status_code=status_code,
            details=details or {"api_status": api_status, "reason": reason},
        )


class AlreadyExistsError(OrchestrationError):
    """
    Raised when a create call reports the object already exists (HTTP 409).

    The volume provisioner treats this as success.
    """

    def __init__(self, kind: str, name: str, namespace: str):
        super().__init__(
            message=f"{kind} '{name}' already exists in namespace '{namespace}'",
            api_status=409,
            reason="AlreadyExists",
            status_code=status.HTTP_409_CONFLICT,
            details={"kind": kind, "name": name, "namespace": namespace},
        )


class VolumeLookupError(OrchestrationError):
    """
    Raised when reading a volume claim fails for a reason other than not found.
    """


class BackrestError(PgStorageException):
    """
    Raised when a pgBackRest command cannot be composed or executed.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=f"Backrest error: {message}",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details=details,
        )


# Export all exceptions
__all__ = [
    "PgStorageException",
    "ValidationError",
    "StorageError",
    "MalformedSelectorError",
    "OrchestrationError",
    "AlreadyExistsError",
    "VolumeLookupError",
    "BackrestError",
]
