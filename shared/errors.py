"""
Shared error handling for the Premium Access service.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class PremiumAccessException(Exception):
    """Base exception for Premium Access components."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class ContentNotFoundError(PremiumAccessException):
    """Requested content item does not exist."""

    def __init__(self, content_id: str, details: Optional[Dict[str, Any]] = None):
        self.content_id = content_id
        super().__init__("NOT_FOUND", f"Content not found: {content_id}", details)


class ValidationError(PremiumAccessException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class UnknownCacheNamespaceError(ValidationError):
    """Cache write named a namespace the strategy registry does not know."""

    def __init__(self, namespace: str):
        self.namespace = namespace
        super().__init__(f"Unknown cache namespace: {namespace}", {"namespace": namespace})


class CacheBackendError(PremiumAccessException):
    """Cache backend could not be started."""

    def __init__(self, message: str = "Cache backend error", details: Optional[Dict[str, Any]] = None):
        super().__init__("CACHE_BACKEND_ERROR", message, details)


class ServiceError(PremiumAccessException):
    """Service-related errors."""

    def __init__(self, message: str = "Service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("SERVICE_ERROR", message, details)