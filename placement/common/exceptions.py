"""
Common Exception Classes

Base exception hierarchy for the placement test backend. Every error carries
a machine-readable code (the class name unless overridden) that the HTTP
layer returns next to the message.
"""

from typing import Any, Dict, Optional


class BaseError(Exception):
    """Base class for all custom exceptions."""

    def __init__(self, message: str, original_exception: Optional[Exception] = None):
        """
        Initialize the exception.

        Args:
            message: Error message
            original_exception: Lower-level exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.original_exception = original_exception

    @property
    def code(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        """Error as a response-ready dictionary."""
        return {"code": self.code, "message": self.message}


class DatabaseError(BaseError):
    """A storage operation failed."""

    def __init__(self, message: str, original_exception: Optional[Exception] = None):
        super().__init__(f"Database error: {message}", original_exception)


class ValidationError(BaseError):
    """Input rejected before reaching the engine."""

    def __init__(self, message: str, errors: Optional[Dict[str, str]] = None):
        super().__init__(f"Validation error: {message}")
        self.errors = errors or {}

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.errors:
            data["errors"] = self.errors
        return data


class ConfigurationError(BaseError):
    """Configuration or bundled data is missing or malformed."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        super().__init__(f"Configuration error: {message}")
        self.config_key = config_key


class NotFoundError(BaseError):
    """
    A referenced resource does not exist.

    Args:
        resource_type: Kind of resource, e.g. "Session" or "Level"
        resource_id: Identifier that was looked up
    """

    def __init__(self, resource_type: str, resource_id: Any):
        super().__init__(f"{resource_type} {resource_id} not found")
        self.resource_type = resource_type
        self.resource_id = resource_id


class DuplicateError(BaseError):
    """
    A resource that must be unique already exists.

    Args:
        resource_type: Kind of resource
        identifier: Key that collided
    """

    def __init__(self, resource_type: str, identifier: Any):
        super().__init__(f"Duplicate {resource_type}: {identifier}")
        self.resource_type = resource_type
        self.identifier = identifier
