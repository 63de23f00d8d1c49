"""
Farm2Home - Custom Exceptions
================================
Business-level exceptions raised by the platform client and caught by the
state containers, which turn them into user notices.
"""

from typing import Dict, Optional


class Farm2HomeError(Exception):
    """Base exception for all business logic errors."""
    def __init__(self, message: str = "An unexpected error occurred."):
        self.message = message
        super().__init__(self.message)


class AuthenticationError(Farm2HomeError):
    """Raised when sign-in credentials or an OAuth exchange are rejected."""
    pass


class ValidationError(Farm2HomeError):
    """Raised when form fields fail their constraints before any remote call."""
    def __init__(self, errors: Dict[str, str], message: str = "Please correct the highlighted fields."):
        self.errors = errors
        super().__init__(message)


class RemoteError(Farm2HomeError):
    """Raised when a platform call fails (database, network, constraint)."""
    pass


class NotFoundError(Farm2HomeError):
    """Raised when a requested resource doesn't exist."""
    pass


class DuplicateError(Farm2HomeError):
    """Raised for unique constraint violations at the business level."""
    pass


class StorageError(Farm2HomeError):
    """Raised when an object storage upload fails."""
    pass


class ReferentialConflictError(Farm2HomeError):
    """Raised when a listing cannot be deleted because orders reference it."""
    def __init__(self, message: Optional[str] = None):
        super().__init__(
            message or "Cannot delete produce that has existing orders. "
                       "This would break order history for customers."
        )
