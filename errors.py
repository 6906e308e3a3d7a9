"""
Error types raised by the portal's routes and repository functions.

Each carries the HTTP status it maps to; the handlers in ``main`` render them
as ``{"message": ...}``.

Usage:
    from errors import NotFoundError

    if not logbook:
        raise NotFoundError("Logbook not found")
"""
from typing import Any, Dict


class PortalError(Exception):
    """Base exception for all portal errors"""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message}


class ValidationError(PortalError):
    """Missing or malformed required field"""

    status_code = 400


class NotFoundError(PortalError):
    """Referenced document does not exist"""

    status_code = 404


class ConflictError(PortalError):
    """Duplicate, already booked, or already reviewed"""

    status_code = 409


class AuthorizationError(PortalError):
    """Caller-supplied uid does not own the document"""

    status_code = 403

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message)
