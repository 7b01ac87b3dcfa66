"""Helpdesk errors. Each carries the HTTP status it is reported with."""
from typing import Any, Optional


class HelpdeskError(Exception):
    """Base error: status_code plus a human-readable message."""
    status_code = 500

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": False, "error": self.message}
        if self.detail:
            body["detail"] = self.detail
        return body


class AuthorizationFailure(HelpdeskError):
    """Missing, invalid or expired credential"""
    status_code = 401


class PermissionDenied(HelpdeskError):
    """Authenticated, but the role may not perform this operation"""
    status_code = 403


class ValidationError(HelpdeskError):
    """Required input missing or malformed"""
    status_code = 400


class Conflict(HelpdeskError):
    status_code = 409


class StoreFailure(HelpdeskError):
    """Record store call failed. detail holds the store's message for diagnostics only."""
    status_code = 500

    @classmethod
    def wrap(cls, message: str, exc: Exception) -> "StoreFailure":
        return cls(message, detail=str(exc))
