from __future__ import annotations

from typing import Dict, Optional


class SnipetError(Exception):
    """Base error: a human-readable message plus an optional field -> message map."""

    status_code = 500

    def __init__(self, message: str, data: Optional[Dict[str, str]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.data: Dict[str, str] = dict(data or {})

    def to_dict(self) -> Dict[str, object]:
        return {"message": self.message, "data": self.data}


class ValidationError(SnipetError):
    """Input rejected before any store call."""

    status_code = 422


class StoreError(SnipetError):
    """Failure reported by the record store."""

    status_code = 502


class NotFoundError(StoreError):
    status_code = 404


class PermissionDeniedError(StoreError):
    status_code = 403


class ConflictError(StoreError):
    """The record changed since the caller read it."""

    status_code = 409


class UniqueViolationError(StoreError):
    status_code = 409


class StoreValidationError(StoreError):
    status_code = 400


class EditWindowClosedError(PermissionDeniedError):
    pass


class AuthenticationError(SnipetError):
    """Missing or unknown credentials."""

    status_code = 401
