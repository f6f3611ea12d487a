from __future__ import annotations

from typing import Dict, Optional


class TowingError(Exception):
    """Base class for every error the booking and admin layers raise."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"detail": self.message}


class ValidationError(TowingError):
    status_code = 422

    def __init__(self, message: str, errors: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.errors = errors or {}

    def to_dict(self) -> dict:
        return {"detail": self.message, "errors": self.errors}


class ConfigurationError(TowingError):
    status_code = 422


class AuthenticationError(TowingError):
    status_code = 401


class PermissionDeniedError(TowingError):
    status_code = 403


class PaymentError(TowingError):
    status_code = 402


class PersistenceError(TowingError):
    status_code = 500

    def __init__(self, message: str, orphaned_service_id: Optional[str] = None):
        super().__init__(message)
        self.orphaned_service_id = orphaned_service_id

    def to_dict(self) -> dict:
        data = {"detail": self.message}
        if self.orphaned_service_id:
            data["orphaned_service_id"] = self.orphaned_service_id
        return data


class NotificationError(TowingError):
    pass


class RecordNotFoundError(TowingError):
    status_code = 404

    def __init__(self, entity: str, record_id: str):
        super().__init__(f"{entity} record {record_id} not found")
        self.entity = entity
        self.record_id = record_id


class StoreError(TowingError):
    status_code = 503

    def __init__(self, entity: str, attempts: int, last_error: BaseException):
        super().__init__(f"Failed after {attempts} attempts: {last_error}")
        self.entity = entity
        self.attempts = attempts
        self.last_error = last_error

    def to_dict(self) -> dict:
        return {"detail": self.message, "entity": self.entity, "attempts": self.attempts}


class InvalidTransitionError(TowingError):
    pass
