from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from models import BlockingRecord


class BookingError(Exception):
    """Base class for every failure the booking engine reports to a caller.

    `kind` is the stable, machine readable error name and `status_code` the
    HTTP status the transport layer maps it to.
    """

    kind = "booking_error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict[str, Any]:
        return {"detail": self.message, "kind": self.kind}


class ValidationError(BookingError):
    kind = "validation_error"
    status_code = 400


class InvalidRangeError(ValidationError):
    kind = "invalid_range"


class ConflictError(BookingError):
    kind = "conflict"
    status_code = 409

    def __init__(self, message: str, blocking: Optional["BlockingRecord"] = None):
        super().__init__(message)
        self.blocking = blocking

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        if self.blocking is not None:
            payload["blocking_record"] = self.blocking.model_dump(mode="json")
        return payload


class NotFoundError(BookingError):
    kind = "not_found"
    status_code = 404


class StateError(BookingError):
    kind = "state_error"
    status_code = 409


class AlreadyReturnedError(StateError):
    kind = "already_returned"


class AssetUnavailableError(StateError):
    kind = "asset_unavailable"


class IllegalTransitionError(StateError):
    kind = "illegal_transition"


class StorageError(BookingError):
    kind = "storage_error"
    status_code = 500
