# services/errors.py
from typing import List, Optional


class ImageServiceError(Exception):
    """Base error for the unit image collection; carries the HTTP status."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ImageServiceError):
    status_code = 400


class UnsupportedPayload(ImageServiceError):
    status_code = 400


class NotFound(ImageServiceError):
    status_code = 404


class Conflict(ImageServiceError):
    status_code = 409


class StoreUnavailable(ImageServiceError):
    status_code = 503


class ImageCodecError(ImageServiceError):
    pass


class PartialMoveError(ImageServiceError):
    """
    Raised when a reorder or rename fails after storage was already changed.
    Nothing is rolled back. For journaled reorders a later operation finishes
    the move; phase 'renaming' needs the leftover source removed by hand.
    """

    def __init__(
        self,
        message: str,
        operation_id: str,
        phase: str,
        completed: Optional[List[str]] = None,
    ):
        super().__init__(message)
        self.operation_id = operation_id
        self.phase = phase
        self.completed = list(completed or [])
