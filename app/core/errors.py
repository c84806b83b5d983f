"""
Error taxonomy.

Business-rule violations subclass ``HTTPException`` so that services can raise
them directly and FastAPI reports them with the right status. Media and
network faults are plain exceptions absorbed by the client components.
"""
from datetime import datetime
from typing import Optional

from fastapi import HTTPException


class NotFoundError(HTTPException):
    def __init__(self, resource: str, resource_id=None):
        message = f"{resource} with id {resource_id} not found" if resource_id else f"{resource} not found"
        super().__init__(status_code=404, detail=message)
        self.resource = resource
        self.resource_id = resource_id


class InvalidStateError(HTTPException):
    """A transition that is not permitted from the current state."""

    def __init__(self, entity: str, attempted: str, actual: str, message: Optional[str] = None):
        message = message or f"Cannot move {entity} to '{attempted}' from '{actual}'"
        super().__init__(
            status_code=409,
            detail={"message": message, "entity": entity, "attempted": attempted, "actual": actual},
        )
        self.entity = entity
        self.attempted = attempted
        self.actual = actual
        self.message = message

    def __str__(self):
        return self.message


class ConflictError(HTTPException):
    def __init__(self, message: str):
        super().__init__(status_code=409, detail=message)


class ValidationError(HTTPException):
    def __init__(self, message: str):
        super().__init__(status_code=400, detail=message)


class MediaUnavailableError(Exception):
    """Camera/microphone/screen capture was denied or the hardware failed."""


class TransientNetworkError(Exception):
    """A fetch failed in a way the next poll tick may recover from."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NoStreamAvailable(Exception):
    """Recording was requested while no media stream is live."""

    def __init__(self, message: str = "No media stream available to record"):
        super().__init__(message)


class JoinWindowClosedError(Exception):
    def __init__(self, opens_at: datetime, minutes_remaining: int):
        self.opens_at = opens_at
        self.minutes_remaining = minutes_remaining
        super().__init__(
            f"Joining opens at {opens_at:%H:%M}; please wait {minutes_remaining} more minute(s)"
        )
