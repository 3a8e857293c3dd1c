"""Error taxonomy shared by the scheduling core and the HTTP layer.

Every error carries a stable ``kind`` that clients can match on and the
HTTP status the API layer answers with.
"""


class SchedulingError(Exception):
    """Base class for rejected scheduling operations."""

    kind = 'scheduling_error'
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict:
        return {'message': self.message, 'kind': self.kind}


class ValidationError(SchedulingError):
    """A required field is missing or malformed."""

    kind = 'validation_error'
    status_code = 400


class InvalidAvailabilityError(ValidationError):
    """A doctor's weekly schedule cannot be interpreted."""

    kind = 'invalid_availability'


class AuthorizationError(SchedulingError):
    """The caller has the wrong role or does not own the appointment."""

    kind = 'authorization_error'
    status_code = 403


class NotFoundError(SchedulingError):
    kind = 'not_found'
    status_code = 404


class SlotConflictError(SchedulingError):
    """The doctor already has a non-cancelled appointment at that date and time."""

    kind = 'slot_conflict'
    status_code = 409
