"""
Error taxonomy for the booking core.

Every failure a service can report is a ``DomainError`` subclass.  The
API layer maps ``status_code`` onto the HTTP response; nothing else in
the stack needs to know about HTTP.
"""


class DomainError(Exception):
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFound(DomainError):
    """Referenced ride or booking does not exist."""

    status_code = 404


class ValidationError(DomainError):
    """Malformed input or an invariant violation on create/update."""

    status_code = 400


class Forbidden(DomainError):
    """Actor lacks ownership or role for the requested action."""

    status_code = 403


class Conflict(DomainError):
    """Insufficient seats, duplicate open booking, or a lost write race."""

    status_code = 409


class InvalidTransition(DomainError):
    """Requested status change is not reachable from the current status."""

    status_code = 409
