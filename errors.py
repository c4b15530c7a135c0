"""Domain errors raised by the service layer.

Each error carries the HTTP status the API layer answers with, so routes do
not need one `except` block per error type.
"""


class DomainError(Exception):
    """Base class for expected, user-facing failures."""
    status_code = 400

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {'error': self.message}


class NotFound(DomainError, LookupError):
    """Referenced entity does not exist."""
    status_code = 404


class Conflict(DomainError):
    """Exclusivity violation: zone/place taken, duplicate selection, capacity reached."""
    status_code = 409


class Forbidden(DomainError, PermissionError):
    """Role or ownership check failed."""
    status_code = 403


class InvalidArgument(DomainError, ValueError):
    """Malformed input."""
    status_code = 400


class ConfigurationError(DomainError):
    """Event data makes an operation impossible (e.g. a required activity is full)."""
    status_code = 500
