class TrackerError(Exception):
    """Base class for failures that map onto a client-facing outcome."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(TrackerError):
    status_code = 400


class AuthError(TrackerError):
    status_code = 403


class NotFoundError(TrackerError):
    status_code = 404


class ConflictError(TrackerError):
    status_code = 409


class StoreError(TrackerError):
    status_code = 500
