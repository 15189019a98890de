"""
Typed errors raised by the progress engine.

The HTTP layer maps each class to a status code through ``status_code``;
core callers can catch them directly.
"""


class ProgressServiceError(Exception):
    """Base exception for progress engine operations"""
    status_code = 500
    error = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ProgressServiceError):
    """Unknown user, chapter or quiz id"""
    status_code = 404
    error = "not_found"


class InvalidInputError(ProgressServiceError):
    """Out-of-range answer index, malformed patch or negative credit"""
    status_code = 422
    error = "invalid_input"


class ConflictRetryableError(ProgressServiceError):
    """Concurrent modification detected; the whole operation may be retried"""
    status_code = 409
    error = "conflict"


class StorageUnavailableError(ProgressServiceError):
    """Underlying datastore failure"""
    status_code = 503
    error = "storage_unavailable"
