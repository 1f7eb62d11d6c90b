"""
Error taxonomy for the API.

Handlers raise these; the exception handlers in main.py turn them into
`{"message": ...}` responses with the matching HTTP status.
"""


class AppError(Exception):
    """Base class for every error the API reports to clients."""

    status_code = 500
    default_message = "Server error"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request data"


class Unauthenticated(AppError):
    status_code = 401
    default_message = "Not authorized"


class Forbidden(AppError):
    status_code = 403
    default_message = "Access denied"


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class Conflict(AppError):
    status_code = 409
    default_message = "Conflict"


class UploadError(AppError):
    status_code = 500
    default_message = "File upload failed"


class PersistenceError(AppError):
    status_code = 500
    default_message = "Failed to save data"
