from typing import Optional

from fastapi import status


class TodoError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)


class ValidationError(TodoError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid request"


class ConflictError(TodoError):
    status_code = status.HTTP_409_CONFLICT
    message = "Resource already exists"


class AuthError(TodoError):
    # Bad credentials and bad tokens share this type so callers
    # cannot tell which check failed.
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Could not validate credentials"


class NotFoundError(TodoError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Task not found"
