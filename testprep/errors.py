"""Error taxonomy of the attempt engine.

Services raise these; ``testprep.main`` maps each one to an HTTP status.
Messages are safe to show to the caller and never carry another user's data.
"""

from fastapi import status


class AttemptError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request failed"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(AttemptError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class Forbidden(AttemptError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied"


class Unauthenticated(AttemptError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"


class Conflict(AttemptError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Cannot modify a finished attempt"


class InvalidTransition(AttemptError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid status transition"


class ValidationError(AttemptError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "Invalid answer payload"


class ScoringError(AttemptError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Failed to calculate scores"


class StoreUnavailable(AttemptError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "The attempt store is busy, please retry"


class StaleAttempt(Exception):
    """Optimistic version check lost against a concurrent writer."""
