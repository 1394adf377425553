"""Error taxonomy shared by the services and the HTTP layer.

Each error is scoped to the single action that raised it; none of them is
fatal to the application.
"""


class GameHubError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(GameHubError):
    """Missing or invalid input, detected before anything is written."""
    status_code = 400


class AuthorizationError(GameHubError):
    """The acting user does not own the record they tried to change."""
    status_code = 403


class NotFoundError(GameHubError):
    status_code = 404


class PersistenceError(GameHubError):
    """The data service failed to complete an operation."""
    status_code = 503
