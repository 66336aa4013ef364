"""Error taxonomy shared by services and routers.

Services raise these; `reader_api.main` maps each class to its HTTP status and
renders `{"success": false, "message": ...}`.
"""


class AppError(Exception):
    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthenticationError(AppError):
    status_code = 401
    default_message = "Authentication required"


class AuthorizationError(AppError):
    status_code = 403
    default_message = "Access denied"


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request"


class NotFoundError(AppError):
    status_code = 404
    default_message = "Not found"


class ReferentialError(NotFoundError):
    """A write referenced a row (book, page) that does not exist."""

    default_message = "Referenced record not found"


class InfrastructureError(AppError):
    status_code = 500
    default_message = "Internal server error"
