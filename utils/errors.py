from flask import jsonify


class ApiError(Exception):
    """Error that maps straight onto a JSON ``{"error": ...}`` response."""

    status_code = 500
    message = "Internal server error"

    def __init__(self, message=None, status_code=None):
        super().__init__(message or self.message)
        if message is not None:
            self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_response(self):
        return jsonify(error=self.message), self.status_code


class ValidationError(ApiError):
    status_code = 422
    message = "Invalid request"


class InvalidCredentials(ApiError):
    # same message for unknown email and wrong password
    status_code = 401
    message = "Invalid credentials"


class Forbidden(ApiError):
    status_code = 403
    message = "Forbidden"


class NotFound(ApiError):
    status_code = 404
    message = "Not found"


class Conflict(ApiError):
    status_code = 409
    message = "Conflict"


class InternalError(ApiError):
    status_code = 500
    message = "Internal server error"


class SchemaCompatibilityError(Exception):
    """The database is missing a column the ORM asked for.

    Raised by the storage helpers and absorbed by the login gate; never
    rendered to a client.
    """
