"""
Domain error taxonomy.

Services raise these; the handlers registered in app.main turn them into the
uniform error envelope ``{"success": false, "error": {"message", "code"}}``.
"""


class DomainError(Exception):
    status_code = 400
    code = "error"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationError(DomainError):
    """Malformed input or an invalid state transition."""

    status_code = 400
    code = "validation_error"


class NotFoundError(DomainError):
    """Missing entity, or one that lives in another tenant."""

    status_code = 404
    code = "not_found"


class ConflictError(DomainError):
    """The operation would break a lifecycle invariant."""

    status_code = 409
    code = "conflict"


class AuthorizationError(DomainError):
    """The caller's role does not allow the operation."""

    status_code = 403
    code = "forbidden"


def error_body(message: str, code: str | None = None) -> dict:
    error: dict = {"message": message}
    if code:
        error["code"] = code
    return {"success": False, "error": error}
