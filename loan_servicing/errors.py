"""
Error Taxonomy

Every error raised by the engine carries the HTTP status and the wire ``type``
used when it is rendered as ``{type, message, status}``.
"""

from typing import Any, Dict


class LoanServicingError(Exception):
    """Base class for all loan servicing errors"""
    status_code = 500
    error_type = "server_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.error_type,
            "message": self.message,
            "status": self.status_code,
        }


class ValidationError(LoanServicingError, ValueError):
    """Malformed or out-of-range input; never partially applied"""
    status_code = 400
    error_type = "validation_error"


class InvalidTransitionError(ValidationError):
    """Requested status change is not allowed from the loan's current status"""
    status_code = 409
    error_type = "invalid_transition"


class AuthenticationError(LoanServicingError):
    """Missing, malformed or expired credentials"""
    status_code = 401
    error_type = "auth_error"


class ForbiddenError(LoanServicingError):
    """Authenticated actor is not allowed to perform the operation"""
    status_code = 403
    error_type = "forbidden"


class NotFoundError(LoanServicingError, LookupError):
    """Unknown loan or interest rate category"""
    status_code = 404
    error_type = "not_found"


class ServerUnreachableError(LoanServicingError):
    """The server could not be reached (no HTTP response was received)"""
    status_code = 503
    error_type = "network_error"


_ERRORS_BY_TYPE = {
    cls.error_type: cls
    for cls in (ValidationError, InvalidTransitionError, AuthenticationError,
                ForbiddenError, NotFoundError)
}


def error_from_response(body: Dict[str, Any], status_code: int) -> LoanServicingError:
    """Rebuild an error from a ``{type, message, status}`` response body"""
    message = body.get("message") or f"Request failed with status {status_code}"
    error_cls = _ERRORS_BY_TYPE.get(body.get("type"))
    if error_cls is None:
        error = LoanServicingError(message)
        error.status_code = status_code
        return error
    return error_cls(message)
