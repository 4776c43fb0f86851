# gaytradies/errors.py
from fastapi import HTTPException


class ApiError(HTTPException):
    """HTTPException carrying one of the service's error kinds.

    The response body is ``{"detail": {"kind": ..., "message": ...}}`` so the
    app can show or translate the message directly.
    """

    kind = "internal"
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(
            status_code=type(self).status_code,
            detail={"kind": self.kind, "message": message},
        )


class Unauthenticated(ApiError):
    kind = "unauthenticated"
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)
        self.headers = {"WWW-Authenticate": "Bearer"}


class InvalidArgument(ApiError):
    kind = "invalid-argument"
    status_code = 400


class FailedPrecondition(ApiError):
    kind = "failed-precondition"
    status_code = 500


class PermissionDenied(ApiError):
    kind = "permission-denied"
    status_code = 403


class NotFound(ApiError):
    kind = "not-found"
    status_code = 404


class Internal(ApiError):
    kind = "internal"
    status_code = 500
