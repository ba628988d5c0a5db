"""HTTP error taxonomy shared by routers and services"""
from typing import Any, Optional

from fastapi import HTTPException, status


class ValidationError(HTTPException):
    def __init__(self, error: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=error)


class NotFoundError(HTTPException):
    def __init__(self, error: str):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=error)


class AuthError(HTTPException):
    """Missing token is a 401, a token that fails verification is a 403."""

    def __init__(self, error: Any, status_code: int = status.HTTP_403_FORBIDDEN):
        super().__init__(
            status_code=status_code,
            detail=error,
            headers={"WWW-Authenticate": "Bearer"},
        )


class LicenseError(HTTPException):
    def __init__(self, error: str):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=error)


class DatabaseError(HTTPException):
    """Query failure. The driver message is passed through to the client."""

    def __init__(self, error: str, detail: Optional[str] = None):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=error)
        self.extra = detail


def error_body(exc: HTTPException) -> dict:
    """Render an HTTPException as the JSON error shape {error, detail?}."""
    if isinstance(exc.detail, dict):
        return exc.detail
    body: dict[str, Any] = {"error": exc.detail}
    extra = getattr(exc, "extra", None)
    if extra:
        body["detail"] = extra
    return body
