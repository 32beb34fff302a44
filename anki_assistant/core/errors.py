"""
Auth failure taxonomy.

Each error carries the HTTP status and client-facing detail it maps to, so
services can raise them without knowing about FastAPI responses.
"""
from __future__ import annotations


class AuthError(Exception):
    status_code: int = 401
    detail: str = "Not authenticated"
    code: str | None = None

    def __init__(self, detail: str | None = None, *, code: str | None = None) -> None:
        if detail is not None:
            self.detail = detail
        if code is not None:
            self.code = code
        super().__init__(self.detail)


class MissingCredential(AuthError):
    status_code = 401
    detail = "Authentication token not provided"


class InvalidToken(AuthError):
    status_code = 403
    detail = "Invalid or expired token"


class ExpiredToken(InvalidToken):
    pass


class InvalidCredentials(AuthError):
    status_code = 401
    detail = "Invalid credentials"


class SessionNotFound(AuthError):
    status_code = 401
    detail = "Invalid session"


class SessionRevoked(AuthError):
    status_code = 403
    detail = "Session revoked (potential reuse detected)"


class SessionExpired(ExpiredToken):
    detail = "Session expired"


class UserInactive(AuthError):
    status_code = 403
    detail = "Your account is inactive. Please contact support."
    code = "USER_INACTIVE"


class UserNotFound(AuthError):
    status_code = 404
    detail = "User not found"
    code = "USER_NOT_FOUND"


class AdminRequired(AuthError):
    status_code = 403
    detail = "Access restricted to administrators"


class StorageFailure(AuthError):
    status_code = 500
    detail = "Storage failure"
