"""
Error taxonomy shared by the core and the HTTP layer.

ApiException subclasses are recoverable at the request boundary and are
rendered by the handler registered in app.main as ``{"code", "message"}``.
CatalogError subclasses are configuration errors: they surface at import
time when a static table references something that does not exist.
"""
from collections.abc import Iterable

from fastapi import status


class ApiException(Exception):
    """Error rendered to the client with a stable numeric code."""

    code: int = 100
    message: str = "bad request"
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class BadRequest(ApiException):
    code = 100
    message = "bad request"
    status_code = status.HTTP_400_BAD_REQUEST


class PermissionDenied(ApiException):
    """
    Authenticated, but the effective permission set lacks some requirement.

    ``missing`` is kept for server-side diagnostics only; the rendered
    message never names permission codes.
    """
    code = 301
    message = "permission denied"
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, missing: Iterable[str] = ()):
        self.missing: list[str] = sorted(missing)
        super().__init__()


class Unauthenticated(ApiException):
    code = 302
    message = "login required, you should login first"
    status_code = status.HTTP_401_UNAUTHORIZED


class AuthTokenInvalidOrExpired(Unauthenticated):
    code = 303
    message = "given bearer token is invalid or has expired"


class UnconfirmedEmail(ApiException):
    code = 310
    message = "unconfirmed email address"
    status_code = status.HTTP_403_FORBIDDEN


class ApplicationPending(ApiException):
    code = 311
    message = "your register application is pending"
    status_code = status.HTTP_403_FORBIDDEN


class ApplicationRejected(ApiException):
    code = 312
    message = (
        "your register application as well as any further applications are rejected. "
        "consider contacting the user admin to reset your register status"
    )
    status_code = status.HTTP_403_FORBIDDEN


class Conflict(ApiException):
    code = 313
    message = "resource already exists"
    status_code = status.HTTP_409_CONFLICT


class UserBanned(ApiException):
    code = 315
    message = "this account has been banned"
    status_code = status.HTTP_403_FORBIDDEN


class DeleteSelf(ApiException):
    code = 320
    message = "use the self deletion endpoint to delete your own account"
    status_code = status.HTTP_403_FORBIDDEN


class DeleteSurpassUser(ApiException):
    code = 321
    message = "cannot delete a user holding permissions you do not hold"
    status_code = status.HTTP_403_FORBIDDEN


class UserNotFound(ApiException):
    code = 401
    message = "incorrect email or password"
    status_code = status.HTTP_401_UNAUTHORIZED


class NotFound(ApiException):
    code = 404
    message = "not found"
    status_code = status.HTTP_404_NOT_FOUND


class CatalogError(KeyError):
    """Lookup of a permission code or role id that is not in the catalog."""

    def __str__(self) -> str:
        return self.args[0] if self.args else self.__class__.__name__


class UnknownPermissionCode(CatalogError):
    def __init__(self, code: str):
        self.permission_code = code
        super().__init__(f"unknown permission code {code!r}")


class UnknownRole(CatalogError):
    def __init__(self, role_id):
        self.role_id = role_id
        super().__init__(f"unknown role {role_id!r}")
