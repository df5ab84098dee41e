"""
FastAPI dependencies for bearer authentication and permission checks.
"""
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.features.auth.guard import AuthorizationGuard, InboundIdentity, guard


security = HTTPBearer(auto_error=False)


def get_guard() -> AuthorizationGuard:
    return guard


def get_bearer_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)]
) -> str | None:
    """The raw bearer token, passed on untouched, or None when absent."""
    if credentials is None:
        return None
    return credentials.credentials


async def get_current_identity(
    token: Annotated[str | None, Depends(get_bearer_token)],
    authorization: Annotated[AuthorizationGuard, Depends(get_guard)],
) -> InboundIdentity:
    """
    Resolve the caller's session.

    Usage:
        @router.get("/me")
        async def get_me(identity: InboundIdentity = Depends(get_current_identity)):
            ...
    """
    return authorization.authenticate(token)


def require_permission(*codes: str):
    """
    Dependency factory requiring every permission in ``codes``.

    Usage:
        @router.get("/")
        async def list_users(
            identity: InboundIdentity = Depends(require_permission("U_L"))
        ):
            ...

    Raises Unauthenticated (401) or PermissionDenied (403).
    """
    async def permission_dependency(
        token: Annotated[str | None, Depends(get_bearer_token)],
        authorization: Annotated[AuthorizationGuard, Depends(get_guard)],
    ) -> InboundIdentity:
        return authorization.require(token, *codes)

    return permission_dependency


def get_authorization_header(request: Request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"
