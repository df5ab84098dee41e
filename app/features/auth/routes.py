"""
Login and logout routes.
"""
from datetime import datetime
from typing import Annotated
from fastapi import APIRouter, Depends, Request
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.database.engine import get_db
from app.core.exceptions import (
    ApplicationPending,
    ApplicationRejected,
    AuthTokenInvalidOrExpired,
    UnconfirmedEmail,
    UserBanned,
    UserNotFound,
)
from app.core.rate_limit import limiter
from app.features.auth.dependencies import get_bearer_token, get_current_identity, get_guard
from app.features.auth.guard import AuthorizationGuard, InboundIdentity
from app.features.auth.passwords import verify_password
from app.features.auth.schemas import LoginRequest, LoginResponse
from app.features.auth import status as registration
from app.features.users.models import User, UserState
from app.features.users.schemas import user_response
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter(tags=["authorization"])


async def authenticate(db: AsyncSession, email: str, password: str) -> tuple[User, InboundIdentity]:
    """
    Verify credentials and return the user with a fresh identity snapshot.

    Unknown emails and wrong passwords raise the same UserNotFound.
    """
    found = await registration.fetch_by_email(db, email)
    if isinstance(found, registration.Unconfirmed):
        raise UnconfirmedEmail()
    if isinstance(found, registration.ApplicationPending):
        raise ApplicationPending()
    if isinstance(found, registration.ApplicationRejected):
        raise ApplicationRejected()
    if not isinstance(found, registration.Registered):
        raise UserNotFound()
    if not verify_password(found.user.hashed_password, password):
        raise UserNotFound()
    if found.user.state == UserState.BANNED:
        raise UserBanned()
    return found.user, found.identity


@router.post("/login", response_model=LoginResponse)
@limiter.limit(config.LOGIN_RATE_LIMIT, key_func=get_remote_address)
async def login(
    request: Request,
    login_data: LoginRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    token: Annotated[str | None, Depends(get_bearer_token)],
    authorization: Annotated[AuthorizationGuard, Depends(get_guard)],
):
    """
    Exchange credentials for a bearer token.

    A still valid bearer presented with the request is reused as is; an
    invalid or expired one is rejected instead of silently replaced.
    """
    store = authorization.store
    identity = store.lookup(token) if token else None
    if token and identity is None:
        raise AuthTokenInvalidOrExpired()

    if identity is None:
        user, identity = await authenticate(db, login_data.email, login_data.password)
        bearer = None
    else:
        user = await db.get(User, identity.user_id)
        if user is None:
            store.invalidate(token)
            raise AuthTokenInvalidOrExpired()
        bearer = token

    user.last_login_at = datetime.now()
    await db.commit()
    await db.refresh(user)

    if bearer is None:
        bearer = store.issue(identity)
        log.info("User %s logged in", user.id)

    return LoginResponse(
        bearer=bearer,
        expire_in=int(store.expiry_seconds),
        user=user_response(user, identity.permissions),
    )


@router.post("/logout")
async def logout(
    identity: Annotated[InboundIdentity, Depends(get_current_identity)],
    token: Annotated[str | None, Depends(get_bearer_token)],
    authorization: Annotated[AuthorizationGuard, Depends(get_guard)],
):
    """Invalidate the presented bearer."""
    authorization.store.invalidate(token)
    log.info("User %s logged out", identity.user_id)
    return {"message": "given bearer has been invalidated"}
