"""
User feature routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.exceptions import (
    BadRequest,
    Conflict,
    DeleteSelf,
    DeleteSurpassUser,
    NotFound,
    UnknownPermissionCode,
)
from app.features.applications.models import UserApplication
from app.features.auth.dependencies import get_bearer_token, get_current_identity, get_guard, require_permission
from app.features.auth.guard import AuthorizationGuard, InboundIdentity
from app.features.auth.status import identity_of
from app.features.permissions.roles import roles
from app.features.users.filters import user_conditions
from app.features.users.models import ExtraPermission, User, UserState
from app.features.users.schemas import (
    UserListResponse,
    UserResponse,
    UserUpdate,
    user_list_entry,
    user_response,
)
from app.utils import get_logger, offset


log = get_logger(__name__)
router = APIRouter(tags=["users"])


async def get_user_or_404(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound("user not found")
    return user


@router.get("/me", response_model=UserResponse)
async def get_current_user_profile(
    identity: Annotated[InboundIdentity, Depends(get_current_identity)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Current user's profile with the permissions of the current session."""
    user = await get_user_or_404(db, identity.user_id)
    return user_response(user, identity.permissions)


@router.delete("/me")
async def delete_current_user(
    identity: Annotated[InboundIdentity, Depends(get_current_identity)],
    token: Annotated[str | None, Depends(get_bearer_token)],
    authorization: Annotated[AuthorizationGuard, Depends(get_guard)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Delete the current account and end every session of it. The client
    should return to the login page.
    """
    authorization.store.invalidate(token)
    user = await get_user_or_404(db, identity.user_id)
    await db.delete(user)
    await db.commit()
    revoked = authorization.store.revoke(lambda principal: principal.user_id == identity.user_id)
    log.info("User %s deleted their account, %d other sessions revoked", identity.user_id, revoked)
    return {"message": "current user has been deleted"}


@router.get("/", response_model=UserListResponse)
async def list_users(
    identity: Annotated[InboundIdentity, Depends(require_permission("U_L"))],
    db: Annotated[AsyncSession, Depends(get_db)],
    page: int = Query(1, ge=1, description="The n-th page of result"),
    per_page: int = Query(20, ge=1, le=100, description="Number of users per page"),
    id: int | None = Query(None, description="Exact search by id"),
    state: int | None = Query(None, description="Exact search by user state id"),
    email: str | None = Query(None, description="Fuzzily filter by email"),
    username: str | None = Query(None, description="Fuzzily filter by username"),
    role: int | None = Query(None, description="Filter by role id"),
    permission: str | None = Query(None, description="Filter by effective permission code"),
):
    """Query users ordered by id. None of the filters is required."""
    try:
        user_state = UserState(state) if state is not None else None
    except ValueError:
        raise BadRequest("invalid state")
    if role is not None and role not in roles:
        raise BadRequest("invalid role")

    try:
        conditions = user_conditions(
            id=id,
            state=user_state,
            email=email,
            username=username,
            role_id=role,
            permission=permission,
        )
    except UnknownPermissionCode:
        raise BadRequest("invalid permission")

    total = await db.scalar(select(func.count()).select_from(User).where(*conditions))
    result = await db.execute(
        select(User)
        .where(*conditions)
        .order_by(User.id)
        .offset(offset(page, per_page))
        .limit(per_page)
    )
    return UserListResponse(
        total=total or 0,
        result=[user_list_entry(user) for user in result.scalars().all()],
    )


@router.patch("/{user_id}", response_model=UserResponse)
async def modify_user(
    user_id: int,
    update_data: UserUpdate,
    identity: Annotated[InboundIdentity, Depends(get_current_identity)],
    authorization: Annotated[AuthorizationGuard, Depends(get_guard)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Edit a user. Username and email need U_DM; role and extra permissions
    need U_PM. Replacing extra permissions drops every previous override.
    Changes take effect at the user's next login.
    """
    required = []
    if update_data.touches_data:
        required.append("U_DM")
    if update_data.touches_permissions:
        required.append("U_PM")
    authorization.check(identity, *required)

    user = await get_user_or_404(db, user_id)

    if update_data.email is not None and update_data.email != user.email:
        taken = await db.scalar(select(User.id).where(User.email == update_data.email))
        applied = await db.scalar(
            select(UserApplication.id).where(UserApplication.email == update_data.email)
        )
        if taken is not None or applied is not None:
            raise Conflict("email already in use")
        user.email = update_data.email
    if update_data.username is not None:
        user.username = update_data.username
    if update_data.role_id is not None:
        user.role_id = update_data.role_id
    if update_data.extra_permissions is not None:
        # flush the removals first, the new rows may repeat old (code, shield) pairs
        user.extra_permissions.clear()
        await db.flush()
        unique = {(p.id, p.is_shield) for p in update_data.extra_permissions}
        user.extra_permissions.extend(
            ExtraPermission(permission_code=code, is_shield=is_shield)
            for code, is_shield in sorted(unique)
        )

    await db.commit()
    await db.refresh(user)
    log.info("User %s modified user %s", identity.user_id, user.id)
    return user_response(user, identity_of(user).permissions)


@router.post("/{user_id}/ban")
async def ban_user(
    user_id: int,
    identity: Annotated[InboundIdentity, Depends(require_permission("U_DM"))],
    authorization: Annotated[AuthorizationGuard, Depends(get_guard)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Ban a user and end all of their sessions."""
    user = await get_user_or_404(db, user_id)
    user.state = UserState.BANNED
    await db.commit()
    revoked = authorization.store.revoke(lambda principal: principal.user_id == user_id)
    log.info("User %s banned user %s, %d sessions revoked", identity.user_id, user_id, revoked)
    return {"message": "specified user has been banned"}


@router.post("/{user_id}/unban")
async def unban_user(
    user_id: int,
    identity: Annotated[InboundIdentity, Depends(require_permission("U_DM"))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Unban a user. Succeeds as well when the user was not banned."""
    user = await get_user_or_404(db, user_id)
    if user.state == UserState.BANNED:
        user.state = UserState.NORMAL
        await db.commit()
        log.info("User %s unbanned user %s", identity.user_id, user_id)
    return {"message": "specified user is not banned"}


@router.delete("/{user_id}")
async def delete_user(
    user_id: int,
    identity: Annotated[InboundIdentity, Depends(require_permission("U_D"))],
    authorization: Annotated[AuthorizationGuard, Depends(get_guard)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Delete a user. Users cannot delete themselves here, nor anyone holding a
    permission they do not hold.
    """
    if user_id == identity.user_id:
        raise DeleteSelf()
    user = await get_user_or_404(db, user_id)
    if identity_of(user).permissions - identity.permissions:
        raise DeleteSurpassUser()

    await db.delete(user)
    await db.commit()
    authorization.store.revoke(lambda principal: principal.user_id == user_id)
    log.info("User %s deleted user %s", identity.user_id, user_id)
    return {"message": "specified user has been deleted"}
