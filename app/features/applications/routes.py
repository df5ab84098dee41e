"""
Registration application routes.

Registering creates an application; a user admin approves it (creating the
user with a role and optional overrides) or rejects it. Rejected applicants
cannot apply again until their application is reset.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.exceptions import Conflict, NotFound
from app.features.applications.models import UserApplication
from app.features.applications.schemas import (
    ApplicationCreate,
    ApplicationListEntry,
    ApplicationListResponse,
    ApproveRequest,
)
from app.features.auth.dependencies import require_permission
from app.features.auth.guard import InboundIdentity
from app.features.auth.passwords import hash_password
from app.features.users.models import ExtraPermission, User
from app.utils import get_logger, offset


log = get_logger(__name__)
router = APIRouter(tags=["applications"])


async def get_application_or_404(db: AsyncSession, application_id: int) -> UserApplication:
    application = await db.get(UserApplication, application_id)
    if application is None:
        raise NotFound("application not found")
    return application


@router.post("/", response_model=ApplicationListEntry, status_code=status.HTTP_201_CREATED)
async def register(
    application_data: ApplicationCreate,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Submit a registration application.

    Address confirmation mail is delivered by an external service, so the
    application is stored as confirmed and pending review.
    """
    if await db.scalar(select(User.id).where(User.email == application_data.email)) is not None:
        raise Conflict("user with the given email has already registered")
    if await db.scalar(
        select(UserApplication.id).where(UserApplication.email == application_data.email)
    ) is not None:
        raise Conflict("an application with the given email already exists")

    application = UserApplication(
        email=application_data.email,
        username=application_data.username,
        hashed_password=hash_password(application_data.password),
        is_email_confirmed=True,
        is_application_pending=True,
    )
    db.add(application)
    await db.commit()
    await db.refresh(application)
    log.info("New registration application %s", application.id)
    return application


@router.get("/", response_model=ApplicationListResponse)
async def list_applications(
    identity: Annotated[InboundIdentity, Depends(require_permission("UA_L"))],
    db: Annotated[AsyncSession, Depends(get_db)],
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    email: str | None = Query(None, description="Fuzzily filter by email"),
    username: str | None = Query(None, description="Fuzzily filter by username"),
):
    """Query registration applications ordered by id."""
    conditions = []
    if email:
        conditions.append(UserApplication.email.ilike(f"%{email}%"))
    if username:
        conditions.append(UserApplication.username.ilike(f"%{username}%"))

    total = await db.scalar(select(func.count()).select_from(UserApplication).where(*conditions))
    result = await db.execute(
        select(UserApplication)
        .where(*conditions)
        .order_by(UserApplication.id)
        .offset(offset(page, per_page))
        .limit(per_page)
    )
    return ApplicationListResponse(
        total=total or 0,
        result=[ApplicationListEntry.model_validate(a) for a in result.scalars().all()],
    )


@router.post("/{application_id}/approve")
async def approve_application(
    application_id: int,
    approval: ApproveRequest,
    identity: Annotated[InboundIdentity, Depends(require_permission("UA_A"))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create the user from the application, then remove the application."""
    application = await get_application_or_404(db, application_id)
    if await db.scalar(select(User.id).where(User.email == application.email)) is not None:
        raise Conflict("user with the given email has already registered")

    unique = {(p.id, p.is_shield) for p in approval.extra_permissions}
    user = User(
        username=application.username,
        email=application.email,
        hashed_password=application.hashed_password,
        role_id=approval.role_id,
        extra_permissions=[
            ExtraPermission(permission_code=code, is_shield=is_shield)
            for code, is_shield in sorted(unique)
        ],
    )
    db.add(user)
    await db.delete(application)
    await db.commit()
    await db.refresh(user)

    log.info("User %s approved application %s as user %s", identity.user_id, application_id, user.id)
    return {"message": "application approved", "user_id": user.id}


@router.post("/{application_id}/reject")
async def reject_application(
    application_id: int,
    identity: Annotated[InboundIdentity, Depends(require_permission("UA_R"))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Reject the application; the applicant cannot re-apply until it is reset."""
    application = await get_application_or_404(db, application_id)
    application.is_application_pending = False
    await db.commit()
    log.info("User %s rejected application %s", identity.user_id, application_id)
    return {"message": "application rejected"}


@router.delete("/{application_id}")
async def reset_application(
    application_id: int,
    identity: Annotated[InboundIdentity, Depends(require_permission("UA_R"))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Remove an application so that its email may register again."""
    application = await get_application_or_404(db, application_id)
    await db.delete(application)
    await db.commit()
    log.info("User %s reset application %s", identity.user_id, application_id)
    return {"message": "application reset"}
