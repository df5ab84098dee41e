"""
Registration status of an email address.

Login resolves an email to exactly one of the variants below: a registered
user, or the reason there is none.
"""
from dataclasses import dataclass
from typing import Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.applications.models import UserApplication
from app.features.auth.guard import InboundIdentity
from app.features.permissions.resolver import ExtraPermissionOverride
from app.features.users.models import User


@dataclass(frozen=True)
class Registered:
    user: User
    identity: InboundIdentity


@dataclass(frozen=True)
class NotFound:
    pass


@dataclass(frozen=True)
class Unconfirmed:
    application: UserApplication


@dataclass(frozen=True)
class ApplicationPending:
    application: UserApplication


@dataclass(frozen=True)
class ApplicationRejected:
    application: UserApplication


RegistrationStatus = Union[Registered, NotFound, Unconfirmed, ApplicationPending, ApplicationRejected]


def identity_of(user: User) -> InboundIdentity:
    """Resolve the identity snapshot of a loaded user."""
    overrides = [
        ExtraPermissionOverride(extra.permission_code, extra.is_shield)
        for extra in user.extra_permissions
    ]
    return InboundIdentity.build(user.id, user.role_id, overrides)


def application_status(application: UserApplication) -> RegistrationStatus:
    if not application.is_email_confirmed:
        return Unconfirmed(application)
    if application.is_application_pending:
        return ApplicationPending(application)
    return ApplicationRejected(application)


async def fetch_by_email(db: AsyncSession, email: str) -> RegistrationStatus:
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is not None:
        return Registered(user, identity_of(user))

    result = await db.execute(select(UserApplication).where(UserApplication.email == email))
    application = result.scalar_one_or_none()
    if application is None:
        return NotFound()
    return application_status(application)
