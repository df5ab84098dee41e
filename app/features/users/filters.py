"""
Query conditions for listing users.

Filtering by permission P follows the grant resolution algebra as a set
query: users whose role defaults include P, or who hold a non-shield
override on P or one of its ancestors, minus users holding a shield on P or
one of its ancestors.
"""
from sqlalchemy import and_, exists, not_, or_, select
from sqlalchemy.sql.elements import ColumnElement

from app.features.permissions.resolver import GrantResolver, resolver
from app.features.users.models import ExtraPermission, User


def _has_override(codes, is_shield: bool) -> ColumnElement[bool]:
    return exists(
        select(ExtraPermission.id).where(
            ExtraPermission.user_id == User.id,
            ExtraPermission.permission_code.in_(codes),
            ExtraPermission.is_shield == is_shield,
        )
    )


def holds_permission(code: str, grant_resolver: GrantResolver = resolver) -> ColumnElement[bool]:
    """
    Condition matching users whose effective permissions include ``code``.

    Raises UnknownPermissionCode for a code outside the catalog.
    """
    covering = sorted(grant_resolver.permissions.covering(code))
    role_ids = sorted(grant_resolver.roles.roles_granting(code))
    return and_(
        or_(User.role_id.in_(role_ids), _has_override(covering, False)),
        not_(_has_override(covering, True)),
    )


def user_conditions(
    id: int | None = None,
    state=None,
    email: str | None = None,
    username: str | None = None,
    role_id: int | None = None,
    permission: str | None = None,
) -> list[ColumnElement[bool]]:
    """
    Conditions for the user listing. Every given filter narrows the result;
    a role filter and a permission filter are intersected.
    """
    conditions: list[ColumnElement[bool]] = []
    if id is not None:
        conditions.append(User.id == id)
    if state is not None:
        conditions.append(User.state == state)
    if email:
        conditions.append(User.email.ilike(f"%{email}%"))
    if username:
        conditions.append(User.username.ilike(f"%{username}%"))
    if role_id is not None:
        conditions.append(User.role_id == role_id)
    if permission is not None:
        conditions.append(holds_permission(permission))
    return conditions
