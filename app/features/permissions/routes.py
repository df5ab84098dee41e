"""
Read-only views of the permission and role catalogs.
"""
from typing import Annotated
from fastapi import APIRouter, Depends

from app.features.auth.dependencies import get_current_identity
from app.features.auth.guard import InboundIdentity
from app.features.permissions.catalog import catalog
from app.features.permissions.roles import roles
from app.features.permissions.schemas import (
    PermissionTreeNode,
    RoleWithPermissions,
    outbound_permissions,
)


router = APIRouter()


@router.get("/", response_model=PermissionTreeNode)
async def get_permission_tree(
    identity: Annotated[InboundIdentity, Depends(get_current_identity)],
):
    """The whole permission tree, starting at the root node."""
    return PermissionTreeNode.from_catalog(catalog, catalog.root.code)


@router.get("/roles", response_model=list[RoleWithPermissions])
async def list_roles(
    identity: Annotated[InboundIdentity, Depends(get_current_identity)],
):
    """Every role with its expanded default permissions."""
    return [
        RoleWithPermissions(
            id=role.id,
            name=role.name,
            seeds=list(role.seeds),
            permissions=outbound_permissions(roles.default_permissions(role.id)),
        )
        for role in roles
    ]
