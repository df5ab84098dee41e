"""
Pydantic schemas for permissions and roles.
"""
from pydantic import BaseModel, Field, field_validator

from app.features.permissions.catalog import PermissionCatalog, catalog
from app.features.permissions.roles import Role


class OutboundPermission(BaseModel):
    id: str
    name: str


class PermissionTreeNode(OutboundPermission):
    children: list["PermissionTreeNode"] = []

    @classmethod
    def from_catalog(cls, permissions: PermissionCatalog, code: str) -> "PermissionTreeNode":
        node = permissions.get(code)
        return cls(
            id=node.code,
            name=node.name,
            children=[cls.from_catalog(permissions, child) for child in node.children],
        )


class OutboundRole(BaseModel):
    id: int
    name: str


class RoleWithPermissions(OutboundRole):
    """A role and its expanded default permissions."""
    seeds: list[str]
    permissions: list[OutboundPermission] = []


class InboundExtraPermission(BaseModel):
    """
    Override submitted by an administrator.

    Unknown codes are rejected here, at write time, so stored overrides
    always resolve.
    """
    id: str = Field(..., min_length=1, max_length=16, description="Permission code, e.g. 'U_L'")
    is_shield: bool = Field(False, description="Revoke instead of grant")

    @field_validator("id")
    @classmethod
    def known_permission_code(cls, v: str) -> str:
        if v not in catalog:
            raise ValueError(f"invalid permission id {v}, note that the code is required, not the name")
        return v


def outbound_permissions(codes) -> list[OutboundPermission]:
    """Sorted outbound view of a set of permission codes."""
    return [
        OutboundPermission(id=code, name=catalog.get(code).name)
        for code in sorted(codes)
    ]


def outbound_role(role: Role) -> OutboundRole:
    return OutboundRole(id=role.id, name=role.name)
