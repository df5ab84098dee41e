"""
Grant resolution: role defaults, additive overrides, then shields.
"""
from collections.abc import Iterable
from dataclasses import dataclass

from app.features.permissions.catalog import PermissionCatalog, catalog as permission_catalog
from app.features.permissions.roles import RoleCatalog, roles as role_catalog


@dataclass(frozen=True)
class ExtraPermissionOverride:
    """
    Per-user exception to the role defaults.

    ``is_shield=False`` grants the node and its expansion on top of the role;
    ``is_shield=True`` revokes them regardless of any other grant.
    """
    code: str
    is_shield: bool = False


class GrantResolver:

    def __init__(self, permissions: PermissionCatalog, roles: RoleCatalog):
        self.permissions = permissions
        self.roles = roles

    def resolve(self, role_id: int, overrides: Iterable[ExtraPermissionOverride] = ()) -> frozenset[str]:
        """
        Effective permission set of a principal.

        Shields are subtracted after every positive grant has been unioned,
        so the result does not depend on the order of ``overrides`` and a
        grant and a shield on the same node resolve to revoked.
        """
        granted = set(self.roles.default_permissions(role_id))
        revoked: set[str] = set()
        for override in overrides:
            expansion = self.permissions.expand(override.code)
            if override.is_shield:
                revoked |= expansion
            else:
                granted |= expansion
        return frozenset(granted - revoked)

    def grants(self, role_id: int, overrides: Iterable[ExtraPermissionOverride], code: str) -> bool:
        """
        Whether a principal holds ``code``, answered the way the user listing
        filter answers it: role or non-shield override covering ``code``, and
        no shield covering it.
        """
        covering = self.permissions.covering(code)
        overrides = tuple(overrides)
        if any(o.is_shield and o.code in covering for o in overrides):
            return False
        if role_id in self.roles.roles_granting(code):
            return True
        return any(not o.is_shield and o.code in covering for o in overrides)


resolver = GrantResolver(permission_catalog, role_catalog)
