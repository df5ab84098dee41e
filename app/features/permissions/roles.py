"""
Role catalog: a closed set of roles, each seeding default permissions.
"""
from collections.abc import Iterable
from dataclasses import dataclass

from app.core.exceptions import UnknownPermissionCode, UnknownRole
from app.features.permissions.catalog import PermissionCatalog, catalog as permission_catalog


@dataclass(frozen=True)
class Role:
    id: int
    name: str
    seeds: tuple[str, ...]


ROLE_TABLE: tuple[Role, ...] = (
    Role(0, "Root", ("ROOT",)),
    Role(1, "SelfProviderAdmin", ("M_Ps",)),
    Role(2, "SelfComputationAdmin", ("CR_Ls", "CR_Ts")),
    # UserAdmin + OperationAdmin
    Role(30, "PlatformAdmin", ("U", "UA", "G", "PR", "MR")),
    Role(31, "UserAdmin", ("U", "UA")),
    Role(32, "OperationAdmin", ("G", "PR", "MR")),
    Role(33, "MetricsAdmin", ("M",)),
)


class RoleCatalog:
    """
    Roles with their expanded default permissions and the inverse index.

    Everything is computed in the constructor; a seed that does not resolve
    in the permission catalog raises ``UnknownPermissionCode`` there, which
    aborts startup.
    """

    def __init__(self, roles: Iterable[Role], permissions: PermissionCatalog):
        self._roles: dict[int, Role] = {}
        self._defaults: dict[int, frozenset[str]] = {}
        granting: dict[str, set[int]] = {code: set() for code in permissions.codes()}

        for role in roles:
            if role.id in self._roles:
                raise ValueError(f"duplicate role id {role.id}")
            defaults = permissions.expand_all(role.seeds)
            self._roles[role.id] = role
            self._defaults[role.id] = defaults
            for code in defaults:
                granting[code].add(role.id)

        self._granting = {code: frozenset(ids) for code, ids in granting.items()}

    def __iter__(self):
        return iter(self._roles.values())

    def __contains__(self, role_id: object) -> bool:
        return role_id in self._roles

    def get(self, role_id: int) -> Role:
        try:
            return self._roles[role_id]
        except KeyError:
            raise UnknownRole(role_id) from None

    def by_name(self, name: str) -> Role:
        for role in self._roles.values():
            if role.name == name:
                return role
        raise UnknownRole(name)

    def default_permissions(self, role_id: int) -> frozenset[str]:
        try:
            return self._defaults[role_id]
        except KeyError:
            raise UnknownRole(role_id) from None

    def roles_granting(self, code: str) -> frozenset[int]:
        """Ids of the roles whose defaults include ``code``."""
        try:
            return self._granting[code]
        except KeyError:
            raise UnknownPermissionCode(code) from None


roles = RoleCatalog(ROLE_TABLE, permission_catalog)
