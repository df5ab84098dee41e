"""
Request-time authorization.

``AuthorizationGuard.require`` resolves a bearer token through the session
store and checks the principal's effective permissions, failing closed.
"""
from collections.abc import Iterable
from dataclasses import dataclass, field

from app.core.exceptions import PermissionDenied, Unauthenticated
from app.features.auth.sessions import SessionStore, sessions
from app.features.permissions.resolver import ExtraPermissionOverride, GrantResolver, resolver
from app.utils import get_logger


log = get_logger(__name__)


@dataclass(frozen=True)
class InboundIdentity:
    """
    Snapshot of an authenticated user, taken at login.

    ``permissions`` is resolved once when the snapshot is built; a change to
    the stored role or overrides only takes effect at the next login.
    """
    user_id: int
    role_id: int
    overrides: tuple[ExtraPermissionOverride, ...] = ()
    permissions: frozenset[str] = field(default=frozenset(), compare=False)

    @classmethod
    def build(
        cls,
        user_id: int,
        role_id: int,
        overrides: Iterable[ExtraPermissionOverride] = (),
        grant_resolver: GrantResolver = resolver,
    ) -> "InboundIdentity":
        overrides = tuple(overrides)
        return cls(user_id, role_id, overrides, grant_resolver.resolve(role_id, overrides))

    def missing(self, requires: Iterable[str], grant_resolver: GrantResolver = resolver) -> list[str]:
        """Required codes, expanded, that this identity does not hold."""
        needed = grant_resolver.permissions.expand_all(requires)
        return sorted(needed - self.permissions)


class AuthorizationGuard:

    def __init__(self, store: SessionStore = sessions, grant_resolver: GrantResolver = resolver):
        self.store = store
        self.resolver = grant_resolver

    def authenticate(self, token: str | None) -> InboundIdentity:
        """Return the identity behind ``token``, touching the session."""
        identity = self.store.lookup(token) if token else None
        if identity is None:
            raise Unauthenticated()
        return identity

    def require(self, token: str | None, *requires: str) -> InboundIdentity:
        """
        Allow the call only if every required permission is held.

        Requiring an interior node requires its whole expansion. With no
        requirements this is an authentication-only check. The session is
        touched as soon as the token resolves, whatever the outcome.
        """
        identity = self.authenticate(token)
        self.check(identity, *requires)
        return identity

    def check(self, identity: InboundIdentity, *requires: str) -> None:
        if not requires:
            return
        missing = identity.missing(requires, self.resolver)
        if missing:
            log.info("Denied user %s, missing %s", identity.user_id, missing)
            raise PermissionDenied(missing)


guard = AuthorizationGuard()
