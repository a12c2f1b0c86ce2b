"""Current-user resolution for ledger operations."""

from typing import Optional, Protocol

from conti.domain.errors import AuthenticationRequired, authentication_required


class IdentityProvider(Protocol):
    """Anything that can tell who the current user is."""

    def current_user_id(self) -> Optional[str]: ...


class StaticIdentity:
    """Identity fixed at construction, e.g. from ``--user`` on the CLI."""

    def __init__(self, user_id: Optional[str]):
        self.user_id = user_id.strip() if user_id else None

    def current_user_id(self) -> Optional[str]:
        return self.user_id or None


def require_user(identity: IdentityProvider) -> str:
    """Return the current user id.

    Raises:
        AuthenticationRequired: If no user is signed in
    """
    user_id = identity.current_user_id()
    if not user_id:
        raise AuthenticationRequired(authentication_required())
    return user_id
