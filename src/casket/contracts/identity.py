"""Identity provider boundary.

Login and refresh-token exchange are delegated to an external identity
provider (an OAuth/OIDC service). Only the verified result crosses into the
core.
"""

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class VerifiedIdentity:
    """Identity asserted by the external provider after verification."""

    user_id: str
    refresh_token: str
    expires_in: int | None = None
    email: str | None = None
    name: str | None = None


@runtime_checkable
class IdentityProvider(Protocol):
    """Protocol for the external identity collaborator."""

    def verify_password(self, email: str, password: str) -> VerifiedIdentity:
        """Verify credentials.

        Raises:
            Unauthorized: If the provider rejects the credentials
        """
        ...

    def refresh(self, refresh_token: str) -> VerifiedIdentity:
        """Exchange a refresh token for a fresh identity assertion.

        Raises:
            Unauthorized: If the refresh token is invalid or revoked
        """
        ...
