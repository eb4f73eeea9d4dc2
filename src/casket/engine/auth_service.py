"""Auth operations: login, refresh, agent tokens, tickets, revocation.

Identity verification belongs to an external provider; this service only
mints and revokes casket credentials once an identity is established.
Revocation is ownership-checked, and a token the caller does not own is
reported exactly like one that does not exist.
"""

from collections.abc import Sequence
from dataclasses import replace

from casket.contracts.auth import AuthContext
from casket.contracts.credentials import (
    AgentPermissions,
    AgentToken,
    Ticket,
    UserToken,
    WritableConfig,
)
from casket.contracts.enums import CredentialKind, TicketType
from casket.contracts.errors import CasketError, Forbidden, InvalidRequest, NotFound
from casket.contracts.identity import IdentityProvider, VerifiedIdentity
from casket.contracts.results import LoginResult
from casket.core.config import CredentialSettings
from casket.core.credentials import CredentialStore
from casket.core.logging import get_logger
from casket.core.security import log_fingerprint, secret_fingerprint
from casket.engine.access import AccessController
from casket.engine.tickets import TicketIssuer

logger = get_logger(__name__)


class AuthService:
    """Operations behind ``/auth/*``."""

    def __init__(
        self,
        credentials: CredentialStore,
        access: AccessController,
        tickets: TicketIssuer,
        settings: CredentialSettings,
        *,
        fingerprint_key: bytes,
        identity_provider: IdentityProvider | None = None,
    ) -> None:
        self._credentials = credentials
        self._access = access
        self._tickets = tickets
        self._settings = settings
        self._fingerprint_key = fingerprint_key
        self._identity_provider = identity_provider

    def _fp(self, token_id: str) -> str:
        return log_fingerprint(token_id, key=self._fingerprint_key)

    def _provider(self) -> IdentityProvider:
        if self._identity_provider is None:
            raise CasketError("Identity provider not configured")
        return self._identity_provider

    # === User tokens ===

    def login(self, email: str, password: str) -> LoginResult:
        """Verify credentials with the identity provider and mint a user token.

        Raises:
            Unauthorized: If the provider rejects the credentials
        """
        identity = self._provider().verify_password(email, password)
        return self.login_with_identity(identity)

    def login_with_identity(self, identity: VerifiedIdentity) -> LoginResult:
        """Mint a user token for an identity the provider already verified."""
        if not identity.user_id:
            raise InvalidRequest("Verified identity has no user id")
        token = self._mint_user_token(identity)
        logger.info(
            "user_login", user_id=identity.user_id, token_fp=self._fp(token.token_id)
        )
        return LoginResult(
            user_token=token, refresh_token=identity.refresh_token, identity=identity
        )

    def refresh(self, refresh_token: str) -> UserToken:
        """Exchange a refresh token for a new user token.

        The previous user token stays valid until it expires.

        Raises:
            Unauthorized: If the provider rejects the refresh token
        """
        if not refresh_token:
            raise InvalidRequest("Missing refresh token")
        identity = self._provider().refresh(refresh_token)
        if not identity.refresh_token:
            # provider did not rotate the refresh token
            identity = replace(identity, refresh_token=refresh_token)
        token = self._mint_user_token(identity)
        logger.info(
            "user_token_refreshed",
            user_id=identity.user_id,
            token_fp=self._fp(token.token_id),
        )
        return token

    def _mint_user_token(self, identity: VerifiedIdentity) -> UserToken:
        expires_in = identity.expires_in or self._settings.user_token_ttl_seconds
        return self._credentials.create_user_token(
            user_id=identity.user_id,
            refresh_token_fingerprint=secret_fingerprint(
                identity.refresh_token, key=self._fingerprint_key
            ),
            expires_in=expires_in,
        )

    # === Agent tokens ===

    def clamp_agent_ttl(self, expires_in: int | None) -> int:
        """Lifetime granted to a new agent token.

        Raises:
            InvalidRequest: If expires_in is given and not positive
        """
        if expires_in is None:
            return self._settings.agent_token_default_ttl_seconds
        if expires_in <= 0:
            raise InvalidRequest("expiresIn must be positive", expiresIn=expires_in)
        return min(expires_in, self._settings.agent_token_max_ttl_seconds)

    def create_agent_token(
        self,
        ctx: AuthContext,
        name: str,
        permissions: AgentPermissions,
        expires_in: int | None = None,
        description: str | None = None,
    ) -> AgentToken:
        """Delegate a long-lived agent token. Requires a user token.

        Raises:
            Forbidden: If the caller is not a user token
            InvalidRequest: If name is empty or expires_in not positive
        """
        user_id = self._access.require_user(ctx)
        if not name or not name.strip():
            raise InvalidRequest("Agent token name is required")

        token = self._credentials.create_agent_token(
            user_id,
            name.strip(),
            permissions,
            self.clamp_agent_ttl(expires_in),
            description=description,
        )
        logger.info(
            "agent_token_created",
            user_id=user_id,
            name=token.name,
            read=permissions.read,
            write=permissions.write,
            issue_ticket=permissions.issue_ticket,
            token_fp=self._fp(token.token_id),
        )
        return token

    def list_agent_tokens(self, ctx: AuthContext) -> list[AgentToken]:
        """The caller's unexpired agent tokens. Requires a user token."""
        user_id = self._access.require_user(ctx)
        return self._credentials.list_agent_tokens(user_id)

    def revoke_agent_token(self, ctx: AuthContext, token_id: str) -> None:
        """Delete an agent token the calling user owns.

        Raises:
            Forbidden: If the caller is not a user token
            NotFound: If the token does not exist, is not an agent token,
                or belongs to someone else
        """
        user_id = self._access.require_user(ctx)
        self._revoke(user_id, token_id, CredentialKind.AGENT)

    # === Tickets ===

    def create_ticket(
        self,
        ctx: AuthContext,
        ticket_type: TicketType,
        key: str | Sequence[str] | None = None,
        expires_in: int | None = None,
        writable: WritableConfig | None = None,
    ) -> Ticket:
        """Mint a ticket from a user or agent context."""
        return self._tickets.create_ticket(
            ctx, ticket_type, key=key, expires_in=expires_in, writable=writable
        )

    def revoke_ticket(self, ctx: AuthContext, ticket_id: str) -> None:
        """Delete a ticket issued by the caller's user or one of its agents.

        Raises:
            Forbidden: If the caller is itself a ticket
            NotFound: If the ticket does not exist or belongs to someone else
        """
        if ctx.user_id is None:
            raise Forbidden("User or agent token required")
        self._revoke(ctx.user_id, ticket_id, CredentialKind.TICKET)

    def _revoke(self, user_id: str, token_id: str, kind: CredentialKind) -> None:
        token = self._credentials.get_token(token_id)
        if (
            token is None
            or token.kind != kind
            or not self._credentials.verify_token_ownership(token_id, user_id)
        ):
            raise NotFound("Token not found")
        self._credentials.delete_token(token_id)
        logger.info(
            "token_revoked",
            kind=kind.value,
            user_id=user_id,
            token_fp=self._fp(token_id),
        )
