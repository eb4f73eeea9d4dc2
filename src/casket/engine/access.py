"""Access controller: credential -> authorization context -> decision.

Authentication maps a presented credential onto an AuthContext:

- User token: full rights within ``usr_<userId>``
- Agent token: the stored permission subset, same scope
- Read ticket: read-only, restricted to the ticket's key set
- Write ticket: write-only (the write-once slot is enforced at write time)

Authorization is a set of pure checks against that context. Scope access is
exact equality after resolving ``@me``; there is no cross-scope path.
Validity is evaluated fresh against the credential store on every call.
"""

from casket.contracts.auth import AuthContext, PresentedCredential
from casket.contracts.credentials import AgentToken, Ticket, UserToken
from casket.contracts.enums import AccessMode, AuthScheme, CredentialKind, TicketType
from casket.contracts.errors import Forbidden, Unauthorized
from casket.core.credentials import CredentialStore
from casket.core.logging import get_logger
from casket.core.security import log_fingerprint
from casket.engine.operations import CasOperation, requirement_for

logger = get_logger(__name__)

SELF_SCOPE_ALIAS = "@me"

_SCHEMES = {"bearer": AuthScheme.BEARER, "ticket": AuthScheme.TICKET}


def parse_authorization(header: str | None) -> PresentedCredential:
    """Parse ``Bearer <token>`` or ``Ticket <id>``.

    Scheme names are case-insensitive.

    Raises:
        Unauthorized: If the header is missing or malformed
    """
    if not header:
        raise Unauthorized("Missing authorization")
    parts = header.strip().split(None, 1)
    if len(parts) != 2 or not parts[1].strip():
        raise Unauthorized("Malformed authorization header")
    scheme = _SCHEMES.get(parts[0].lower())
    if scheme is None:
        raise Unauthorized("Unsupported authorization scheme")
    return PresentedCredential(scheme=scheme, token_id=parts[1].strip())


class AccessController:
    """Resolves credentials into contexts and enforces them.

    The credential store is injected, so tests can substitute any store with
    the same contract.
    """

    def __init__(self, credentials: CredentialStore, *, fingerprint_key: bytes) -> None:
        self._credentials = credentials
        self._fingerprint_key = fingerprint_key

    def _fp(self, token_id: str) -> str:
        return log_fingerprint(token_id, key=self._fingerprint_key)

    # === Authentication ===

    def authenticate(self, presented: PresentedCredential | str | None) -> AuthContext:
        """Build an authorization context for a presented credential.

        Accepts a parsed credential or a raw Authorization header value.

        Raises:
            Unauthorized: If the credential is missing, unknown, expired, or
                presented under the wrong scheme
        """
        if not isinstance(presented, PresentedCredential):
            presented = parse_authorization(presented)

        credential = self._credentials.get_token(presented.token_id)
        if credential is None:
            logger.info(
                "auth_failed",
                reason="unknown_or_expired",
                token_fp=self._fp(presented.token_id),
            )
            raise Unauthorized("Invalid or expired token")

        expected = (
            AuthScheme.TICKET if credential.kind == CredentialKind.TICKET else AuthScheme.BEARER
        )
        if presented.scheme != expected:
            logger.info(
                "auth_failed",
                reason="scheme_mismatch",
                token_fp=self._fp(presented.token_id),
            )
            raise Unauthorized("Invalid or expired token")

        match credential:
            case UserToken():
                return AuthContext(
                    credential=credential,
                    scope=credential.scope,
                    can_read=True,
                    can_write=True,
                    can_issue_ticket=True,
                    user_id=credential.user_id,
                )
            case AgentToken():
                return AuthContext(
                    credential=credential,
                    scope=credential.scope,
                    can_read=credential.permissions.read,
                    can_write=credential.permissions.write,
                    can_issue_ticket=credential.permissions.issue_ticket,
                    user_id=credential.user_id,
                )
            case Ticket():
                is_read = credential.ticket_type == TicketType.READ
                return AuthContext(
                    credential=credential,
                    scope=credential.scope,
                    can_read=is_read,
                    can_write=not is_read,
                    can_issue_ticket=False,
                    allowed_keys=frozenset(credential.read_scope) if is_read else None,
                )
        raise Unauthorized("Invalid or expired token")

    # === Checks ===

    @staticmethod
    def resolve_scope(ctx: AuthContext, requested_scope: str) -> str:
        """Resolve ``@me`` to the caller's own scope."""
        if requested_scope == SELF_SCOPE_ALIAS:
            return ctx.scope
        return requested_scope

    def check_scope_access(self, ctx: AuthContext, requested_scope: str) -> bool:
        return self.resolve_scope(ctx, requested_scope) == ctx.scope

    @staticmethod
    def check_read_access(ctx: AuthContext, key: str) -> bool:
        return ctx.can_read and (ctx.allowed_keys is None or key in ctx.allowed_keys)

    @staticmethod
    def check_write_access(ctx: AuthContext) -> bool:
        return ctx.can_write

    # === Enforcement ===

    def _deny(self, ctx: AuthContext, reason: str, **context: object) -> Forbidden:
        logger.info(
            "access_denied",
            reason=reason,
            kind=ctx.kind.value,
            token_fp=self._fp(ctx.token_id),
            **context,
        )
        return Forbidden(reason)

    def require_scope(self, ctx: AuthContext, requested_scope: str) -> str:
        """Resolve and enforce scope access.

        Returns:
            The resolved scope

        Raises:
            Forbidden: If the scope is not the caller's own
        """
        scope = self.resolve_scope(ctx, requested_scope)
        if scope != ctx.scope:
            raise self._deny(ctx, "Scope access denied")
        return scope

    def require_read(self, ctx: AuthContext, key: str) -> None:
        if not self.check_read_access(ctx, key):
            raise self._deny(ctx, "Read access denied", key=key)

    def require_write(self, ctx: AuthContext) -> None:
        if not self.check_write_access(ctx):
            raise self._deny(ctx, "Write access denied")

    def require_user(self, ctx: AuthContext) -> str:
        """Require a user token context.

        Returns:
            The user id
        """
        if ctx.kind != CredentialKind.USER or ctx.user_id is None:
            raise self._deny(ctx, "User token required")
        return ctx.user_id

    def authorize(
        self,
        ctx: AuthContext,
        operation: CasOperation,
        requested_scope: str,
        key: str | None = None,
    ) -> str:
        """Enforce an operation's declared requirement.

        Returns:
            The resolved scope

        Raises:
            Forbidden: On scope mismatch, a disallowed ticket type, missing
                rights, or a key outside a ticket's key set
        """
        scope = self.require_scope(ctx, requested_scope)
        requirement = requirement_for(operation)

        ticket = ctx.ticket
        if ticket is not None and not requirement.allows_ticket(ticket.ticket_type):
            raise self._deny(
                ctx, "Ticket not valid for this operation", operation=operation.value
            )

        match requirement.mode:
            case AccessMode.READ:
                allowed = ctx.can_read
            case AccessMode.WRITE:
                allowed = ctx.can_write
            case AccessMode.READ_OR_WRITE:
                allowed = ctx.can_read or ctx.can_write
            case AccessMode.NONE:
                allowed = True

        if not allowed:
            raise self._deny(ctx, "Permission denied", operation=operation.value)

        if requirement.key_scoped and key is not None:
            self.require_read(ctx, key)
        return scope
