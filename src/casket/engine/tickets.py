"""Ticket issuer: mints tickets and brackets the write-once slot.

A ticket is always minted in the issuer's own scope and never carries more
than the issuer holds: a read ticket needs an issuer that can read, a write
ticket one that can write. Requested lifetimes are clamped to the server's
ceiling for the ticket type.

The write path is two-phase:

    issuer.reserve_write(ticket, root)    # atomic claim, or ConditionFailed
    try:
        ...store bytes, index, claim ownership...
    except BaseException:
        issuer.revert_write(ticket, root)  # slot becomes usable again
        raise
"""

from collections.abc import Sequence

from casket.contracts.auth import AuthContext
from casket.contracts.credentials import Ticket, TicketConfig, WritableConfig
from casket.contracts.enums import TicketType
from casket.contracts.errors import (
    ConditionFailed,
    Forbidden,
    InvalidRequest,
    Unauthorized,
)
from casket.core.config import TicketSettings
from casket.core.credentials import CredentialStore
from casket.core.hashing import is_valid_key
from casket.core.logging import get_logger
from casket.core.security import log_fingerprint

logger = get_logger(__name__)


class TicketIssuer:
    """Mints tickets from user or agent contexts.

    Example:
        issuer = TicketIssuer(store, TicketSettings(), chunk_threshold=1 << 20,
                              fingerprint_key=key)
        ticket = issuer.create_ticket(ctx, TicketType.READ, key=root_key)
    """

    def __init__(
        self,
        credentials: CredentialStore,
        settings: TicketSettings,
        *,
        chunk_threshold: int,
        fingerprint_key: bytes,
    ) -> None:
        self._credentials = credentials
        self._settings = settings
        self._chunk_threshold = chunk_threshold
        self._fingerprint_key = fingerprint_key

    def clamp_ttl(self, ticket_type: TicketType, expires_in: int | None) -> int:
        """Lifetime actually granted for a requested ``expires_in``.

        Raises:
            InvalidRequest: If expires_in is given and not positive
        """
        if ticket_type == TicketType.READ:
            default = self._settings.default_read_ttl_seconds
            ceiling = self._settings.max_read_ttl_seconds
        else:
            default = self._settings.default_write_ttl_seconds
            ceiling = self._settings.max_write_ttl_seconds

        if expires_in is None:
            return default
        if expires_in <= 0:
            raise InvalidRequest("expiresIn must be positive", expiresIn=expires_in)
        return min(expires_in, ceiling)

    def create_ticket(
        self,
        ctx: AuthContext,
        ticket_type: TicketType,
        key: str | Sequence[str] | None = None,
        expires_in: int | None = None,
        writable: WritableConfig | None = None,
    ) -> Ticket:
        """Mint a ticket in the issuer's own scope.

        Args:
            ctx: Issuer context (user or agent)
            ticket_type: READ or WRITE
            key: Root key (or keys) a read ticket is limited to
            expires_in: Requested lifetime in seconds, clamped to policy
            writable: Quota and content type limits for a write ticket

        Raises:
            Forbidden: If the issuer cannot issue tickets, or lacks the right
                the ticket would carry
            InvalidRequest: If a read ticket has no key, a key is malformed,
                or write limits are given for a read ticket
        """
        if not ctx.can_issue_ticket:
            raise Forbidden("Not authorized to issue tickets")

        read_scope: tuple[str, ...] = ()
        if ticket_type == TicketType.READ:
            if not ctx.can_read:
                raise Forbidden("Issuer cannot read")
            if writable is not None:
                raise InvalidRequest("Read tickets cannot carry write limits")
            keys = (key,) if isinstance(key, str) else tuple(key or ())
            if not keys:
                raise InvalidRequest("Read tickets require a key")
            bad = [k for k in keys if not is_valid_key(k)]
            if bad:
                raise InvalidRequest("Invalid key format", keys=bad)
            read_scope = tuple(dict.fromkeys(keys))
        else:
            if not ctx.can_write:
                raise Forbidden("Issuer cannot write")
            if writable is None:
                writable = WritableConfig()
            if writable.quota is not None and writable.quota <= 0:
                raise InvalidRequest("quota must be positive", quota=writable.quota)

        ttl = self.clamp_ttl(ticket_type, expires_in)
        ticket = self._credentials.create_ticket(
            scope=ctx.scope,
            issuer_id=ctx.token_id,
            ticket_type=ticket_type,
            expires_in=ttl,
            config=TicketConfig(chunk_threshold=self._chunk_threshold),
            read_scope=read_scope,
            writable=writable,
        )
        logger.info(
            "ticket_issued",
            ticket_type=ticket_type.value,
            ttl_seconds=ttl,
            requested_ttl_seconds=expires_in,
            scope=ctx.scope,
            token_fp=log_fingerprint(ticket.token_id, key=self._fingerprint_key),
            issuer_fp=log_fingerprint(ctx.token_id, key=self._fingerprint_key),
        )
        return ticket

    def reserve_write(self, ticket: Ticket, root_key: str) -> None:
        """Claim the ticket's write-once slot for ``root_key``.

        Raises:
            Unauthorized: If the ticket expired or was revoked meanwhile
            ConditionFailed: If another write already holds the slot
        """
        if not self._credentials.mark_ticket_written(ticket.token_id, root_key):
            if self._credentials.get_token(ticket.token_id) is None:
                raise Unauthorized("Invalid or expired token")
            logger.info(
                "ticket_write_conflict",
                token_fp=log_fingerprint(ticket.token_id, key=self._fingerprint_key),
            )
            raise ConditionFailed(root=root_key)
        logger.info(
            "ticket_consumed",
            root=root_key,
            token_fp=log_fingerprint(ticket.token_id, key=self._fingerprint_key),
        )

    def revert_write(self, ticket: Ticket, root_key: str) -> None:
        """Release a slot claimed by reserve_write after a failed write."""
        reverted = self._credentials.revert_ticket_write(ticket.token_id, root_key)
        logger.warning(
            "ticket_write_reverted",
            root=root_key,
            reverted=reverted,
            token_fp=log_fingerprint(ticket.token_id, key=self._fingerprint_key),
        )
