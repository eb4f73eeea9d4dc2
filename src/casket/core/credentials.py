"""Credential store: user tokens, agent tokens and tickets.

Expiry is lazy: a row whose ``expires_at`` has passed is treated as absent by
every read, evaluated against the clock on each call. Retention cleanup
(core.retention.purge) may delete such rows later but is never required for
correctness.

The one concurrency-critical operation is ``mark_ticket_written``, a single
conditional UPDATE. Whichever caller's statement matches the ``written IS
NULL`` predicate first wins; every other caller matches zero rows. No
in-process locking is involved, so the guarantee holds across processes.
"""

import secrets
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from sqlalchemy import and_, delete, select, update

from casket.contracts.credentials import (
    AgentPermissions,
    AgentToken,
    Credential,
    Ticket,
    TicketConfig,
    UserToken,
    WritableConfig,
)
from casket.contracts.enums import CredentialKind, TicketType
from casket.core.storage.database import CasketDB
from casket.core.storage.repositories import CredentialRepository
from casket.core.storage.schema import credentials_table

_ID_PREFIXES = {
    CredentialKind.USER: "usr",
    CredentialKind.AGENT: "agt",
    CredentialKind.TICKET: "tkt",
}


def _now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def generate_token_id(kind: CredentialKind) -> str:
    """Generate a fresh opaque token id, e.g. ``tkt_<random>``.

    Token ids are bearer secrets, so they come from the CSPRNG.
    """
    return f"{_ID_PREFIXES[kind]}_{secrets.token_urlsafe(24)}"


class CredentialStore:
    """SQL-backed store for all three credential kinds.

    Example:
        db = CasketDB.in_memory()
        store = CredentialStore(db)

        agent = store.create_agent_token("u1", "ci-bot", perms, expires_in=86400)
        assert store.get_token(agent.token_id) == agent
    """

    def __init__(
        self, db: CasketDB, *, clock: Callable[[], datetime] = _now
    ) -> None:
        self._db = db
        self._clock = clock
        self._repo = CredentialRepository()

    def now(self) -> datetime:
        """Current time according to this store's clock."""
        return self._clock()

    def _insert(self, credential: Credential) -> None:
        with self._db.connection() as conn:
            conn.execute(credentials_table.insert().values(**self._repo.dump(credential)))

    def _lifetime(self, expires_in: int) -> tuple[datetime, datetime]:
        if expires_in <= 0:
            raise ValueError(f"expires_in must be positive, got {expires_in}")
        created_at = self._clock()
        return created_at, created_at + timedelta(seconds=expires_in)

    # === Creation ===

    def create_user_token(
        self,
        user_id: str,
        refresh_token_fingerprint: str,
        expires_in: int,
    ) -> UserToken:
        """Create a user token for an identity verified at login.

        Args:
            user_id: Identity provider subject
            refresh_token_fingerprint: HMAC fingerprint of the refresh token
            expires_in: Lifetime in seconds
        """
        created_at, expires_at = self._lifetime(expires_in)
        token = UserToken(
            token_id=generate_token_id(CredentialKind.USER),
            user_id=user_id,
            refresh_token_fingerprint=refresh_token_fingerprint,
            created_at=created_at,
            expires_at=expires_at,
        )
        self._insert(token)
        return token

    def create_agent_token(
        self,
        user_id: str,
        name: str,
        permissions: AgentPermissions,
        expires_in: int,
        *,
        description: str | None = None,
    ) -> AgentToken:
        """Create an agent token delegated by ``user_id``.

        Lifetime clamping is the caller's policy; this stores what it is given.
        """
        created_at, expires_at = self._lifetime(expires_in)
        token = AgentToken(
            token_id=generate_token_id(CredentialKind.AGENT),
            user_id=user_id,
            name=name,
            description=description,
            permissions=permissions,
            created_at=created_at,
            expires_at=expires_at,
        )
        self._insert(token)
        return token

    def create_ticket(
        self,
        scope: str,
        issuer_id: str,
        ticket_type: TicketType,
        expires_in: int,
        config: TicketConfig,
        *,
        read_scope: tuple[str, ...] = (),
        writable: WritableConfig | None = None,
    ) -> Ticket:
        """Create a ticket.

        Raises:
            ValueError: If the type and read_scope/writable are inconsistent
        """
        created_at, expires_at = self._lifetime(expires_in)
        ticket = Ticket(
            token_id=generate_token_id(CredentialKind.TICKET),
            scope=scope,
            issuer_id=issuer_id,
            ticket_type=ticket_type,
            read_scope=read_scope,
            writable=writable,
            created_at=created_at,
            expires_at=expires_at,
            config=config,
        )
        self._insert(ticket)
        return ticket

    # === Lookup ===

    def get_token(self, token_id: str) -> Credential | None:
        """Get a live credential by id.

        Returns:
            The credential, or None if absent or expired (even if the row
            still physically exists)
        """
        with self._db.connection() as conn:
            row = conn.execute(
                select(credentials_table).where(
                    credentials_table.c.token_id == token_id
                )
            ).fetchone()

        if row is None:
            return None
        credential = self._repo.load(row)
        if credential.expires_at <= self._clock():
            return None
        return credential

    def list_agent_tokens(self, user_id: str) -> list[AgentToken]:
        """Unexpired agent tokens delegated by a user, oldest first."""
        query = (
            select(credentials_table)
            .where(
                and_(
                    credentials_table.c.user_id == user_id,
                    credentials_table.c.kind == CredentialKind.AGENT.value,
                    credentials_table.c.expires_at > self._clock(),
                )
            )
            .order_by(credentials_table.c.created_at, credentials_table.c.token_id)
        )
        with self._db.connection() as conn:
            rows = conn.execute(query).fetchall()
        tokens = [self._repo.load(row) for row in rows]
        return [t for t in tokens if isinstance(t, AgentToken)]

    def verify_token_ownership(self, token_id: str, user_id: str) -> bool:
        """Check a live credential belongs to ``user_id``.

        User and agent tokens belong to their userId; a ticket belongs to the
        user behind the credential that issued it.
        """
        token = self.get_token(token_id)
        if token is None:
            return False

        match token.kind:
            case CredentialKind.USER | CredentialKind.AGENT:
                return token.user_id == user_id
            case CredentialKind.TICKET:
                issuer = self.get_token(token.issuer_id)
                if issuer is None or isinstance(issuer, Ticket):
                    return False
                return issuer.user_id == user_id
        return False

    # === Write-once transition ===

    def mark_ticket_written(self, ticket_id: str, root_key: str) -> bool:
        """Atomically claim a write ticket's write-once slot.

        Single conditional UPDATE: succeeds only for a live write ticket whose
        ``written`` is unset. Never raises on a lost race.

        Returns:
            True if this call set ``written``, False otherwise
        """
        stmt = (
            update(credentials_table)
            .where(
                and_(
                    credentials_table.c.token_id == ticket_id,
                    credentials_table.c.kind == CredentialKind.TICKET.value,
                    credentials_table.c.ticket_type == TicketType.WRITE.value,
                    credentials_table.c.written.is_(None),
                    credentials_table.c.expires_at > self._clock(),
                )
            )
            .values(written=root_key)
        )
        with self._db.connection() as conn:
            result = conn.execute(stmt)
        return result.rowcount == 1

    def revert_ticket_write(self, ticket_id: str, root_key: str | None = None) -> bool:
        """Clear a claimed write slot after the write failed to complete.

        Compensating action for mark_ticket_written. When ``root_key`` is
        given, only a slot holding that root is cleared.

        Returns:
            True if a slot was cleared
        """
        conditions = [
            credentials_table.c.token_id == ticket_id,
            credentials_table.c.kind == CredentialKind.TICKET.value,
            credentials_table.c.written.is_not(None),
        ]
        if root_key is not None:
            conditions.append(credentials_table.c.written == root_key)

        with self._db.connection() as conn:
            result = conn.execute(
                update(credentials_table).where(and_(*conditions)).values(written=None)
            )
        return result.rowcount == 1

    # === Revocation ===

    def delete_token(self, token_id: str) -> bool:
        """Delete a credential row. Revocation is terminal.

        Returns:
            True if a row was deleted
        """
        with self._db.connection() as conn:
            result = conn.execute(
                delete(credentials_table).where(
                    credentials_table.c.token_id == token_id
                )
            )
        return result.rowcount == 1
