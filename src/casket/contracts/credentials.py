"""Credential contracts: the three-tier token hierarchy.

User tokens carry full rights within the user's scope, agent tokens carry a
stored subset of those rights, and tickets carry a single narrow capability.
All three are immutable except for a ticket's write-once ``written`` slot,
which only the credential store may transition.
"""

from dataclasses import dataclass, field
from datetime import datetime
from fnmatch import fnmatchcase
from typing import Literal

from casket.contracts.enums import CredentialKind, TicketType

SCOPE_PREFIX = "usr_"


def user_scope(user_id: str) -> str:
    """Scope owned by a user: ``usr_<userId>``."""
    return f"{SCOPE_PREFIX}{user_id}"


@dataclass(frozen=True)
class AgentPermissions:
    """Rights an agent token holds within its user's scope."""

    read: bool
    write: bool
    issue_ticket: bool


@dataclass(frozen=True)
class WritableConfig:
    """Limits attached to a write ticket.

    ``None`` means unlimited for either field. Content type patterns accept
    ``type/*`` wildcards.
    """

    quota: int | None = None
    accepted_content_types: tuple[str, ...] | None = None

    def accepts(self, content_type: str) -> bool:
        """Check a content type against the accepted patterns."""
        if self.accepted_content_types is None:
            return True
        base = content_type.split(";", 1)[0].strip().lower()
        return any(
            fnmatchcase(base, pattern.lower()) for pattern in self.accepted_content_types
        )

    def within_quota(self, size: int) -> bool:
        return self.quota is None or size <= self.quota


@dataclass(frozen=True)
class TicketConfig:
    """Server configuration stamped onto a ticket at issuance."""

    chunk_threshold: int


@dataclass(frozen=True)
class UserToken:
    """Long-lived credential created at login.

    The refresh token is never stored, only its HMAC fingerprint.
    """

    token_id: str
    user_id: str
    refresh_token_fingerprint: str
    created_at: datetime
    expires_at: datetime
    kind: Literal[CredentialKind.USER] = field(default=CredentialKind.USER, init=False)

    @property
    def scope(self) -> str:
        return user_scope(self.user_id)


@dataclass(frozen=True)
class AgentToken:
    """Long-lived, revocable credential delegated by a user."""

    token_id: str
    user_id: str
    name: str
    permissions: AgentPermissions
    created_at: datetime
    expires_at: datetime
    description: str | None = None
    kind: Literal[CredentialKind.AGENT] = field(default=CredentialKind.AGENT, init=False)

    @property
    def scope(self) -> str:
        return user_scope(self.user_id)


@dataclass(frozen=True)
class Ticket:
    """Short-lived, single-purpose capability.

    Invariants:
    - READ tickets have a non-empty ``read_scope`` and no ``writable``
    - WRITE tickets have ``writable`` set and an empty ``read_scope``
    - ``written`` is only ever set on WRITE tickets, exactly once
    """

    token_id: str
    scope: str
    issuer_id: str
    ticket_type: TicketType
    created_at: datetime
    expires_at: datetime
    config: TicketConfig
    read_scope: tuple[str, ...] = ()
    writable: WritableConfig | None = None
    written: str | None = None
    kind: Literal[CredentialKind.TICKET] = field(default=CredentialKind.TICKET, init=False)

    def __post_init__(self) -> None:
        if self.ticket_type == TicketType.READ:
            if not self.read_scope:
                raise ValueError("Read ticket requires a non-empty read scope")
            if self.writable is not None or self.written is not None:
                raise ValueError("Read ticket cannot carry write state")
        elif self.writable is None:
            raise ValueError("Write ticket requires a writable config")

    @property
    def is_writable(self) -> bool:
        return self.ticket_type == TicketType.WRITE

    @property
    def is_consumed(self) -> bool:
        """Whether the write-once slot has been claimed."""
        return self.written is not None


Credential = UserToken | AgentToken | Ticket
