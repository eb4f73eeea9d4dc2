"""Authentication contracts: what the caller presented and what it may do."""

from dataclasses import dataclass

from casket.contracts.credentials import Credential, Ticket
from casket.contracts.enums import AuthScheme, CredentialKind


@dataclass(frozen=True)
class PresentedCredential:
    """A parsed ``Authorization`` header."""

    scheme: AuthScheme
    token_id: str


@dataclass(frozen=True)
class AuthContext:
    """Authorization context resolved from a credential.

    ``allowed_keys`` is None for unrestricted reads; a read ticket sets it to
    the ticket's key set. ``user_id`` is None for tickets, which carry no
    direct user identity.
    """

    credential: Credential
    scope: str
    can_read: bool
    can_write: bool
    can_issue_ticket: bool
    user_id: str | None = None
    allowed_keys: frozenset[str] | None = None

    @property
    def token_id(self) -> str:
        return self.credential.token_id

    @property
    def kind(self) -> CredentialKind:
        return self.credential.kind

    @property
    def ticket(self) -> Ticket | None:
        """The ticket behind this context, if it came from one."""
        if isinstance(self.credential, Ticket):
            return self.credential
        return None
