# tests/engine/conftest.py
"""Fixtures for building authenticated contexts against a wired app."""

from collections.abc import Sequence
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from casket.bootstrap import CasketApp
    from casket.contracts import AuthContext, WritableConfig


class ContextFactory:
    """Mints real credentials and authenticates them through the app."""

    def __init__(self, app: "CasketApp") -> None:
        self._app = app

    def user(self, user_id: str = "u1") -> "AuthContext":
        token = self._app.credentials.create_user_token(user_id, "fp", expires_in=3600)
        return self._app.access.authenticate(f"Bearer {token.token_id}")

    def agent(
        self,
        *,
        read: bool = True,
        write: bool = True,
        issue_ticket: bool = True,
        user_id: str = "u1",
    ) -> "AuthContext":
        from casket.contracts import AgentPermissions

        token = self._app.credentials.create_agent_token(
            user_id,
            "agent",
            AgentPermissions(read=read, write=write, issue_ticket=issue_ticket),
            expires_in=3600,
        )
        return self._app.access.authenticate(f"Bearer {token.token_id}")

    def read_ticket(
        self, issuer: "AuthContext", keys: str | Sequence[str]
    ) -> "AuthContext":
        from casket.contracts import TicketType

        ticket = self._app.tickets.create_ticket(issuer, TicketType.READ, key=keys)
        return self._app.access.authenticate(f"Ticket {ticket.token_id}")

    def write_ticket(
        self, issuer: "AuthContext", writable: "WritableConfig | None" = None
    ) -> "AuthContext":
        from casket.contracts import TicketType

        ticket = self._app.tickets.create_ticket(
            issuer, TicketType.WRITE, writable=writable
        )
        return self._app.access.authenticate(f"Ticket {ticket.token_id}")


@pytest.fixture
def contexts(app: "CasketApp") -> ContextFactory:
    return ContextFactory(app)
