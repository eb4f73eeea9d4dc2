# tests/engine/test_tickets.py
"""Tests for ticket issuance and the write-once slot."""

from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from casket.bootstrap import CasketApp
    from tests.conftest import FakeClock
    from tests.engine.conftest import ContextFactory

KEY = "sha256:" + "a" * 64
OTHER_KEY = "sha256:" + "b" * 64


class TestClampTtl:
    @pytest.mark.parametrize(
        ("ticket_type", "requested", "granted"),
        [
            ("READ", None, 3600),
            ("READ", 10, 10),
            ("READ", 10_000, 3600),
            ("WRITE", None, 300),
            ("WRITE", 60, 60),
            ("WRITE", 86_400, 300),
        ],
    )
    def test_clamped_to_policy(
        self, app: "CasketApp", ticket_type: str, requested: int | None, granted: int
    ) -> None:
        from casket.contracts import TicketType

        assert app.tickets.clamp_ttl(TicketType[ticket_type], requested) == granted

    @pytest.mark.parametrize("requested", [0, -5])
    def test_non_positive_rejected(self, app: "CasketApp", requested: int) -> None:
        from casket.contracts import InvalidRequest, TicketType

        with pytest.raises(InvalidRequest):
            app.tickets.clamp_ttl(TicketType.READ, requested)


class TestCreateTicket:
    def test_read_ticket_in_issuer_scope(
        self, app: "CasketApp", contexts: "ContextFactory", clock: "FakeClock"
    ) -> None:
        from datetime import timedelta

        from casket.contracts import TicketType

        issuer = contexts.user("u1")
        ticket = app.tickets.create_ticket(issuer, TicketType.READ, key=KEY, expires_in=120)

        assert ticket.scope == "usr_u1"
        assert ticket.issuer_id == issuer.token_id
        assert ticket.read_scope == (KEY,)
        assert ticket.writable is None
        assert ticket.expires_at == clock.now + timedelta(seconds=120)
        assert ticket.config.chunk_threshold == 64

    def test_read_ticket_key_set_deduplicated(
        self, app: "CasketApp", contexts: "ContextFactory"
    ) -> None:
        from casket.contracts import TicketType

        ticket = app.tickets.create_ticket(
            contexts.user(), TicketType.READ, key=[KEY, OTHER_KEY, KEY]
        )
        assert ticket.read_scope == (KEY, OTHER_KEY)

    @pytest.mark.parametrize("key", [None, [], "not-a-key", [KEY, "sha256:xyz"]])
    def test_read_ticket_needs_valid_keys(
        self, app: "CasketApp", contexts: "ContextFactory", key: object
    ) -> None:
        from casket.contracts import InvalidRequest, TicketType

        with pytest.raises(InvalidRequest):
            app.tickets.create_ticket(contexts.user(), TicketType.READ, key=key)  # type: ignore[arg-type]

    def test_read_ticket_cannot_carry_write_limits(
        self, app: "CasketApp", contexts: "ContextFactory"
    ) -> None:
        from casket.contracts import InvalidRequest, TicketType, WritableConfig

        with pytest.raises(InvalidRequest):
            app.tickets.create_ticket(
                contexts.user(), TicketType.READ, key=KEY, writable=WritableConfig(quota=10)
            )

    def test_write_ticket_defaults_to_unlimited(
        self, app: "CasketApp", contexts: "ContextFactory"
    ) -> None:
        from casket.contracts import TicketType, WritableConfig

        ticket = app.tickets.create_ticket(contexts.user(), TicketType.WRITE)

        assert ticket.writable == WritableConfig()
        assert ticket.written is None
        assert ticket.read_scope == ()

    def test_write_ticket_rejects_non_positive_quota(
        self, app: "CasketApp", contexts: "ContextFactory"
    ) -> None:
        from casket.contracts import InvalidRequest, TicketType, WritableConfig

        with pytest.raises(InvalidRequest, match="quota"):
            app.tickets.create_ticket(
                contexts.user(), TicketType.WRITE, writable=WritableConfig(quota=0)
            )

    def test_agent_without_issue_right(
        self, app: "CasketApp", contexts: "ContextFactory"
    ) -> None:
        from casket.contracts import Forbidden, TicketType

        agent = contexts.agent(issue_ticket=False)
        with pytest.raises(Forbidden, match="Not authorized to issue tickets"):
            app.tickets.create_ticket(agent, TicketType.READ, key=KEY)

    def test_issuer_cannot_delegate_rights_it_lacks(
        self, app: "CasketApp", contexts: "ContextFactory"
    ) -> None:
        from casket.contracts import Forbidden, TicketType

        reader = contexts.agent(read=True, write=False, issue_ticket=True)
        writer = contexts.agent(read=False, write=True, issue_ticket=True)

        app.tickets.create_ticket(reader, TicketType.READ, key=KEY)
        app.tickets.create_ticket(writer, TicketType.WRITE)
        with pytest.raises(Forbidden):
            app.tickets.create_ticket(reader, TicketType.WRITE)
        with pytest.raises(Forbidden):
            app.tickets.create_ticket(writer, TicketType.READ, key=KEY)

    def test_tickets_cannot_issue_tickets(
        self, app: "CasketApp", contexts: "ContextFactory"
    ) -> None:
        from casket.contracts import Forbidden, TicketType

        ticket_ctx = contexts.write_ticket(contexts.user())
        with pytest.raises(Forbidden):
            app.tickets.create_ticket(ticket_ctx, TicketType.WRITE)


class TestWriteSlot:
    def test_reserve_once(self, app: "CasketApp", contexts: "ContextFactory") -> None:
        from casket.contracts import ConditionFailed

        ctx = contexts.write_ticket(contexts.user())
        ticket = ctx.ticket
        assert ticket is not None

        app.tickets.reserve_write(ticket, KEY)
        with pytest.raises(ConditionFailed):
            app.tickets.reserve_write(ticket, OTHER_KEY)

    def test_revert_reopens(self, app: "CasketApp", contexts: "ContextFactory") -> None:
        ctx = contexts.write_ticket(contexts.user())
        ticket = ctx.ticket
        assert ticket is not None

        app.tickets.reserve_write(ticket, KEY)
        app.tickets.revert_write(ticket, KEY)
        app.tickets.reserve_write(ticket, OTHER_KEY)

        stored = app.credentials.get_token(ticket.token_id)
        assert stored is not None and stored.written == OTHER_KEY  # type: ignore[union-attr]

    def test_reserve_after_expiry_is_unauthorized(
        self, app: "CasketApp", contexts: "ContextFactory", clock: "FakeClock"
    ) -> None:
        from casket.contracts import Unauthorized

        ctx = contexts.write_ticket(contexts.user())
        ticket = ctx.ticket
        assert ticket is not None

        clock.advance(301)
        with pytest.raises(Unauthorized):
            app.tickets.reserve_write(ticket, KEY)

    def test_reserve_after_revocation_is_unauthorized(
        self, app: "CasketApp", contexts: "ContextFactory"
    ) -> None:
        from casket.contracts import Unauthorized

        ctx = contexts.write_ticket(contexts.user())
        ticket = ctx.ticket
        assert ticket is not None

        app.credentials.delete_token(ticket.token_id)
        with pytest.raises(Unauthorized):
            app.tickets.reserve_write(ticket, KEY)


class TestLogging:
    def test_ticket_ids_never_logged(
        self,
        app: "CasketApp",
        contexts: "ContextFactory",
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        import json

        from casket.contracts import TicketType
        from casket.core.logging import configure_logging
        from casket.core.security import log_fingerprint

        configure_logging("INFO", json_output=True)
        issuer = contexts.user()
        ticket = app.tickets.create_ticket(issuer, TicketType.WRITE)
        app.tickets.reserve_write(ticket, KEY)

        output = capsys.readouterr().err
        events = [json.loads(line) for line in output.strip().splitlines()]

        assert [e["event"] for e in events] == ["ticket_issued", "ticket_consumed"]
        assert ticket.token_id not in output
        assert issuer.token_id not in output
        assert events[0]["token_fp"] == log_fingerprint(
            ticket.token_id, key=b"test-fingerprint-key-0123456789"
        )
