# tests/engine/test_write_once_concurrency.py
"""Concurrent writers racing for one ticket's write-once slot."""

import threading
from collections.abc import Iterator
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from casket.core.storage.database import CasketDB

WRITERS = 8


@pytest.fixture
def file_db(tmp_path: Path) -> Iterator["CasketDB"]:
    from casket.core.storage.database import CasketDB

    db = CasketDB.from_url(f"sqlite:///{tmp_path / 'casket.db'}")
    yield db
    db.close()


class TestWriteOnceUnderContention:
    def test_exactly_one_mark_succeeds(self, file_db: "CasketDB") -> None:
        from casket.contracts import TicketConfig, TicketType, WritableConfig
        from casket.core.credentials import CredentialStore

        store = CredentialStore(file_db)
        ticket = store.create_ticket(
            scope="usr_u1",
            issuer_id="usr_issuer",
            ticket_type=TicketType.WRITE,
            expires_in=300,
            config=TicketConfig(chunk_threshold=1024),
            writable=WritableConfig(),
        )

        barrier = threading.Barrier(WRITERS)
        outcomes: list[bool] = []
        lock = threading.Lock()

        def writer(n: int) -> None:
            barrier.wait()
            won = store.mark_ticket_written(ticket.token_id, f"sha256:{n:064x}")
            with lock:
                outcomes.append(won)

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(WRITERS)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count(True) == 1
        assert outcomes.count(False) == WRITERS - 1

        stored = store.get_token(ticket.token_id)
        assert stored is not None
        assert stored.written in {f"sha256:{n:064x}" for n in range(WRITERS)}  # type: ignore[union-attr]

    def test_racing_uploads_yield_one_success(self, tmp_path: Path) -> None:
        from casket.bootstrap import create_app
        from casket.contracts import AlreadyWritten, TicketType
        from casket.core.config import CasketSettings
        from casket.core.hashing import compute_key

        settings = CasketSettings(
            database={"url": f"sqlite:///{tmp_path / 'race.db'}"},
            content_store={"backend": "filesystem", "base_path": tmp_path / "blobs"},
            security={"fingerprint_key": "race-key"},
        )
        app = create_app(settings, configure_logs=False)
        try:
            user_token = app.credentials.create_user_token("u1", "fp", expires_in=3600)
            user = app.access.authenticate(f"Bearer {user_token.token_id}")
            ticket = app.tickets.create_ticket(user, TicketType.WRITE)
            ctx = app.access.authenticate(f"Ticket {ticket.token_id}")

            barrier = threading.Barrier(WRITERS)
            successes: list[str] = []
            conflicts: list[AlreadyWritten] = []
            lock = threading.Lock()

            def upload(n: int) -> None:
                data = f"payload-{n}".encode()
                barrier.wait()
                try:
                    result = app.cas.put_node(ctx, "@me", compute_key(data), data)
                except AlreadyWritten as e:
                    with lock:
                        conflicts.append(e)
                else:
                    with lock:
                        successes.append(result.key)

            threads = [threading.Thread(target=upload, args=(n,)) for n in range(WRITERS)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

            assert len(successes) == 1
            assert len(conflicts) == WRITERS - 1

            stored = app.credentials.get_token(ticket.token_id)
            assert stored is not None
            assert stored.written == successes[0]  # type: ignore[union-attr]
            assert app.ownership.list_keys("usr_u1").keys == successes
        finally:
            app.close()
