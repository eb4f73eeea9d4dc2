"""Ownership index: which scopes have claimed which content keys.

A claim row ``(scope, key)`` is the only authority for "scope can read key".
Content itself is deduplicated globally in the content store; access is
scoped here. Claims are append-only per pair, so inserting one twice is a
no-op rather than an error.
"""

import base64
import binascii
import json
from collections.abc import Callable, Iterator, Sequence
from datetime import UTC, datetime

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.exc import IntegrityError

from casket.contracts.errors import InvalidRequest
from casket.contracts.ownership import KeyPage, OwnershipCheck, OwnershipRecord
from casket.core.storage.database import CasketDB
from casket.core.storage.repositories import OwnershipRepository, as_utc
from casket.core.storage.schema import ownership_table


def _now() -> datetime:
    return datetime.now(UTC)


def _batched(items: Sequence[str], size: int) -> Iterator[Sequence[str]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def encode_cursor(record: OwnershipRecord) -> str:
    """Opaque cursor pointing just past ``record`` in newest-first order."""
    payload = json.dumps(
        {"t": record.created_at.isoformat(), "k": record.key},
        separators=(",", ":"),
    )
    return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str) -> tuple[datetime, str]:
    """Inverse of encode_cursor.

    Raises:
        InvalidRequest: If the cursor was not produced by encode_cursor
    """
    try:
        payload = json.loads(base64.urlsafe_b64decode(cursor.encode("ascii")))
        return as_utc(datetime.fromisoformat(payload["t"])), str(payload["k"])
    except (binascii.Error, UnicodeError, ValueError, KeyError, TypeError):
        raise InvalidRequest("Invalid cursor") from None


class OwnershipIndex:
    """Per-scope claims on content keys.

    Example:
        index = OwnershipIndex(db)
        index.add_ownership("usr_u1", key, "agt_...", "text/plain", 5)
        index.check_ownership("usr_u1", [key, other])
        # OwnershipCheck(found=[key], missing=[other])
    """

    def __init__(
        self,
        db: CasketDB,
        *,
        batch_size: int = 100,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self._db = db
        self._batch_size = batch_size
        self._clock = clock
        self._repo = OwnershipRepository()

    def check_ownership(self, scope: str, keys: Sequence[str]) -> OwnershipCheck:
        """Split ``keys`` into those the scope owns and those it does not.

        Looks keys up in batches of ``batch_size``. Both result lists keep
        request order; duplicates in the request are collapsed.
        """
        unique = list(dict.fromkeys(keys))
        owned: set[str] = set()

        with self._db.connection() as conn:
            for batch in _batched(unique, self._batch_size):
                rows = conn.execute(
                    select(ownership_table.c.key).where(
                        and_(
                            ownership_table.c.scope == scope,
                            ownership_table.c.key.in_(batch),
                        )
                    )
                )
                owned.update(row.key for row in rows)

        return OwnershipCheck(
            found=[k for k in unique if k in owned],
            missing=[k for k in unique if k not in owned],
        )

    def add_ownership(
        self,
        scope: str,
        key: str,
        created_by: str,
        content_type: str,
        size: int,
    ) -> bool:
        """Record that ``scope`` owns ``key``.

        Returns:
            True if a new claim was recorded, False if it already existed
            (the existing record is left untouched)
        """
        if self.has_ownership(scope, key):
            return False
        try:
            with self._db.connection() as conn:
                conn.execute(
                    ownership_table.insert().values(
                        scope=scope,
                        key=key,
                        created_at=self._clock(),
                        created_by=created_by,
                        content_type=content_type,
                        size=size,
                    )
                )
        except IntegrityError:
            # Concurrent writer inserted the same pair first
            return False
        return True

    def has_ownership(self, scope: str, key: str) -> bool:
        """The authorization check behind every read."""
        return self.get_ownership(scope, key) is not None

    def get_ownership(self, scope: str, key: str) -> OwnershipRecord | None:
        with self._db.connection() as conn:
            row = conn.execute(
                select(ownership_table).where(
                    and_(
                        ownership_table.c.scope == scope,
                        ownership_table.c.key == key,
                    )
                )
            ).fetchone()
        if row is None:
            return None
        return self._repo.load(row)

    def remove_ownership(self, scope: str, key: str) -> bool:
        """Drop the scope's claim. The bytes stay in the content store.

        Returns:
            True if a claim was removed
        """
        with self._db.connection() as conn:
            result = conn.execute(
                delete(ownership_table).where(
                    and_(
                        ownership_table.c.scope == scope,
                        ownership_table.c.key == key,
                    )
                )
            )
        return result.rowcount == 1

    def list_keys(
        self, scope: str, limit: int = 100, cursor: str | None = None
    ) -> KeyPage:
        """One page of a scope's claims, newest first.

        Keyset pagination on ``(created_at, key)``: a cursor names the last
        row already returned, so rows inserted while paging never shift an
        unchanged row into a duplicate or a skip.

        Raises:
            InvalidRequest: If limit is not positive or the cursor is malformed
        """
        if limit <= 0:
            raise InvalidRequest("limit must be positive", limit=limit)

        query = select(ownership_table).where(ownership_table.c.scope == scope)
        if cursor is not None:
            after_time, after_key = decode_cursor(cursor)
            query = query.where(
                or_(
                    ownership_table.c.created_at < after_time,
                    and_(
                        ownership_table.c.created_at == after_time,
                        ownership_table.c.key < after_key,
                    ),
                )
            )
        # Fetch one extra row to learn whether another page exists
        query = query.order_by(
            ownership_table.c.created_at.desc(), ownership_table.c.key.desc()
        ).limit(limit + 1)

        with self._db.connection() as conn:
            rows = conn.execute(query).fetchall()

        records = [self._repo.load(row) for row in rows[:limit]]
        next_cursor = encode_cursor(records[-1]) if len(rows) > limit else None
        return KeyPage(records=records, next_cursor=next_cursor)

    def count_references(self, key: str) -> int:
        """Number of scopes claiming ``key``.

        Read-only. Nothing deletes content when this reaches zero.
        """
        with self._db.connection() as conn:
            return conn.execute(
                select(func.count())
                .select_from(ownership_table)
                .where(ownership_table.c.key == key)
            ).scalar_one()
