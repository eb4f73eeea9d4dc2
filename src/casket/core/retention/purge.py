# src/casket/core/retention/purge.py
"""Purge manager for expired credential rows.

Expiry is already enforced lazily on every read, so this is housekeeping:
it finds rows whose ``expires_at`` passed more than a grace period ago and
deletes them. Running it (or not) never changes an authorization outcome.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from time import perf_counter
from typing import TYPE_CHECKING

from sqlalchemy import delete, select

from casket.core.logging import get_logger
from casket.core.storage.schema import credentials_table

if TYPE_CHECKING:
    from casket.core.storage.database import CasketDB

logger = get_logger(__name__)


@dataclass
class PurgeResult:
    """Result of a purge operation."""

    deleted_count: int
    missing_ids: list[str]
    duration_seconds: float


class CredentialPurgeManager:
    """Deletes credential rows that expired longer ago than a grace period."""

    def __init__(self, db: "CasketDB") -> None:
        """Initialize CredentialPurgeManager.

        Args:
            db: Backing store connection
        """
        self._db = db

    def find_expired_credentials(
        self,
        grace_seconds: int,
        as_of: datetime | None = None,
    ) -> list[str]:
        """Find credentials eligible for deletion.

        Args:
            grace_seconds: How long to keep a row after it expired
            as_of: Reference datetime for cutoff calculation (defaults to now)

        Returns:
            Token ids of rows with expires_at before the cutoff
        """
        if as_of is None:
            as_of = datetime.now(UTC)

        cutoff = as_of - timedelta(seconds=grace_seconds)

        query = (
            select(credentials_table.c.token_id)
            .where(credentials_table.c.expires_at < cutoff)
            .order_by(credentials_table.c.expires_at)
        )

        with self._db.connection() as conn:
            result = conn.execute(query)
            token_ids = [row[0] for row in result]

        return token_ids

    def purge(self, token_ids: list[str]) -> PurgeResult:
        """Delete credential rows by id.

        Ids that no longer exist (already purged or revoked) are reported in
        ``missing_ids`` rather than treated as errors.
        """
        start_time = perf_counter()

        deleted_count = 0
        missing_ids: list[str] = []

        with self._db.connection() as conn:
            for token_id in token_ids:
                result = conn.execute(
                    delete(credentials_table).where(
                        credentials_table.c.token_id == token_id
                    )
                )
                if result.rowcount == 1:
                    deleted_count += 1
                else:
                    missing_ids.append(token_id)

        duration_seconds = perf_counter() - start_time
        logger.info(
            "credentials_purged",
            deleted=deleted_count,
            missing=len(missing_ids),
            duration_seconds=round(duration_seconds, 3),
        )

        return PurgeResult(
            deleted_count=deleted_count,
            missing_ids=missing_ids,
            duration_seconds=duration_seconds,
        )
