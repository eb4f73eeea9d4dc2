"""Ownership index contracts."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class OwnershipRecord:
    """A scope's claim on a content key.

    Presence of the record is the sole authority for "scope can read key".
    Never mutated once written.
    """

    scope: str
    key: str
    created_at: datetime
    created_by: str
    content_type: str
    size: int


@dataclass(frozen=True)
class OwnershipCheck:
    """Result of a batched existence check, in request order."""

    found: list[str]
    missing: list[str]


@dataclass(frozen=True)
class KeyPage:
    """One page of a scope's claims, newest first.

    ``next_cursor`` is None on the last page.
    """

    records: list[OwnershipRecord]
    next_cursor: str | None = None

    @property
    def keys(self) -> list[str]:
        return [record.key for record in self.records]
