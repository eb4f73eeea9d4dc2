"""Repository layer for backing store rows.

Handles the seam between SQLAlchemy rows (strings, JSON text, naive
datetimes from SQLite) and domain objects (strict enum types, tuples,
UTC-aware datetimes). This is NOT a trust boundary - the backing store is
OUR data. If it holds garbage, we crash.
"""

import json
from datetime import UTC, datetime
from typing import Any

from casket.contracts.credentials import (
    AgentPermissions,
    AgentToken,
    Credential,
    Ticket,
    TicketConfig,
    UserToken,
    WritableConfig,
)
from casket.contracts.enums import CredentialKind, NodeKind, TicketType
from casket.contracts.nodes import DagNodeRecord
from casket.contracts.ownership import OwnershipRecord


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on storage)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class CredentialRepository:
    """Converts credential rows to and from the tagged union."""

    def load(self, row: Any) -> Credential:
        """Load a credential from a database row.

        Converts kind/ticket_type strings to enums. Crashes on unknown kinds.
        """
        kind = CredentialKind(row.kind)  # Convert HERE
        created_at = as_utc(row.created_at)
        expires_at = as_utc(row.expires_at)

        match kind:
            case CredentialKind.USER:
                return UserToken(
                    token_id=row.token_id,
                    user_id=row.user_id,
                    refresh_token_fingerprint=row.refresh_token_fp,
                    created_at=created_at,
                    expires_at=expires_at,
                )
            case CredentialKind.AGENT:
                return AgentToken(
                    token_id=row.token_id,
                    user_id=row.user_id,
                    name=row.name,
                    description=row.description,
                    permissions=AgentPermissions(
                        read=bool(row.perm_read),
                        write=bool(row.perm_write),
                        issue_ticket=bool(row.perm_issue_ticket),
                    ),
                    created_at=created_at,
                    expires_at=expires_at,
                )
            case CredentialKind.TICKET:
                ticket_type = TicketType(row.ticket_type)  # Convert HERE
                writable = None
                if ticket_type == TicketType.WRITE:
                    accepted = (
                        tuple(json.loads(row.accepted_content_types_json))
                        if row.accepted_content_types_json is not None
                        else None
                    )
                    writable = WritableConfig(
                        quota=row.write_quota, accepted_content_types=accepted
                    )
                return Ticket(
                    token_id=row.token_id,
                    scope=row.scope,
                    issuer_id=row.issuer_id,
                    ticket_type=ticket_type,
                    read_scope=tuple(json.loads(row.read_scope_json or "[]")),
                    writable=writable,
                    written=row.written,
                    created_at=created_at,
                    expires_at=expires_at,
                    config=TicketConfig(chunk_threshold=row.chunk_threshold),
                )

    def dump(self, credential: Credential) -> dict[str, Any]:
        """Column values for inserting a credential."""
        values: dict[str, Any] = {
            "token_id": credential.token_id,
            "kind": credential.kind.value,
            "created_at": credential.created_at,
            "expires_at": credential.expires_at,
        }
        if isinstance(credential, UserToken):
            values.update(
                user_id=credential.user_id,
                refresh_token_fp=credential.refresh_token_fingerprint,
            )
        elif isinstance(credential, AgentToken):
            values.update(
                user_id=credential.user_id,
                name=credential.name,
                description=credential.description,
                perm_read=credential.permissions.read,
                perm_write=credential.permissions.write,
                perm_issue_ticket=credential.permissions.issue_ticket,
            )
        else:
            accepted = None
            quota = None
            if credential.writable is not None:
                quota = credential.writable.quota
                if credential.writable.accepted_content_types is not None:
                    accepted = json.dumps(list(credential.writable.accepted_content_types))
            values.update(
                scope=credential.scope,
                issuer_id=credential.issuer_id,
                ticket_type=credential.ticket_type.value,
                read_scope_json=json.dumps(list(credential.read_scope)),
                write_quota=quota,
                accepted_content_types_json=accepted,
                written=credential.written,
                chunk_threshold=credential.config.chunk_threshold,
            )
        return values


class OwnershipRepository:
    """Converts ownership rows."""

    def load(self, row: Any) -> OwnershipRecord:
        return OwnershipRecord(
            scope=row.scope,
            key=row.key,
            created_at=as_utc(row.created_at),
            created_by=row.created_by,
            content_type=row.content_type,
            size=row.size,
        )


class DagNodeRepository:
    """Converts DAG node rows."""

    def load(self, row: Any) -> DagNodeRecord:
        return DagNodeRecord(
            key=row.key,
            kind=NodeKind(row.kind),  # Convert HERE
            children=tuple(json.loads(row.children_json)),
            content_type=row.content_type,
            size=row.size,
            created_at=as_utc(row.created_at),
        )
