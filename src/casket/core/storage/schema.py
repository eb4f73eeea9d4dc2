"""SQLAlchemy table definitions for the backing store.

Uses SQLAlchemy Core (not ORM) for explicit control over queries - in
particular the single-statement conditional UPDATE that consumes a write
ticket - and compatibility with multiple database backends.
"""

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
)

# Shared metadata for all tables
metadata = MetaData()

# === Credentials (user tokens, agent tokens, tickets) ===
# One table, discriminated by kind; columns unused by a kind stay NULL.

credentials_table = Table(
    "credentials",
    metadata,
    Column("token_id", String(64), primary_key=True),
    Column("kind", String(16), nullable=False),
    # user + agent
    Column("user_id", String(128)),
    Column("refresh_token_fp", String(64)),
    Column("name", String(256)),
    Column("description", Text),
    Column("perm_read", Boolean),
    Column("perm_write", Boolean),
    Column("perm_issue_ticket", Boolean),
    # ticket
    Column("scope", String(160)),
    Column("issuer_id", String(64)),
    Column("ticket_type", String(16)),
    Column("read_scope_json", Text),
    Column("write_quota", BigInteger),
    Column("accepted_content_types_json", Text),
    Column("written", String(71)),
    Column("chunk_threshold", Integer),
    # all
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("expires_at", DateTime(timezone=True), nullable=False),
    Index("ix_credentials_user_kind", "user_id", "kind"),
    Index("ix_credentials_expires_at", "expires_at"),
)

# === Ownership (scope claims on content keys) ===

ownership_table = Table(
    "ownership",
    metadata,
    Column("scope", String(160), nullable=False),
    Column("key", String(71), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("created_by", String(64), nullable=False),
    Column("content_type", String(255), nullable=False),
    Column("size", BigInteger, nullable=False),
    PrimaryKeyConstraint("scope", "key"),
    # newest-first keyset pagination
    Index("ix_ownership_scope_created", "scope", "created_at", "key"),
    # reference counting across scopes
    Index("ix_ownership_key", "key"),
)

# === DAG nodes (structure only; bytes live in the content store) ===

dag_nodes_table = Table(
    "dag_nodes",
    metadata,
    Column("key", String(71), primary_key=True),
    Column("kind", String(16), nullable=False),
    Column("children_json", Text, nullable=False),
    Column("content_type", String(255), nullable=False),
    Column("size", BigInteger, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)
