"""Backing store: SQLAlchemy Core tables for credentials, ownership and DAG."""

from casket.core.storage.database import CasketDB
from casket.core.storage.schema import (
    credentials_table,
    dag_nodes_table,
    metadata,
    ownership_table,
)

__all__ = [
    "CasketDB",
    "credentials_table",
    "dag_nodes_table",
    "metadata",
    "ownership_table",
]
