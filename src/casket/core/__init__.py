# src/casket/core/__init__.py
"""Core infrastructure: hashing, nodes, stores, indexes, configuration, logging."""

from casket.core.canonical import canonical_bytes
from casket.core.config import (
    CasketSettings,
    ContentStoreSettings,
    CredentialSettings,
    DatabaseSettings,
    NodeSettings,
    TicketSettings,
    load_settings,
)
from casket.core.content_store import (
    ContentStore,
    FilesystemContentStore,
    MemoryContentStore,
)
from casket.core.credentials import CredentialStore
from casket.core.dag import verify_dag
from casket.core.dag_index import DagIndex
from casket.core.hashing import compute_key, extract_digest, is_valid_key
from casket.core.logging import (
    configure_logging,
    get_logger,
)
from casket.core.ownership import OwnershipIndex

__all__ = [
    "CasketSettings",
    "ContentStore",
    "ContentStoreSettings",
    "CredentialSettings",
    "CredentialStore",
    "DagIndex",
    "DatabaseSettings",
    "FilesystemContentStore",
    "MemoryContentStore",
    "NodeSettings",
    "OwnershipIndex",
    "TicketSettings",
    "canonical_bytes",
    "compute_key",
    "configure_logging",
    "extract_digest",
    "get_logger",
    "is_valid_key",
    "load_settings",
    "verify_dag",
]
