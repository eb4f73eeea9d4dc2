"""Composition root: settings in, wired services out.

The transport collaborator builds one CasketApp per process and calls into
``app.auth`` and ``app.cas``; nothing here holds request state.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from casket.contracts.identity import IdentityProvider
from casket.core.config import CasketSettings, load_settings
from casket.core.content_store import (
    ContentStore,
    FilesystemContentStore,
    MemoryContentStore,
)
from casket.core.credentials import CredentialStore
from casket.core.dag_index import DagIndex
from casket.core.logging import configure_logging, get_logger
from casket.core.ownership import OwnershipIndex
from casket.core.retention.purge import CredentialPurgeManager
from casket.core.security import resolve_fingerprint_key
from casket.core.storage.database import CasketDB
from casket.engine.access import AccessController
from casket.engine.auth_service import AuthService
from casket.engine.cas_service import CasService
from casket.engine.tickets import TicketIssuer

logger = get_logger(__name__)


@dataclass
class CasketApp:
    """Every component of a running deployment."""

    settings: CasketSettings
    db: CasketDB
    content_store: ContentStore
    credentials: CredentialStore
    ownership: OwnershipIndex
    dag_index: DagIndex
    access: AccessController
    tickets: TicketIssuer
    auth: AuthService
    cas: CasService
    purge: CredentialPurgeManager

    def close(self) -> None:
        self.db.close()


def _build_content_store(settings: CasketSettings) -> ContentStore:
    match settings.content_store.backend:
        case "filesystem":
            return FilesystemContentStore(settings.content_store.base_path)
        case "memory":
            return MemoryContentStore()
    raise ValueError(f"Unknown content store backend: {settings.content_store.backend}")


def create_app(
    settings: CasketSettings,
    *,
    identity_provider: IdentityProvider | None = None,
    clock: Callable[[], datetime] | None = None,
    configure_logs: bool = True,
) -> CasketApp:
    """Wire every component from validated settings.

    Raises:
        ValueError: If no fingerprint key is configured (settings or
            CASKET_FINGERPRINT_KEY)
    """
    if configure_logs:
        configure_logging(settings.logging.level, json_output=settings.logging.json_output)

    fingerprint_key = resolve_fingerprint_key(settings.security.fingerprint_key)

    db = CasketDB(settings.database.url, echo=settings.database.echo)

    clock_kwargs = {"clock": clock} if clock is not None else {}
    credentials = CredentialStore(db, **clock_kwargs)
    ownership = OwnershipIndex(
        db, batch_size=settings.nodes.resolve_batch_size, **clock_kwargs
    )
    dag_index = DagIndex(
        db,
        max_traversal_nodes=settings.nodes.max_traversal_nodes,
        batch_size=settings.nodes.resolve_batch_size,
        **clock_kwargs,
    )
    content_store = _build_content_store(settings)

    access = AccessController(credentials, fingerprint_key=fingerprint_key)
    tickets = TicketIssuer(
        credentials,
        settings.tickets,
        chunk_threshold=settings.nodes.chunk_threshold,
        fingerprint_key=fingerprint_key,
    )
    auth = AuthService(
        credentials,
        access,
        tickets,
        settings.credentials,
        fingerprint_key=fingerprint_key,
        identity_provider=identity_provider,
    )
    cas = CasService(
        content_store,
        dag_index,
        ownership,
        access,
        tickets,
        chunk_threshold=settings.nodes.chunk_threshold,
        fingerprint_key=fingerprint_key,
        max_traversal_nodes=settings.nodes.max_traversal_nodes,
    )

    logger.info(
        "casket_started",
        content_store=settings.content_store.backend,
        chunk_threshold=settings.nodes.chunk_threshold,
    )
    return CasketApp(
        settings=settings,
        db=db,
        content_store=content_store,
        credentials=credentials,
        ownership=ownership,
        dag_index=dag_index,
        access=access,
        tickets=tickets,
        auth=auth,
        cas=cas,
        purge=CredentialPurgeManager(db),
    )


def create_app_from_file(
    config_path: Path, *, identity_provider: IdentityProvider | None = None
) -> CasketApp:
    """Load settings (YAML + CASKET_* env) and wire the app."""
    return create_app(load_settings(config_path), identity_provider=identity_provider)
