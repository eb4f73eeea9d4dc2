"""CAS operations: resolve, put, get, DAG fetch, listing and claim removal.

Write path, per node (children before parents):

1. Verify the asserted key against the bytes (HashMismatch otherwise)
2. Decode and validate the node; structured nodes must only reference keys
   the scope already owns or that arrive in the same bundle, with the
   sizes those children actually have. Files and chunk indexes list chunks
   only
3. For a write ticket: check its limits, then atomically claim the
   write-once slot for the root key
4. Store bytes, record structure in the DAG index, claim ownership
5. If anything in step 4 fails, release the ticket slot and re-raise

Reads are gated by the ownership index. A key the scope does not own is
reported NotFound whether or not the bytes exist elsewhere.
"""

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

import networkx as nx
from networkx import DiGraph

from casket.contracts.auth import AuthContext
from casket.contracts.enums import NodeKind
from casket.contracts.errors import (
    AlreadyWritten,
    ConditionFailed,
    HashMismatch,
    InvalidRequest,
    NotFound,
)
from casket.contracts.nodes import DagManifest, EncodedNode, Node
from casket.contracts.ownership import KeyPage
from casket.contracts.results import StoredContent, UploadResult, VerificationReport
from casket.core.content_store import ContentStore
from casket.core.dag import verify_dag
from casket.core.dag_index import DagIndex
from casket.core.hashing import compute_key, is_valid_key
from casket.core.logging import get_logger
from casket.core.nodes import (
    DEFAULT_CONTENT_TYPE,
    NodeEncodingError,
    decode_node,
    node_child_sizes,
    node_children,
    node_size,
)
from casket.core.ownership import OwnershipIndex
from casket.core.security import log_fingerprint
from casket.engine.access import AccessController
from casket.engine.operations import CasOperation
from casket.engine.tickets import TicketIssuer

logger = get_logger(__name__)


@dataclass(frozen=True)
class _PreparedNode:
    """A verified, decoded node ready to be stored."""

    key: str
    content: bytes
    stored_content_type: str
    node: Node

    @property
    def size(self) -> int:
        return node_size(self.node)

    @property
    def children(self) -> tuple[str, ...]:
        return node_children(self.node)

    @property
    def content_type(self) -> str:
        """Content type the node represents.

        A file reports the type of its payload, every other structured node
        its media type, and a raw chunk the type it was uploaded with.
        """
        match self.node.kind:
            case NodeKind.FILE:
                return self.node.content_type
            case _:
                return self.stored_content_type


def _require_key(key: str) -> None:
    if not is_valid_key(key):
        raise InvalidRequest("Invalid key format", key=key)


class CasService:
    """Operations behind ``/cas/{scope}/*``.

    Operations take the AuthContext the access controller built and
    enforce the declared requirement of the operation.
    """

    def __init__(
        self,
        content_store: ContentStore,
        dag_index: DagIndex,
        ownership: OwnershipIndex,
        access: AccessController,
        tickets: TicketIssuer,
        *,
        chunk_threshold: int,
        fingerprint_key: bytes,
        max_traversal_nodes: int = 100_000,
    ) -> None:
        self._content_store = content_store
        self._dag_index = dag_index
        self._ownership = ownership
        self._access = access
        self._tickets = tickets
        self._chunk_threshold = chunk_threshold
        self._fingerprint_key = fingerprint_key
        self._max_traversal_nodes = max_traversal_nodes

    # === Upload protocol ===

    def resolve(self, ctx: AuthContext, scope: str, keys: Sequence[str]) -> list[str]:
        """Keys from ``keys`` the scope does not own yet (upload those).

        Raises:
            Forbidden: If the context may neither read nor write the scope
            InvalidRequest: If any key is malformed
        """
        scope = self._access.authorize(ctx, CasOperation.RESOLVE, scope)
        for key in keys:
            _require_key(key)
        return self._ownership.check_ownership(scope, keys).missing

    def put_node(
        self,
        ctx: AuthContext,
        scope: str,
        key: str,
        content: bytes,
        content_type: str | None = None,
    ) -> UploadResult:
        """Store one node under its caller-asserted key.

        Raises:
            Forbidden: If the context may not write the scope
            AlreadyWritten: If a write ticket's slot is already consumed
            HashMismatch: If the bytes do not hash to ``key``
            InvalidRequest: On a malformed key or node, an oversized chunk,
                unowned children, or a write ticket limit
        """
        scope = self._access.authorize(ctx, CasOperation.PUT_NODE, scope)
        _require_key(key)
        self._check_not_written(ctx)

        prepared = self._prepare(
            ctx, EncodedNode(key=key, content=content, content_type=content_type or "")
        )
        self._check_children(scope, [prepared], bundle={})
        self._check_ticket_limits(ctx, prepared, total_bytes=len(content))
        return self._write(ctx, scope, prepared, [prepared])

    def put_dag(
        self,
        ctx: AuthContext,
        scope: str,
        root_key: str,
        nodes: Sequence[EncodedNode],
    ) -> UploadResult:
        """Store a bundle of nodes forming (part of) the DAG under ``root_key``.

        Children already owned by the scope may be omitted from the bundle.
        Every bundled node must be reachable from the root. With a write
        ticket, the whole bundle is one write.

        Raises:
            Same as put_node, plus InvalidRequest if the root is missing from
            the bundle or a node is unreachable from it
        """
        scope = self._access.authorize(ctx, CasOperation.PUT_DAG, scope)
        _require_key(root_key)
        self._check_not_written(ctx)
        if not nodes:
            raise InvalidRequest("Empty node bundle")

        prepared: dict[str, _PreparedNode] = {}
        for encoded in nodes:
            _require_key(encoded.key)
            if encoded.key not in prepared:
                prepared[encoded.key] = self._prepare(ctx, encoded)
        if root_key not in prepared:
            raise InvalidRequest("Root node missing from bundle", root=root_key)

        graph: DiGraph[str] = nx.DiGraph()
        graph.add_nodes_from(prepared)
        for item in prepared.values():
            for child in item.children:
                if child in prepared:
                    graph.add_edge(item.key, child)
        if not nx.is_directed_acyclic_graph(graph):
            raise InvalidRequest("Node bundle contains a cycle")

        unreachable = set(prepared) - nx.descendants(graph, root_key) - {root_key}
        if unreachable:
            raise InvalidRequest(
                "Bundle nodes not reachable from root", keys=sorted(unreachable)
            )

        self._check_children(scope, prepared.values(), bundle=prepared)
        root = prepared[root_key]
        self._check_ticket_limits(
            ctx, root, total_bytes=sum(len(p.content) for p in prepared.values())
        )

        # Children first: a parent never lands before what it references
        ordered = [prepared[k] for k in reversed(list(nx.topological_sort(graph)))]
        return self._write(ctx, scope, root, ordered)

    # === Reads ===

    def get_node(self, ctx: AuthContext, scope: str, key: str) -> StoredContent:
        """Bytes and content type of an owned node.

        Raises:
            Forbidden: If the context may not read the scope or this key
            NotFound: If the scope does not own ``key``
        """
        scope = self._access.authorize(ctx, CasOperation.GET_NODE, scope, key)
        _require_key(key)
        if not self._ownership.has_ownership(scope, key):
            raise NotFound(key=key)
        return self._content_store.get(key)

    def get_dag(self, ctx: AuthContext, scope: str, key: str) -> DagManifest:
        """Manifest of the transitive node set rooted at an owned key.

        Raises:
            Forbidden: If the context may not read the scope or this key
            NotFound: If the scope does not own ``key``
            TraversalLimitExceeded: If the closure is too large
        """
        scope = self._access.authorize(ctx, CasOperation.GET_DAG, scope, key)
        _require_key(key)
        if not self._ownership.has_ownership(scope, key):
            raise NotFound(key=key)
        manifest = self._dag_index.manifest(key)
        if key not in manifest.nodes:
            raise NotFound(key=key)
        return manifest

    def list_nodes(
        self,
        ctx: AuthContext,
        scope: str,
        limit: int = 100,
        cursor: str | None = None,
    ) -> KeyPage:
        """Page through the scope's claims, newest first."""
        scope = self._access.authorize(ctx, CasOperation.LIST_NODES, scope)
        return self._ownership.list_keys(scope, limit=limit, cursor=cursor)

    def verify(self, ctx: AuthContext, scope: str, key: str) -> VerificationReport:
        """Re-derive every key under an owned root from the stored bytes."""
        scope = self._access.authorize(ctx, CasOperation.GET_DAG, scope, key)
        _require_key(key)
        if not self._ownership.has_ownership(scope, key):
            raise NotFound(key=key)
        return verify_dag(
            self._content_store,
            self._dag_index,
            key,
            max_nodes=self._max_traversal_nodes,
        )

    # === Claim removal ===

    def delete_node(self, ctx: AuthContext, scope: str, key: str) -> None:
        """Remove the scope's claim on ``key``. The bytes are kept.

        Raises:
            NotFound: If the scope does not own ``key``
        """
        scope = self._access.authorize(ctx, CasOperation.DELETE_NODE, scope)
        _require_key(key)
        if not self._ownership.remove_ownership(scope, key):
            raise NotFound(key=key)
        logger.info("ownership_removed", scope=scope, key=key)

    # === Internals ===

    def _check_not_written(self, ctx: AuthContext) -> None:
        ticket = ctx.ticket
        if ticket is not None and ticket.is_consumed:
            raise AlreadyWritten(ticket.token_id, written=ticket.written)

    def _prepare(self, ctx: AuthContext, encoded: EncodedNode) -> _PreparedNode:
        if not encoded.content:
            raise InvalidRequest("Empty body", key=encoded.key)

        actual = compute_key(encoded.content)
        if actual != encoded.key:
            logger.warning("hash_mismatch", expected=encoded.key, actual=actual)
            raise HashMismatch(expected=encoded.key, actual=actual)

        content_type = encoded.content_type or DEFAULT_CONTENT_TYPE
        try:
            node = decode_node(encoded.content, content_type)
        except NodeEncodingError as e:
            raise InvalidRequest(f"Invalid node: {e}", key=encoded.key) from e

        ticket = ctx.ticket
        threshold = ticket.config.chunk_threshold if ticket else self._chunk_threshold
        is_raw = node.kind == NodeKind.CHUNK and node.is_raw
        if is_raw and len(encoded.content) > threshold:
            raise InvalidRequest(
                "Chunk exceeds threshold; split it",
                key=encoded.key,
                size=len(encoded.content),
                threshold=threshold,
            )
        return _PreparedNode(
            key=encoded.key,
            content=encoded.content,
            stored_content_type=content_type,
            node=node,
        )

    def _check_children(
        self,
        scope: str,
        items: Iterable[_PreparedNode],
        *,
        bundle: Mapping[str, _PreparedNode],
    ) -> None:
        """Children must be owned (or bundled) and match what the parent declares.

        Raises:
            InvalidRequest: On an unowned child, a declared size that differs
                from the child's size, or a non-chunk listed as a chunk
        """
        items = list(items)
        referenced = list(
            dict.fromkeys(c for item in items for c in item.children if c not in bundle)
        )
        stored: dict[str, tuple[NodeKind, int]] = {}
        if referenced:
            unowned = set(self._ownership.check_ownership(scope, referenced).missing)
            records = self._dag_index.get_nodes(referenced)
            missing = [k for k in referenced if k in unowned or k not in records]
            if missing:
                raise InvalidRequest("Missing children", missing=missing)
            stored = {k: (r.kind, r.size) for k, r in records.items()}

        for item in items:
            parent_kind = item.node.kind
            for child, declared in zip(
                item.children, node_child_sizes(item.node), strict=True
            ):
                if child in bundle:
                    kind, size = bundle[child].node.kind, bundle[child].size
                else:
                    kind, size = stored[child]
                if parent_kind != NodeKind.COLLECTION and kind != NodeKind.CHUNK:
                    raise InvalidRequest(
                        f"A {parent_kind.value} may only list chunks",
                        key=item.key,
                        child=child,
                        kind=kind.value,
                    )
                if declared != size:
                    raise InvalidRequest(
                        "Declared child size does not match",
                        key=item.key,
                        child=child,
                        declared=declared,
                        actual=size,
                    )

    def _check_ticket_limits(
        self, ctx: AuthContext, root: _PreparedNode, *, total_bytes: int
    ) -> None:
        ticket = ctx.ticket
        if ticket is None or ticket.writable is None:
            return
        if not ticket.writable.within_quota(total_bytes):
            raise InvalidRequest(
                "Write exceeds ticket quota",
                size=total_bytes,
                quota=ticket.writable.quota,
            )
        if not ticket.writable.accepts(root.content_type):
            raise InvalidRequest(
                "Content type not accepted by ticket", contentType=root.content_type
            )

    def _write(
        self,
        ctx: AuthContext,
        scope: str,
        root: _PreparedNode,
        ordered: Sequence[_PreparedNode],
    ) -> UploadResult:
        ticket = ctx.ticket
        if ticket is not None:
            try:
                self._tickets.reserve_write(ticket, root.key)
            except ConditionFailed:
                raise AlreadyWritten(ticket.token_id) from None

        stored: list[str] = []
        try:
            for item in ordered:
                result = self._content_store.put(
                    item.key, item.content, item.stored_content_type
                )
                self._dag_index.put_node(
                    item.key, item.node.kind, item.children, item.content_type, item.size
                )
                self._ownership.add_ownership(
                    scope, item.key, ctx.token_id, item.content_type, item.size
                )
                if result.is_new:
                    stored.append(item.key)
        except BaseException:
            if ticket is not None:
                self._tickets.revert_write(ticket, root.key)
            raise

        logger.info(
            "node_stored",
            scope=scope,
            root=root.key,
            kind=root.node.kind.value,
            nodes=len(ordered),
            new=len(stored),
            token_fp=log_fingerprint(ctx.token_id, key=self._fingerprint_key),
        )
        return UploadResult(
            key=root.key,
            size=root.size,
            content_type=root.content_type,
            stored_keys=tuple(stored),
        )
