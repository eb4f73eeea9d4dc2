"""DAG verification: re-derive every key in a closure from stored bytes.

Uses NetworkX for graph operations:
- Acyclicity validation
- Topological ordering (children before parents)

The DAG index is not trusted here. The graph is rebuilt from the bytes in
the content store, each node's key is recomputed, and the index entry (when
present) must agree with what the bytes actually declare. Any altered
descendant therefore surfaces as a failure on that descendant, and any
stale parent size as a failure on the parent.
"""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING

import networkx as nx
from networkx import DiGraph

from casket.contracts.enums import NodeKind
from casket.contracts.errors import NotFound, TraversalLimitExceeded
from casket.contracts.nodes import Node
from casket.contracts.results import VerificationFailure, VerificationReport
from casket.core.hashing import compute_key
from casket.core.logging import get_logger
from casket.core.nodes import (
    NodeEncodingError,
    decode_node,
    node_child_sizes,
    node_children,
    node_size,
)

if TYPE_CHECKING:
    from casket.core.content_store import ContentStore
    from casket.core.dag_index import DagIndex

logger = get_logger(__name__)


def verify_dag(
    content_store: ContentStore,
    dag_index: DagIndex | None,
    root: str,
    *,
    max_nodes: int = 100_000,
) -> VerificationReport:
    """Verify the DAG rooted at ``root`` bottom-up.

    Checks, per node:
    1. Bytes are present in the content store
    2. Bytes hash to the key they are stored under
    3. Structured bytes decode to a canonical node
    4. Sizes a parent declares for its children match the children
    5. The DAG index entry (if any) matches the decoded structure

    and, for the whole graph, that it is acyclic.

    Raises:
        TraversalLimitExceeded: If the closure exceeds ``max_nodes``
    """
    report = VerificationReport(root=root)
    graph: DiGraph[str] = nx.DiGraph()
    decoded: dict[str, Node] = {}

    queue: deque[str] = deque([root])
    graph.add_node(root)
    while queue:
        key = queue.popleft()
        if graph.number_of_nodes() > max_nodes:
            raise TraversalLimitExceeded(root=root, limit=max_nodes)

        try:
            stored = content_store.get(key)
        except NotFound:
            report.failures.append(VerificationFailure(key, "content missing"))
            continue

        actual = compute_key(stored.content)
        if actual != key:
            report.failures.append(
                VerificationFailure(key, f"content hashes to {actual}")
            )
            continue

        try:
            node = decode_node(stored.content, stored.content_type)
        except NodeEncodingError as e:
            report.failures.append(VerificationFailure(key, f"invalid node: {e}"))
            continue

        decoded[key] = node
        for child in node_children(node):
            if not graph.has_node(child):
                queue.append(child)
            graph.add_edge(key, child)

    if not nx.is_directed_acyclic_graph(graph):
        cycle = nx.find_cycle(graph)
        cycle_str = " -> ".join(u for u, _ in cycle)
        report.failures.append(VerificationFailure(root, f"cycle: {cycle_str}"))
        logger.warning("dag_verification_failed", root=root, failures=1)
        return report

    # Children first, so a parent is judged against verified children
    for key in reversed(list(nx.topological_sort(graph))):
        node = decoded.get(key)
        if node is None:
            continue
        report.checked.append(key)

        children = node_children(node)
        for child, declared in zip(children, node_child_sizes(node), strict=True):
            child_node = decoded.get(child)
            if (
                child_node is not None
                and node.kind != NodeKind.COLLECTION
                and child_node.kind != NodeKind.CHUNK
            ):
                report.failures.append(
                    VerificationFailure(
                        key, f"lists {child_node.kind.value} {child} as a chunk"
                    )
                )
            if child_node is not None and node_size(child_node) != declared:
                report.failures.append(
                    VerificationFailure(
                        key,
                        f"declares size {declared} for {child}, "
                        f"actual {node_size(child_node)}",
                    )
                )

        if dag_index is None:
            continue
        record = dag_index.get_node(key)
        if record is not None and (
            record.kind != node.kind
            or record.children != children
            or record.size != node_size(node)
        ):
            report.failures.append(
                VerificationFailure(key, "index entry disagrees with stored bytes")
            )

    if not report.ok:
        logger.warning(
            "dag_verification_failed", root=root, failures=len(report.failures)
        )
    return report
