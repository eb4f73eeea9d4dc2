"""DAG index: structural metadata for every stored node.

Holds each node's kind, child keys, content type and represented size. Raw
bytes live in the content store. Traversal is breadth-first with a visited
set, one batched lookup per level, and a hard limit on the closure size.
"""

import json
from collections.abc import Callable, Sequence
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from casket.contracts.enums import NodeKind
from casket.contracts.errors import TraversalLimitExceeded
from casket.contracts.nodes import DagManifest, DagNodeRecord
from casket.core.logging import get_logger
from casket.core.storage.database import CasketDB
from casket.core.storage.repositories import DagNodeRepository
from casket.core.storage.schema import dag_nodes_table

logger = get_logger(__name__)


def _now() -> datetime:
    return datetime.now(UTC)


class DagIndex:
    """Per-key node structure and transitive closure queries."""

    def __init__(
        self,
        db: CasketDB,
        *,
        max_traversal_nodes: int = 100_000,
        batch_size: int = 100,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self._db = db
        self._max_nodes = max_traversal_nodes
        self._batch_size = batch_size
        self._clock = clock
        self._repo = DagNodeRepository()

    def put_node(
        self,
        key: str,
        kind: NodeKind,
        children: Sequence[str],
        content_type: str,
        size: int,
    ) -> bool:
        """Record a node's structure. Idempotent: keys are content hashes,
        so an existing row already describes the same structure.

        Returns:
            True if the node was newly recorded
        """
        if self.get_node(key) is not None:
            return False
        try:
            with self._db.connection() as conn:
                conn.execute(
                    dag_nodes_table.insert().values(
                        key=key,
                        kind=kind.value,
                        children_json=json.dumps(list(children)),
                        content_type=content_type,
                        size=size,
                        created_at=self._clock(),
                    )
                )
        except IntegrityError:
            return False
        return True

    def get_node(self, key: str) -> DagNodeRecord | None:
        with self._db.connection() as conn:
            row = conn.execute(
                select(dag_nodes_table).where(dag_nodes_table.c.key == key)
            ).fetchone()
        if row is None:
            return None
        return self._repo.load(row)

    def get_nodes(self, keys: Sequence[str]) -> dict[str, DagNodeRecord]:
        """Batched lookup. Unknown keys are simply absent from the result."""
        unique = list(dict.fromkeys(keys))
        found: dict[str, DagNodeRecord] = {}
        with self._db.connection() as conn:
            for start in range(0, len(unique), self._batch_size):
                batch = unique[start : start + self._batch_size]
                rows = conn.execute(
                    select(dag_nodes_table).where(dag_nodes_table.c.key.in_(batch))
                )
                for row in rows:
                    record = self._repo.load(row)
                    found[record.key] = record
        return found

    def _walk(self, root: str) -> dict[str, DagNodeRecord]:
        """Breadth-first closure of ``root`` over recorded nodes.

        Children without a recorded node are skipped. A node referencing
        itself, or any already visited key, is not expanded twice.
        """
        visited: dict[str, DagNodeRecord] = {}
        seen: set[str] = {root}
        frontier = [root]

        while frontier:
            level = self.get_nodes(frontier)
            next_frontier: list[str] = []
            for key in frontier:
                record = level.get(key)
                if record is None:
                    continue
                visited[key] = record
                if len(visited) > self._max_nodes:
                    logger.warning(
                        "traversal_limit_exceeded", root=root, limit=self._max_nodes
                    )
                    raise TraversalLimitExceeded(root=root, limit=self._max_nodes)
                for child in record.children:
                    if child not in seen:
                        seen.add(child)
                        next_frontier.append(child)
            frontier = next_frontier

        return visited

    def collect_transitive_keys(self, root: str) -> set[str]:
        """Every recorded key reachable from ``root``, root included.

        Returns an empty set when ``root`` itself is not recorded.

        Raises:
            TraversalLimitExceeded: If the closure exceeds max_traversal_nodes
        """
        return set(self._walk(root))

    def manifest(self, root: str) -> DagManifest:
        """The transitive node set rooted at ``root`` with per-node metadata."""
        return DagManifest(root=root, nodes=self._walk(root))
