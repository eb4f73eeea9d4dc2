# tests/core/test_dag_index.py
"""Tests for the DAG index."""

from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from casket.core.dag_index import DagIndex
    from casket.core.storage.database import CasketDB


def _key(n: int) -> str:
    return f"sha256:{n:064x}"


@pytest.fixture
def index(db: "CasketDB") -> "DagIndex":
    from casket.core.dag_index import DagIndex

    return DagIndex(db, batch_size=2)


def _chunk(index: "DagIndex", n: int, *children: int, size: int = 10) -> None:
    from casket.contracts.enums import NodeKind

    index.put_node(
        _key(n),
        NodeKind.CHUNK,
        [_key(c) for c in children],
        "application/octet-stream",
        size,
    )


class TestPutNode:
    def test_put_then_get(self, index: "DagIndex") -> None:
        from casket.contracts.enums import NodeKind

        assert index.put_node(_key(1), NodeKind.FILE, [_key(2)], "text/plain", 7) is True

        record = index.get_node(_key(1))
        assert record is not None
        assert record.kind == NodeKind.FILE
        assert record.children == (_key(2),)
        assert record.content_type == "text/plain"
        assert record.size == 7

    def test_idempotent(self, index: "DagIndex") -> None:
        from casket.contracts.enums import NodeKind

        index.put_node(_key(1), NodeKind.CHUNK, [], "text/plain", 5)
        assert index.put_node(_key(1), NodeKind.CHUNK, [], "image/png", 9) is False

        record = index.get_node(_key(1))
        assert record is not None and record.size == 5

    def test_get_nodes_batches_and_skips_unknown(self, index: "DagIndex") -> None:
        for n in range(5):
            _chunk(index, n)

        found = index.get_nodes([_key(n) for n in range(8)])
        assert set(found) == {_key(n) for n in range(5)}


class TestTraversal:
    def test_collects_closure_with_shared_children(self, index: "DagIndex") -> None:
        # 1 -> {2, 3}, 2 -> 4, 3 -> 4
        _chunk(index, 4)
        _chunk(index, 2, 4)
        _chunk(index, 3, 4)
        _chunk(index, 1, 2, 3)

        assert index.collect_transitive_keys(_key(1)) == {_key(n) for n in (1, 2, 3, 4)}
        assert index.collect_transitive_keys(_key(2)) == {_key(2), _key(4)}

    def test_unrecorded_root_is_empty(self, index: "DagIndex") -> None:
        assert index.collect_transitive_keys(_key(9)) == set()

    def test_unrecorded_children_are_skipped(self, index: "DagIndex") -> None:
        _chunk(index, 1, 2, 3)
        _chunk(index, 2)

        assert index.collect_transitive_keys(_key(1)) == {_key(1), _key(2)}

    def test_self_reference_terminates(self, index: "DagIndex") -> None:
        _chunk(index, 1, 1, 2)
        _chunk(index, 2, 1)

        assert index.collect_transitive_keys(_key(1)) == {_key(1), _key(2)}

    def test_limit_exceeded(self, db: "CasketDB") -> None:
        from casket.contracts.errors import TraversalLimitExceeded
        from casket.core.dag_index import DagIndex

        index = DagIndex(db, max_traversal_nodes=3)
        for n in range(2, 7):
            _chunk(index, n)
        _chunk(index, 1, 2, 3, 4, 5, 6)

        with pytest.raises(TraversalLimitExceeded) as exc_info:
            index.collect_transitive_keys(_key(1))
        assert exc_info.value.limit == 3
        assert exc_info.value.root == _key(1)

    def test_limit_not_hit_at_boundary(self, db: "CasketDB") -> None:
        from casket.core.dag_index import DagIndex

        index = DagIndex(db, max_traversal_nodes=3)
        _chunk(index, 2)
        _chunk(index, 3)
        _chunk(index, 1, 2, 3)

        assert len(index.collect_transitive_keys(_key(1))) == 3

    def test_manifest_shape(self, index: "DagIndex") -> None:
        _chunk(index, 2, size=3)
        _chunk(index, 1, 2, size=3)

        manifest = index.manifest(_key(1))
        body = manifest.to_dict()

        assert body["root"] == _key(1)
        assert body["nodes"][_key(1)]["children"] == [_key(2)]
        assert body["nodes"][_key(2)] == {
            "kind": "chunk",
            "size": 3,
            "contentType": "application/octet-stream",
            "children": [],
        }
