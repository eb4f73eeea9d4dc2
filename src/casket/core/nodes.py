"""Node codec: canonical encoding, key computation and chunk splitting.

Raw chunks are stored as their own bytes. Structured nodes (chunk indexes,
files, collections) are stored as RFC 8785 canonical JSON under dedicated
media types, and decoding rejects any encoding that is not already canonical.
That keeps the mapping structure -> bytes -> key one-to-one, which is what
makes the DAG tamper-evident: changing a descendant changes its key, which
changes the bytes (and key) of every ancestor.
"""

import json
from collections.abc import Mapping
from typing import Any, assert_never

from casket.contracts.enums import NodeKind
from casket.contracts.nodes import (
    ChunkNode,
    CollectionEntry,
    CollectionNode,
    EncodedNode,
    FileNode,
    Node,
)
from casket.core.canonical import canonical_bytes
from casket.core.hashing import compute_key, is_valid_key

DEFAULT_CONTENT_TYPE = "application/octet-stream"
# Largest integer RFC 8785 serializes exactly (IEEE 754 double)
MAX_SIZE = 2**53 - 1
CHUNK_MEDIA_TYPE = "application/vnd.casket.chunk+json"
FILE_MEDIA_TYPE = "application/vnd.casket.file+json"
COLLECTION_MEDIA_TYPE = "application/vnd.casket.collection+json"

_STRUCTURED_KINDS = {
    CHUNK_MEDIA_TYPE: NodeKind.CHUNK,
    FILE_MEDIA_TYPE: NodeKind.FILE,
    COLLECTION_MEDIA_TYPE: NodeKind.COLLECTION,
}


class NodeEncodingError(ValueError):
    """Raised when bytes do not decode to a valid canonical node."""

    pass


def media_type(content_type: str) -> str:
    """Strip parameters and normalize case: ``Text/Plain; charset=x`` -> ``text/plain``."""
    return content_type.split(";", 1)[0].strip().lower()


def is_structured(content_type: str) -> bool:
    """Whether a content type names one of the structured node encodings."""
    return media_type(content_type) in _STRUCTURED_KINDS


def node_content_type(node: Node, raw_content_type: str = DEFAULT_CONTENT_TYPE) -> str:
    """Content type a node is stored under.

    Raw chunks keep the caller's content type; structured nodes use their
    media type.
    """
    match node.kind:
        case NodeKind.CHUNK:
            return raw_content_type if node.is_raw else CHUNK_MEDIA_TYPE
        case NodeKind.FILE:
            return FILE_MEDIA_TYPE
        case NodeKind.COLLECTION:
            return COLLECTION_MEDIA_TYPE
        case _:
            assert_never(node.kind)


def _structure(node: Node) -> dict[str, Any]:
    match node.kind:
        case NodeKind.CHUNK:
            return {
                "kind": "chunk",
                "parts": list(node.parts),
                "sizes": list(node.part_sizes),
            }
        case NodeKind.FILE:
            return {
                "kind": "file",
                "chunks": list(node.chunks),
                "sizes": list(node.sizes),
                "contentType": node.content_type,
            }
        case NodeKind.COLLECTION:
            return {
                "kind": "collection",
                "children": {e.name: e.key for e in node.entries},
                "sizes": {e.name: e.size for e in node.entries},
            }
        case _:
            assert_never(node.kind)


def encode_node(node: Node) -> bytes:
    """Canonical byte representation of a node."""
    if isinstance(node, ChunkNode) and node.data is not None:
        return node.data
    return canonical_bytes(_structure(node))


def node_key(node: Node) -> str:
    """Content key of a node: hash of its canonical bytes."""
    return compute_key(encode_node(node))


def node_size(node: Node) -> int:
    """Bytes of represented content, not wire size."""
    match node.kind:
        case NodeKind.CHUNK:
            if node.data is not None:
                return len(node.data)
            return sum(node.part_sizes)
        case NodeKind.FILE:
            return sum(node.sizes)
        case NodeKind.COLLECTION:
            return sum(e.size for e in node.entries)
        case _:
            assert_never(node.kind)


def node_children(node: Node) -> tuple[str, ...]:
    """Child keys in declaration order (collections: sorted by name)."""
    match node.kind:
        case NodeKind.CHUNK:
            return node.parts
        case NodeKind.FILE:
            return node.chunks
        case NodeKind.COLLECTION:
            return tuple(e.key for e in node.entries)
        case _:
            assert_never(node.kind)


def node_child_sizes(node: Node) -> tuple[int, ...]:
    """Declared child sizes, parallel to ``node_children``."""
    match node.kind:
        case NodeKind.CHUNK:
            return node.part_sizes
        case NodeKind.FILE:
            return node.sizes
        case NodeKind.COLLECTION:
            return tuple(e.size for e in node.entries)
        case _:
            assert_never(node.kind)


def _require_keys(value: Any, field: str) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(k, str) for k in value):
        raise NodeEncodingError(f"'{field}' must be a list of keys")
    bad = [k for k in value if not is_valid_key(k)]
    if bad:
        raise NodeEncodingError(f"'{field}' contains invalid keys: {bad[:3]}")
    return value


def _require_sizes(value: Any, field: str) -> list[int]:
    if not isinstance(value, list) or not all(
        isinstance(s, int) and not isinstance(s, bool) and 0 <= s <= MAX_SIZE for s in value
    ):
        raise NodeEncodingError(
            f"'{field}' must be a list of integers between 0 and {MAX_SIZE}"
        )
    return value


def _require_fields(data: dict[str, Any], expected: set[str]) -> None:
    if set(data) != expected:
        raise NodeEncodingError(
            f"Expected fields {sorted(expected)}, got {sorted(data)}"
        )


def _parse_structure(kind: NodeKind, data: dict[str, Any]) -> Node:
    match kind:
        case NodeKind.CHUNK:
            _require_fields(data, {"kind", "parts", "sizes"})
            parts = _require_keys(data["parts"], "parts")
            sizes = _require_sizes(data["sizes"], "sizes")
            if not parts:
                raise NodeEncodingError("Chunk index must list at least one part")
            return ChunkNode(parts=tuple(parts), part_sizes=tuple(sizes))
        case NodeKind.FILE:
            _require_fields(data, {"kind", "chunks", "sizes", "contentType"})
            chunks = _require_keys(data["chunks"], "chunks")
            sizes = _require_sizes(data["sizes"], "sizes")
            if not isinstance(data["contentType"], str) or not data["contentType"]:
                raise NodeEncodingError("'contentType' must be a non-empty string")
            return FileNode(
                chunks=tuple(chunks), sizes=tuple(sizes), content_type=data["contentType"]
            )
        case NodeKind.COLLECTION:
            _require_fields(data, {"kind", "children", "sizes"})
            children, sizes = data["children"], data["sizes"]
            if not isinstance(children, dict) or not isinstance(sizes, dict):
                raise NodeEncodingError("'children' and 'sizes' must be objects")
            if set(children) != set(sizes):
                raise NodeEncodingError("'children' and 'sizes' must name the same entries")
            names = sorted(children)
            _require_keys([children[n] for n in names], "children")
            _require_sizes([sizes[n] for n in names], "sizes")
            return CollectionNode(
                entries=tuple(
                    CollectionEntry(name=n, key=children[n], size=sizes[n]) for n in names
                )
            )
        case _:
            assert_never(kind)


def decode_node(content: bytes, content_type: str) -> Node:
    """Decode stored bytes into a node.

    Any non-structured content type decodes to a raw chunk.

    Raises:
        NodeEncodingError: If structured content is malformed or not canonical
    """
    kind = _STRUCTURED_KINDS.get(media_type(content_type))
    if kind is None:
        return ChunkNode(data=content)

    try:
        data = json.loads(content)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise NodeEncodingError(f"Structured node is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise NodeEncodingError("Structured node must be a JSON object")
    if data.get("kind") != kind.value:
        raise NodeEncodingError(
            f"Node kind {data.get('kind')!r} does not match content type {content_type!r}"
        )

    try:
        node = _parse_structure(kind, data)
    except ValueError as e:
        # dataclass invariants (parallel lists, unique names) surface as ValueError
        if isinstance(e, NodeEncodingError):
            raise
        raise NodeEncodingError(str(e)) from e

    try:
        canonical = encode_node(node)
    except ValueError as e:
        raise NodeEncodingError(f"Structured node cannot be canonicalized: {e}") from e
    if canonical != content:
        raise NodeEncodingError("Structured node is not canonically encoded")
    return node


def encoded(node: Node, raw_content_type: str = DEFAULT_CONTENT_TYPE) -> EncodedNode:
    """Wire form of a node with its computed key."""
    content = encode_node(node)
    return EncodedNode(
        key=compute_key(content),
        content=content,
        content_type=node_content_type(node, raw_content_type),
    )


# === Client-side builders ===


def split_into_chunks(content: bytes, threshold: int) -> list[bytes]:
    """Split content into pieces of at most ``threshold`` bytes.

    Empty content yields no pieces.
    """
    if threshold <= 0:
        raise ValueError("threshold must be positive")
    if not content:
        return []
    if len(content) <= threshold:
        return [content]
    return [content[i : i + threshold] for i in range(0, len(content), threshold)]


def build_chunk(
    data: bytes,
    threshold: int,
    content_type: str = DEFAULT_CONTENT_TYPE,
) -> tuple[EncodedNode, list[EncodedNode]]:
    """Build a chunk, splitting into an index of sub-chunks when oversized.

    Returns:
        (root, all nodes including root) in upload order (children first)
    """
    if not data:
        raise ValueError("A chunk cannot be empty")
    pieces = split_into_chunks(data, threshold)
    if len(pieces) == 1:
        root = encoded(ChunkNode(data=data), content_type)
        return root, [root]

    parts = [encoded(ChunkNode(data=piece)) for piece in pieces]
    root = encoded(
        ChunkNode(
            parts=tuple(p.key for p in parts),
            part_sizes=tuple(p.size for p in parts),
        )
    )
    return root, [*parts, root]


def build_file(
    content: bytes,
    content_type: str,
    threshold: int,
) -> tuple[EncodedNode, list[EncodedNode]]:
    """Build a file node over threshold-sized raw chunks.

    Identical pieces are emitted once; the file still lists them in order.
    Empty content yields a file with no chunks.
    """
    pieces = split_into_chunks(content, threshold)
    chunks = [encoded(ChunkNode(data=piece)) for piece in pieces]
    root = encoded(
        FileNode(
            chunks=tuple(c.key for c in chunks),
            sizes=tuple(c.size for c in chunks),
            content_type=content_type,
        )
    )
    unique = list({c.key: c for c in chunks}.values())
    return root, [*unique, root]


def build_collection(children: Mapping[str, tuple[str, int]]) -> EncodedNode:
    """Build a collection node from ``name -> (key, size)``."""
    node = CollectionNode(
        entries=tuple(
            CollectionEntry(name=name, key=key, size=size)
            for name, (key, size) in children.items()
        )
    )
    return encoded(node)
