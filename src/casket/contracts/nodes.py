"""Merkle-DAG node contracts.

Nodes are a tagged union discriminated by ``kind``. Traversal and hashing code
switches on the tag explicitly (``match node.kind``) so that every variant is
handled in one auditable place.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from casket.contracts.enums import NodeKind


@dataclass(frozen=True)
class ChunkNode:
    """A leaf of raw bytes, or an index of sub-chunks when split.

    Invariants:
    - Exactly one of ``data`` / ``parts`` is populated
    - ``part_sizes`` is parallel to ``parts``
    """

    data: bytes | None = None
    parts: tuple[str, ...] = ()
    part_sizes: tuple[int, ...] = ()
    kind: Literal[NodeKind.CHUNK] = field(default=NodeKind.CHUNK, init=False)

    def __post_init__(self) -> None:
        if (self.data is None) == (not self.parts):
            raise ValueError("Chunk must carry either raw data or parts, not both")
        if len(self.parts) != len(self.part_sizes):
            raise ValueError("Chunk parts and part_sizes must be parallel")

    @property
    def is_raw(self) -> bool:
        return self.data is not None


@dataclass(frozen=True)
class FileNode:
    """An ordered list of chunk keys with parallel sizes and a content type."""

    chunks: tuple[str, ...]
    sizes: tuple[int, ...]
    content_type: str
    kind: Literal[NodeKind.FILE] = field(default=NodeKind.FILE, init=False)

    def __post_init__(self) -> None:
        if len(self.chunks) != len(self.sizes):
            raise ValueError("File chunks and sizes must be parallel")


@dataclass(frozen=True)
class CollectionEntry:
    """One named child of a collection."""

    name: str
    key: str
    size: int


@dataclass(frozen=True)
class CollectionNode:
    """A directory-like mapping of unique names to child keys.

    Entries are kept sorted by name; order carries no meaning.
    """

    entries: tuple[CollectionEntry, ...]
    kind: Literal[NodeKind.COLLECTION] = field(
        default=NodeKind.COLLECTION, init=False
    )

    def __post_init__(self) -> None:
        names = [entry.name for entry in self.entries]
        if len(set(names)) != len(names):
            raise ValueError("Collection entry names must be unique")
        ordered = tuple(sorted(self.entries, key=lambda e: e.name))
        object.__setattr__(self, "entries", ordered)

    @property
    def children(self) -> dict[str, str]:
        """Name -> child key mapping."""
        return {entry.name: entry.key for entry in self.entries}


Node = ChunkNode | FileNode | CollectionNode


@dataclass(frozen=True)
class DagNodeRecord:
    """Structural metadata the DAG index holds for one key.

    Raw bytes live in the content store, not here.
    """

    key: str
    kind: NodeKind
    children: tuple[str, ...]
    content_type: str
    size: int
    created_at: datetime


@dataclass(frozen=True)
class DagManifest:
    """Transitive node set rooted at ``root``."""

    root: str
    nodes: dict[str, DagNodeRecord]

    def to_dict(self) -> dict[str, Any]:
        """Wire shape: ``{root, nodes: {key: {size, contentType, children}}}``."""
        return {
            "root": self.root,
            "nodes": {
                key: {
                    "kind": record.kind.value,
                    "size": record.size,
                    "contentType": record.content_type,
                    "children": list(record.children),
                }
                for key, record in self.nodes.items()
            },
        }


@dataclass(frozen=True)
class EncodedNode:
    """Wire form of a node: asserted key, exact bytes and content type."""

    key: str
    content: bytes
    content_type: str

    @property
    def size(self) -> int:
        return len(self.content)
