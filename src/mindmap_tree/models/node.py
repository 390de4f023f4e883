"""Domain models for the mind-map tree engine."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Document:
    """A mind-map document owning a tree of nodes."""

    id: str
    title: str
    version: int = 0
    node_count: int = 0
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class Node:
    """A single node in a mind-map tree.

    ``depth`` is derived from the parent chain and is recomputed by the tree;
    values passed in from outside are never trusted.
    """

    id: str
    parent_id: str | None
    sibling_order: int
    content: str
    depth: int = 0


@dataclass(frozen=True)
class PersistedNode:
    """A node row as stored in the ``nodes`` table."""

    id: str
    document_id: str
    content: str
    parent_node_id: str | None
    sibling_order: int
    depth: int


@dataclass(frozen=True)
class Position:
    """A point on the canvas."""

    x: float
    y: float


@dataclass(frozen=True)
class CanvasNode:
    """A node as the rendering surface knows it: free position, no order or depth."""

    id: str
    position: Position
    content: str = ""


@dataclass(frozen=True)
class CanvasEdge:
    """A directed connection drawn on the canvas."""

    source: str
    target: str


@dataclass(frozen=True)
class LayoutEdge:
    """A parent-to-child connector, anchored on the parent's right and the child's left."""

    id: str
    source: str
    target: str
    source_handle: str = "right"
    target_handle: str = "left"


@dataclass(frozen=True)
class NodeHierarchy:
    """A node with its nested children and address."""

    node: Node
    children: tuple["NodeHierarchy", ...]
    level: int
    address: str
