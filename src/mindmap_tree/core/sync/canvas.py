"""Conversion between trees and the canvas graph the rendering surface uses."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from mindmap_tree import config
from mindmap_tree.core.layout.engine import LayoutResult
from mindmap_tree.core.tree.node_tree import NodeTree
from mindmap_tree.models.node import CanvasEdge, CanvasNode, LayoutEdge, Position

_FIRST_FLOAT = f"{config.FLOAT_PREFIX}{config.ADDRESS_SEPARATOR}0"


@dataclass(frozen=True)
class CanvasViewNode:
    """A positioned node ready for display."""

    id: str
    position: Position
    content: str
    address: str
    selected: bool = False


@dataclass
class CanvasView:
    nodes: list[CanvasViewNode] = field(default_factory=list)
    edges: list[LayoutEdge] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [
                {
                    "id": n.id,
                    "position": {"x": n.position.x, "y": n.position.y},
                    "content": n.content,
                    "address": n.address,
                    "selected": n.selected,
                }
                for n in self.nodes
            ],
            "edges": [
                {
                    "id": e.id,
                    "source": e.source,
                    "target": e.target,
                    "sourceHandle": e.source_handle,
                    "targetHandle": e.target_handle,
                }
                for e in self.edges
            ],
        }


def build_canvas_view(
    tree: NodeTree,
    layout: LayoutResult,
    addresses: Mapping[str, str],
) -> CanvasView:
    """Combine a tree with its layout and addresses.

    The main node starts selected; ``float-0`` is the fallback.
    """
    assigned = set(addresses.values())
    selected_address = config.ROOT_ADDRESS if config.ROOT_ADDRESS in assigned else _FIRST_FLOAT

    view = CanvasView(edges=list(layout.edges))
    for node in tree:
        address = addresses.get(node.id, node.id)
        view.nodes.append(
            CanvasViewNode(
                id=node.id,
                position=layout.positions.get(node.id, Position(0, 0)),
                content=node.content,
                address=address,
                selected=address == selected_address,
            )
        )
    return view


def parse_canvas(
    raw_nodes: Iterable[Mapping[str, Any]],
    raw_edges: Iterable[Mapping[str, Any]],
) -> tuple[list[CanvasNode], list[CanvasEdge]]:
    """Read canvas nodes and edges from plain dictionaries.

    Nodes may carry their text as ``content`` or under ``data.content``.
    Entries without an id, and edges missing an endpoint, are skipped.
    Depth and sibling order fields, if present, are ignored.

    Raises:
        ValueError: An entry is not an object, or a position is not numeric.
    """
    nodes: list[CanvasNode] = []
    for i, raw in enumerate(raw_nodes):
        if not isinstance(raw, Mapping):
            msg = f"Canvas node #{i} is not an object: {raw!r}"
            raise ValueError(msg)
        node_id = raw.get("id")
        if not node_id:
            logger.warning("Skipping canvas node without id: {!r}", raw)
            continue
        content = raw.get("content")
        if content is None:
            data = raw.get("data")
            content = data.get("content", "") if isinstance(data, Mapping) else ""
        nodes.append(
            CanvasNode(id=str(node_id), position=_position(node_id, raw), content=str(content))
        )

    edges: list[CanvasEdge] = []
    for i, raw in enumerate(raw_edges):
        if not isinstance(raw, Mapping):
            msg = f"Canvas edge #{i} is not an object: {raw!r}"
            raise ValueError(msg)
        source, target = raw.get("source"), raw.get("target")
        if not source or not target:
            logger.warning("Skipping canvas edge without endpoints: {!r}", raw)
            continue
        edges.append(CanvasEdge(source=str(source), target=str(target)))
    return nodes, edges


def _position(node_id: Any, raw: Mapping[str, Any]) -> Position:
    position = raw.get("position") or {}
    if not isinstance(position, Mapping):
        msg = f"Canvas node {node_id!r} has a malformed position: {position!r}"
        raise ValueError(msg)
    try:
        return Position(float(position.get("x", 0)), float(position.get("y", 0)))
    except (TypeError, ValueError) as e:
        msg = f"Canvas node {node_id!r} has a non-numeric position: {dict(position)!r}"
        raise ValueError(msg) from e


def tree_to_canvas(tree: NodeTree, layout: LayoutResult) -> tuple[list[CanvasNode], list[CanvasEdge]]:
    """The canvas graph for a tree: laid-out nodes and one edge per parent link."""
    nodes = [
        CanvasNode(id=n.id, position=layout.positions.get(n.id, Position(0, 0)), content=n.content)
        for n in tree
    ]
    edges = [CanvasEdge(source=e.source, target=e.target) for e in layout.edges]
    return nodes, edges
