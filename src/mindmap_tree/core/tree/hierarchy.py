"""Nested views over a flat NodeTree."""

from collections.abc import Mapping
from typing import Any

from mindmap_tree.core.tree.node_tree import NodeTree
from mindmap_tree.models.node import NodeHierarchy


def build_hierarchy(
    tree: NodeTree,
    addresses: Mapping[str, str],
    *,
    start_id: str | None = None,
    max_depth: int | None = None,
) -> list[NodeHierarchy]:
    """Nest the tree under its root-level nodes, or under ``start_id``.

    ``max_depth`` limits how many levels below the start are expanded;
    nodes at the boundary are returned with empty children.
    """
    tops = tree.root_nodes() if start_id is None else (tree.get(start_id),)

    # Pre-order walk, then build bottom-up so deep trees need no recursion.
    order: list[tuple[str, int]] = []
    visited: set[str] = set()
    stack = [(top.id, 0) for top in reversed(tops)]
    while stack:
        node_id, level = stack.pop()
        if node_id in visited:
            continue
        visited.add(node_id)
        order.append((node_id, level))
        if max_depth is None or level < max_depth:
            stack.extend((c.id, level + 1) for c in reversed(tree.children_of(node_id)))

    built: dict[str, NodeHierarchy] = {}
    for node_id, _level in reversed(order):
        node = tree.get(node_id)
        built[node_id] = NodeHierarchy(
            node=node,
            children=tuple(built[c.id] for c in tree.children_of(node_id) if c.id in built),
            level=node.depth,
            address=addresses.get(node_id, node_id),
        )
    return [built[top.id] for top in tops]


def hierarchy_to_dict(entry: NodeHierarchy, tree: NodeTree) -> dict[str, Any]:
    """JSON-ready form of a hierarchy entry.

    ``child_count`` is always present; ``children`` only when expanded.
    """
    result: dict[str, Any] = {
        "id": entry.node.id,
        "address": entry.address,
        "content": entry.node.content,
        "depth": entry.level,
        "child_count": len(tree.children_of(entry.node.id)),
    }
    if entry.children or not result["child_count"]:
        result["children"] = [hierarchy_to_dict(c, tree) for c in entry.children]
    return result
