"""Render mind-map trees as markdown outlines."""

import io
from collections.abc import Mapping

from mindmap_tree.core.tree.hierarchy import build_hierarchy
from mindmap_tree.core.tree.node_tree import NodeTree
from mindmap_tree.models.node import NodeHierarchy


def render_tree_as_markdown(
    tree: NodeTree,
    addresses: Mapping[str, str],
    *,
    start_id: str | None = None,
    max_depth: int | None = None,
    show_addresses: bool = True,
) -> str:
    """Render the whole tree, or the subtree at ``start_id``, as an indented list.

    Args:
        tree: The tree to render.
        addresses: Node id -> address, as produced by AddressAssigner.
        start_id: Node to start from (None = every root-level node).
        max_depth: Max levels below the start to include (None = unlimited).
        show_addresses: Prefix each item with its address.

    Returns:
        Markdown string with bullet-list hierarchy.
    """
    out = io.StringIO()
    stack: list[tuple[NodeHierarchy, int]] = [
        (entry, 0)
        for entry in reversed(
            build_hierarchy(tree, addresses, start_id=start_id, max_depth=max_depth)
        )
    ]
    while stack:
        entry, relative_depth = stack.pop()
        indent = "    " * relative_depth
        prefix = f"- `{entry.address}` " if show_addresses else "- "

        lines = entry.node.content.split("\n")
        out.write(f"{indent}{prefix}{lines[0]}\n")
        for line in lines[1:]:
            out.write(f"{indent}  {line}\n")

        # Truncation indicator when children are cut off by max_depth
        child_count = len(tree.children_of(entry.node.id))
        if child_count and not entry.children:
            child_indent = "    " * (relative_depth + 1)
            noun = "child" if child_count == 1 else "children"
            out.write(f"{child_indent}- ... ({child_count} more {noun}, address={entry.address})\n")

        stack.extend((child, relative_depth + 1) for child in reversed(entry.children))

    return out.getvalue()
