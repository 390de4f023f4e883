"""Canonical in-memory tree: a flat collection of nodes with parent links."""

from collections.abc import Iterable, Iterator
from dataclasses import replace

from mindmap_tree.errors import NodeNotFoundError
from mindmap_tree.models.node import Node


class NodeTree:
    """An immutable snapshot of a mind-map tree.

    Nodes are kept flat, keyed by id. Each node's depth is recomputed from
    its parent chain when the snapshot is built. Nodes on a parent cycle get
    depth 0 instead of raising, and a node hanging off a cycle counts its
    distance to it. Edits return a new snapshot.
    """

    def __init__(self, nodes: Iterable[Node] = ()) -> None:
        by_id: dict[str, Node] = {}
        for node in nodes:
            if node.id in by_id:
                msg = f"Duplicate node id: {node.id!r}"
                raise ValueError(msg)
            by_id[node.id] = node

        self._depths = _compute_depths(by_id)
        self._nodes = {
            node_id: node if node.depth == self._depths[node_id]
            else replace(node, depth=self._depths[node_id])
            for node_id, node in by_id.items()
        }
        self._position = {node_id: i for i, node_id in enumerate(self._nodes)}

        self._children: dict[str | None, list[Node]] = {}
        for node in self._nodes.values():
            self._children.setdefault(node.parent_id, []).append(node)
        for siblings in self._children.values():
            siblings.sort(key=lambda n: (n.sibling_order, self._position[n.id]))

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __iter__(self) -> Iterator[Node]:
        return iter(self._nodes.values())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NodeTree):
            return NotImplemented
        return self._nodes == other._nodes

    def __repr__(self) -> str:
        return f"NodeTree({len(self._nodes)} nodes)"

    @property
    def nodes(self) -> tuple[Node, ...]:
        return tuple(self._nodes.values())

    def get(self, node_id: str) -> Node:
        """Return the node with the given id."""
        try:
            return self._nodes[node_id]
        except KeyError:
            msg = f"Node {node_id!r} not found"
            raise NodeNotFoundError(msg) from None

    # --- Reads ---

    def depth_of(self, node_id: str) -> int:
        """Number of ancestors of the node (0 for root-level nodes and cycle members)."""
        self.get(node_id)
        return self._depths[node_id]

    def children_of(self, parent_id: str | None) -> tuple[Node, ...]:
        """Direct children of ``parent_id`` (root-level nodes for None), by sibling order."""
        return tuple(self._children.get(parent_id, ()))

    def root_nodes(self) -> tuple[Node, ...]:
        return self.children_of(None)

    def next_sibling_order(self, parent_id: str | None) -> int:
        """One past the highest sibling order under ``parent_id``, or 0."""
        siblings = self._children.get(parent_id)
        if not siblings:
            return 0
        return max(n.sibling_order for n in siblings) + 1

    def main_node(self) -> Node | None:
        """The canonical main node: the first root-level node, if any."""
        roots = self._children.get(None)
        return roots[0] if roots else None

    def is_protected_root(self, node_id: str) -> bool:
        main = self.main_node()
        return main is not None and main.id == node_id

    def subtree_ids(self, node_id: str) -> list[str]:
        """The node and all its transitive children, parents before children."""
        self.get(node_id)
        result: list[str] = []
        visited: set[str] = set()
        stack = [node_id]
        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)
            result.append(current)
            # Reversed so the first child is expanded first.
            stack.extend(child.id for child in reversed(self._children.get(current, ())))
        return result

    def find_problems(self) -> list[str]:
        """Describe every broken structural invariant (empty list when sound)."""
        problems: list[str] = []
        for node in self._nodes.values():
            if node.parent_id is not None and node.parent_id not in self._nodes:
                problems.append(f"{node.id}: parent {node.parent_id!r} does not exist")
            if node.sibling_order < 0:
                problems.append(f"{node.id}: negative sibling order {node.sibling_order}")
        for parent_id, siblings in self._children.items():
            orders = [n.sibling_order for n in siblings]
            if len(orders) != len(set(orders)):
                problems.append(f"{parent_id}: duplicate sibling orders {sorted(orders)}")
        reachable: set[str] = set()
        for root in self._children.get(None, ()):
            reachable.update(self.subtree_ids(root.id))
        for node_id in self._nodes.keys() - reachable:
            if self._nodes[node_id].parent_id in self._nodes:
                problems.append(f"{node_id}: ancestor chain never reaches a root-level node")
        return problems

    # --- Edits (each returns a new snapshot) ---

    def with_node(self, node: Node) -> "NodeTree":
        return NodeTree([*self._nodes.values(), node])

    def without(self, node_ids: Iterable[str]) -> "NodeTree":
        drop = set(node_ids)
        return NodeTree(n for n in self._nodes.values() if n.id not in drop)

    def with_content(self, node_id: str, content: str) -> "NodeTree":
        target = self.get(node_id)
        return NodeTree(
            replace(target, content=content) if n.id == node_id else n
            for n in self._nodes.values()
        )


def _compute_depths(nodes: dict[str, Node]) -> dict[str, int]:
    """Depth of every node, memoized along each ancestor chain.

    A parent reference that does not resolve ends the chain (the node counts
    as root-level). Every member of a parent cycle gets depth 0 and nodes
    leading into the cycle count up from it, whichever node the walk starts at.
    """
    depths: dict[str, int] = {}
    for start in nodes:
        if start in depths:
            continue
        chain: list[str] = []
        seen: set[str] = set()
        current = start
        base: int | None
        while True:
            if current in depths:
                base = depths[current]
                break
            if current in seen:
                base = None
                break
            seen.add(current)
            chain.append(current)
            parent_id = nodes[current].parent_id
            if parent_id is None or parent_id not in nodes:
                base = -1
                break
            current = parent_id

        if base is None:
            loop_start = chain.index(current)
            for node_id in chain[loop_start:]:
                depths[node_id] = 0
            chain = chain[:loop_start]
            base = 0
        for offset, node_id in enumerate(reversed(chain), start=1):
            depths[node_id] = base + offset
    return depths


def node_level_for_parent(tree: NodeTree, parent_id: str | None) -> int:
    """Depth a new child of ``parent_id`` would get (0 for None or an unknown parent)."""
    if parent_id is None or parent_id not in tree:
        return 0
    return tree.depth_of(parent_id) + 1
