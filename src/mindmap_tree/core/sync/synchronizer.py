"""Turn canvas graphs and stored rows into a canonical tree, and persist it."""

import asyncio
import time
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime

from loguru import logger

from mindmap_tree.config import SLOW_PERSIST_MS
from mindmap_tree.core.address.assigner import AddressAssigner
from mindmap_tree.core.layout.engine import LayoutEngine, LayoutResult
from mindmap_tree.core.tree.node_tree import NodeTree
from mindmap_tree.errors import (
    ConcurrentEditError,
    PersistenceError,
    RootProtectedError,
    StoreRowCountError,
)
from mindmap_tree.models.node import CanvasEdge, CanvasNode, Node, PersistedNode
from mindmap_tree.protocols import Statement, StoreProtocol

_INSERT_NODE_SQL = """INSERT INTO nodes
   (id, document_id, content, parent_node_id, sibling_order, depth)
   VALUES (?, ?, ?, ?, ?, ?)"""
_READ_VERSION_SQL = "SELECT version FROM mind_maps WHERE id = ?"


@dataclass(frozen=True)
class _Item:
    """A node being derived, with its position in the input."""

    index: int
    id: str
    content: str


# (index in input, node id, derived parent id, repaired) -> sort key among siblings
SortKey = Callable[[int, str, str | None, bool], tuple[int, int, int]]


def _new_id() -> str:
    return str(uuid.uuid4())


class TreeSynchronizer:
    """The single place where edits become a canonical tree and trees become rows.

    Holds the current tree of one document together with its layout and
    addresses, which are recomputed after every structural change.
    ``persist`` is the only method doing I/O.
    """

    def __init__(
        self,
        store: StoreProtocol | None = None,
        document_id: str | None = None,
        *,
        tree: NodeTree | None = None,
        id_factory: Callable[[], str] = _new_id,
        layout_engine: LayoutEngine | None = None,
        assigner: AddressAssigner | None = None,
    ) -> None:
        self._store = store
        self.document_id = document_id
        self._id_factory = id_factory
        self._layout_engine = layout_engine or LayoutEngine()
        self._assigner = assigner or AddressAssigner()
        self.tree = tree or NodeTree()
        self.layout = LayoutResult()
        self.addresses: dict[str, str] = {}
        self._refresh()

    def _set_tree(self, tree: NodeTree) -> NodeTree:
        self.tree = tree
        self._refresh()
        return tree

    def _refresh(self) -> None:
        self.layout = self._layout_engine.layout(self.tree)
        self.addresses = self._assigner.assign(self.tree)

    # --- Derivation ---

    def load(
        self,
        persisted_nodes: Iterable[PersistedNode],
        persisted_edges: Iterable[CanvasEdge],
    ) -> NodeTree:
        """Build the tree from stored rows and the edges between them.

        Parents come from the edges, never from the rows' own parent column.
        Stored sibling order is kept as the primary sort key and renumbered
        densely. Nodes that only became root-level because their parent link
        was dropped or cut sort after the genuine root-level nodes, so the
        stored main node keeps its place.
        """
        rows = list(persisted_nodes)
        stored_order: dict[str, int] = {}
        for row in rows:
            stored_order.setdefault(row.id, row.sibling_order)

        def sort_key(
            index: int, node_id: str, _parent_id: str | None, repaired: bool
        ) -> tuple[int, int, int]:
            return (1 if repaired else 0, stored_order[node_id], index)

        items = [_Item(index=i, id=row.id, content=row.content) for i, row in enumerate(rows)]
        tree = _derive_tree(items, list(persisted_edges), sort_key)
        logger.debug("Loaded tree with {} nodes", len(tree))
        return self._set_tree(tree)

    def reconcile(
        self,
        canvas_nodes: Iterable[CanvasNode],
        canvas_edges: Iterable[CanvasEdge],
    ) -> NodeTree:
        """Re-derive the tree from an edited canvas graph.

        A node keeps its previous place among siblings when it stays under the
        same parent; new or moved nodes go after them. Canvas order breaks ties.
        The main node stays first among root-level nodes.

        Raises:
            RootProtectedError: The canvas drops the main node but keeps others.
        """
        previous = self.tree
        main = previous.main_node()
        canvas_nodes = list(canvas_nodes)
        if main is not None and canvas_nodes and all(n.id != main.id for n in canvas_nodes):
            raise RootProtectedError(main.id)
        main_id = main.id if main is not None else None

        def sort_key(
            index: int, node_id: str, parent_id: str | None, _repaired: bool
        ) -> tuple[int, int, int]:
            if parent_id is None and node_id == main_id:
                return (-1, 0, index)
            if node_id in previous:
                before = previous.get(node_id)
                if before.parent_id == parent_id:
                    return (0, before.sibling_order, index)
            return (1, 0, index)

        items = [
            _Item(index=i, id=n.id, content=n.content) for i, n in enumerate(canvas_nodes)
        ]
        tree = _derive_tree(items, list(canvas_edges), sort_key)
        logger.debug("Reconciled canvas into {} nodes", len(tree))
        return self._set_tree(tree)

    # --- Incremental edits ---

    def insert_root_level(self, content: str) -> str:
        """Add a root-level node: the main node if the tree is empty, else a floating one."""
        return self._insert(None, content)

    def insert_child(self, parent_id: str, content: str) -> str:
        self.tree.get(parent_id)
        return self._insert(parent_id, content)

    def insert_sibling(self, node_id: str, content: str) -> str:
        return self._insert(self.tree.get(node_id).parent_id, content)

    def _insert(self, parent_id: str | None, content: str) -> str:
        node_id = self._id_factory()
        if node_id in self.tree:
            msg = f"Id factory returned an existing id: {node_id!r}"
            raise ValueError(msg)
        node = Node(
            id=node_id,
            parent_id=parent_id,
            sibling_order=self.tree.next_sibling_order(parent_id),
            content=content,
        )
        self._set_tree(self.tree.with_node(node))
        logger.debug("Inserted {} under {}", node_id, parent_id)
        return node_id

    def rename(self, node_id: str, content: str) -> None:
        self._set_tree(self.tree.with_content(node_id, content))
        logger.debug("Renamed {}", node_id)

    def delete_subtree(self, node_id: str) -> frozenset[str]:
        """Remove a node and all its descendants, returning the removed ids.

        Raises:
            RootProtectedError: ``node_id`` is the main node and other nodes exist.
        """
        self.tree.get(node_id)
        if self.tree.is_protected_root(node_id) and len(self.tree) > 1:
            raise RootProtectedError(node_id)
        removed = frozenset(self.tree.subtree_ids(node_id))
        self._set_tree(self.tree.without(removed))
        logger.debug("Deleted {} ({} nodes)", node_id, len(removed))
        return removed

    # --- Persistence ---

    async def persist(
        self,
        tree: NodeTree | None = None,
        *,
        expected_version: int | None = None,
    ) -> int:
        """Replace every stored row of the document with ``tree`` in one transaction.

        Defaults to the current tree. With ``expected_version``, the write only
        goes through if the stored document is still at that version. The
        in-memory tree is never touched.

        Returns:
            The document's new version.

        Raises:
            ConcurrentEditError: The stored version differs from ``expected_version``.
            PersistenceError: Anything else failed; nothing was written.
        """
        if self._store is None or self.document_id is None:
            msg = "TreeSynchronizer has no store/document to persist to"
            raise RuntimeError(msg)
        tree = self.tree if tree is None else tree
        document_id = self.document_id
        statements = [
            *build_replace_statements(document_id, tree, expected_version=expected_version),
            Statement(_READ_VERSION_SQL, (document_id,), fetch=True),
        ]

        logger.debug("Persisting {} nodes for document {}", len(tree), document_id)
        start = time.perf_counter()
        try:
            rows = await asyncio.to_thread(self._store.run_atomic, statements)
        except StoreRowCountError as e:
            logger.warning("Persist rejected for document {}: {}", document_id, e)
            if expected_version is not None:
                raise ConcurrentEditError(document_id, expected_version) from e
            msg = f"Document {document_id!r} not found"
            raise PersistenceError(msg) from e
        except Exception as e:
            logger.exception("Persist failed for document {}", document_id)
            msg = f"Failed to persist document {document_id!r}: {e}"
            raise PersistenceError(msg) from e

        elapsed_ms = (time.perf_counter() - start) * 1000
        if elapsed_ms > SLOW_PERSIST_MS:
            logger.warning("Persist of {} nodes took {:.0f}ms", len(tree), elapsed_ms)
        logger.info("Persisted {} nodes for document {}", len(tree), document_id)
        return int(rows[0][0]) if rows else 0


def build_replace_statements(
    document_id: str,
    tree: NodeTree,
    *,
    expected_version: int | None = None,
) -> list[Statement]:
    """Statements for the replace-all write: bump version, delete rows, insert rows."""
    now = datetime.now(tz=UTC).isoformat()
    if expected_version is None:
        bump = Statement(
            "UPDATE mind_maps SET version = version + 1, updated_at = ? WHERE id = ?",
            (now, document_id),
            expected_rowcount=1,
        )
    else:
        bump = Statement(
            "UPDATE mind_maps SET version = version + 1, updated_at = ? "
            "WHERE id = ? AND version = ?",
            (now, document_id, expected_version),
            expected_rowcount=1,
        )
    statements = [bump, Statement("DELETE FROM nodes WHERE document_id = ?", (document_id,))]

    rows = [
        (n.id, document_id, n.content, n.parent_id, n.sibling_order, n.depth)
        for n in nodes_parents_first(tree)
    ]
    if rows:
        statements.append(Statement(_INSERT_NODE_SQL, rows, many=True))
    return statements


def nodes_parents_first(tree: NodeTree) -> list[Node]:
    """Every node of the tree, each parent before its children."""
    ordered: list[Node] = []
    seen: set[str] = set()
    for root in tree.root_nodes():
        for node_id in tree.subtree_ids(root.id):
            seen.add(node_id)
            ordered.append(tree.get(node_id))
    ordered.extend(n for n in tree if n.id not in seen)
    return ordered


def _derive_tree(items: list[_Item], edges: list[CanvasEdge], sort_key: SortKey) -> NodeTree:
    """Shared derivation for load and reconcile.

    Repairs instead of raising: duplicate ids keep their first occurrence,
    dangling, self-referencing and duplicate incoming edges are dropped, and
    each cycle is broken by making one of its nodes root-level. Nodes left
    root-level by such a repair are flagged to ``sort_key``.
    """
    unique: dict[str, _Item] = {}
    for item in items:
        if item.id in unique:
            logger.warning("Dropping duplicate node {}", item.id)
            continue
        unique[item.id] = item

    parents: dict[str, str] = {}
    orphaned: set[str] = set()
    for edge in edges:
        if edge.source == edge.target:
            logger.warning("Dropping self-referencing edge on {}", edge.source)
            orphaned.add(edge.target)
        elif edge.source not in unique or edge.target not in unique:
            logger.warning("Dropping dangling edge {} -> {}", edge.source, edge.target)
            orphaned.add(edge.target)
        elif edge.target in parents:
            logger.warning(
                "Dropping extra incoming edge {} -> {} (parent is {})",
                edge.source, edge.target, parents[edge.target],
            )
        else:
            parents[edge.target] = edge.source

    for node_id in unique:
        seen = {node_id}
        current = parents.get(node_id)
        while current is not None and current not in seen:
            seen.add(current)
            current = parents.get(current)
        if current == node_id:
            logger.warning("Breaking parent cycle at {}", node_id)
            del parents[node_id]
            orphaned.add(node_id)
    repaired = {node_id for node_id in orphaned if node_id in unique and node_id not in parents}

    groups: dict[str | None, list[_Item]] = {}
    for item in unique.values():
        groups.setdefault(parents.get(item.id), []).append(item)

    nodes: list[Node] = []
    for parent_id, group in groups.items():
        group.sort(key=lambda it: sort_key(it.index, it.id, parent_id, it.id in repaired))
        nodes.extend(
            Node(id=it.id, parent_id=parent_id, sibling_order=order, content=it.content)
            for order, it in enumerate(group)
        )
    # Keep the input order of nodes in the snapshot.
    position = {node_id: i for i, node_id in enumerate(unique)}
    nodes.sort(key=lambda n: position[n.id])
    return NodeTree(nodes)
