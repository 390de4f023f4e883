"""Shared test fixtures."""

from collections.abc import Iterator

import pytest
from loguru import logger

from mindmap_tree.core.database.documents import create_document
from mindmap_tree.core.database.store import SqliteStore
from mindmap_tree.core.tree.node_tree import NodeTree
from mindmap_tree.models.node import Document, Node

# A -> B -> D
#   -> C
EXAMPLE_NODES = [
    Node(id="A", parent_id=None, sibling_order=0, content="Main idea"),
    Node(id="B", parent_id="A", sibling_order=0, content="First branch"),
    Node(id="C", parent_id="A", sibling_order=1, content="Second branch"),
    Node(id="D", parent_id="B", sibling_order=0, content="Detail"),
]


@pytest.fixture
def example_tree() -> NodeTree:
    return NodeTree(EXAMPLE_NODES)


@pytest.fixture
def store() -> Iterator[SqliteStore]:
    """Return an in-memory store with the schema created."""
    s = SqliteStore.in_memory()
    yield s
    s.close()


@pytest.fixture
def example_doc(store: SqliteStore) -> Document:
    """A stored document holding the example tree (version 0)."""
    doc = create_document(store, "Ideas", with_root=False, document_id="doc1")
    store.conn.executemany(
        "INSERT INTO nodes (id, document_id, content, parent_node_id, sibling_order, depth) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        [
            ("A", "doc1", "Main idea", None, 0, 0),
            ("B", "doc1", "First branch", "A", 0, 1),
            ("C", "doc1", "Second branch", "A", 1, 1),
            ("D", "doc1", "Detail", "B", 0, 2),
        ],
    )
    store.conn.commit()
    return doc


@pytest.fixture
def log_messages() -> Iterator[list[str]]:
    """Messages loguru emits at WARNING or above while the test runs."""
    messages: list[str] = []
    sink_id = logger.add(lambda m: messages.append(m.record["message"]), level="WARNING")
    yield messages
    logger.remove(sink_id)
