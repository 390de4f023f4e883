"""Document rows: create, list, resolve, delete, and read a document's nodes."""

import uuid
from datetime import UTC, datetime

from loguru import logger

from mindmap_tree.models.node import CanvasEdge, Document, PersistedNode
from mindmap_tree.protocols import Statement, StoreProtocol

_DOCUMENT_COLUMNS = (
    "m.id, m.title, m.version, "
    "(SELECT COUNT(*) FROM nodes n WHERE n.document_id = m.id), "
    "m.created_at, m.updated_at"
)


def _to_document(row: tuple) -> Document:
    return Document(
        id=row[0], title=row[1], version=row[2], node_count=row[3],
        created_at=row[4], updated_at=row[5],
    )


def create_document(
    store: StoreProtocol,
    title: str,
    *,
    with_root: bool = True,
    document_id: str | None = None,
) -> Document:
    """Create a document, by default with its main node (content = title).

    Args:
        store: Store to write to.
        title: Document title.
        with_root: Also create the main node, so the document opens non-empty.
        document_id: Explicit id (a fresh UUID when omitted).
    """
    doc_id = document_id or str(uuid.uuid4())
    now = datetime.now(tz=UTC).isoformat()
    statements = [
        Statement(
            "INSERT INTO mind_maps (id, title, version, created_at, updated_at) "
            "VALUES (?, ?, 0, ?, ?)",
            (doc_id, title, now, now),
        )
    ]
    if with_root:
        statements.append(
            Statement(
                "INSERT INTO nodes (id, document_id, content, parent_node_id, sibling_order, depth) "
                "VALUES (?, ?, ?, NULL, 0, 0)",
                (str(uuid.uuid4()), doc_id, title),
            )
        )
    store.run_atomic(statements)
    logger.info("Created document {} ({})", title, doc_id)
    return Document(
        id=doc_id,
        title=title,
        version=0,
        node_count=1 if with_root else 0,
        created_at=now,
        updated_at=now,
    )


def list_documents(store: StoreProtocol) -> list[Document]:
    rows = store.query(f"SELECT {_DOCUMENT_COLUMNS} FROM mind_maps m ORDER BY m.title, m.id")
    return [_to_document(r) for r in rows]


def get_document(store: StoreProtocol, document_id: str) -> Document | None:
    rows = store.query(f"SELECT {_DOCUMENT_COLUMNS} FROM mind_maps m WHERE m.id = ?", (document_id,))
    return _to_document(rows[0]) if rows else None


def resolve_document(store: StoreProtocol, ref: str) -> str | None:
    """Resolve a document id or title to an id (ids win over titles)."""
    rows = store.query(
        "SELECT id FROM mind_maps WHERE id = ? OR title = ? "
        "ORDER BY CASE WHEN id = ? THEN 0 ELSE 1 END, created_at LIMIT 1",
        (ref, ref, ref),
    )
    return rows[0][0] if rows else None


def delete_document(store: StoreProtocol, document_id: str) -> bool:
    """Delete a document and (by cascade) its nodes. Returns False if it did not exist."""
    if get_document(store, document_id) is None:
        return False
    store.execute("DELETE FROM mind_maps WHERE id = ?", (document_id,))
    logger.info("Deleted document {}", document_id)
    return True


def fetch_rows(
    store: StoreProtocol, document_id: str
) -> tuple[list[PersistedNode], list[CanvasEdge]]:
    """Read a document's node rows and the parent edges they imply."""
    rows = store.query(
        "SELECT id, document_id, content, parent_node_id, sibling_order, depth "
        "FROM nodes WHERE document_id = ? ORDER BY depth, sibling_order, id",
        (document_id,),
    )
    nodes = [
        PersistedNode(
            id=r[0], document_id=r[1], content=r[2], parent_node_id=r[3],
            sibling_order=r[4], depth=r[5],
        )
        for r in rows
    ]
    edges = [
        CanvasEdge(source=n.parent_node_id, target=n.id)
        for n in nodes
        if n.parent_node_id is not None
    ]
    return nodes, edges
