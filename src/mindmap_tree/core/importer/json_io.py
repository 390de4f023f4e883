"""Export mind-map documents to JSON and parse them back."""

import uuid
from datetime import UTC, datetime
from typing import Any

from mindmap_tree.config import EXPORT_FORMAT_VERSION
from mindmap_tree.core.layout.engine import LayoutResult
from mindmap_tree.core.sync.synchronizer import nodes_parents_first
from mindmap_tree.core.tree.node_tree import NodeTree
from mindmap_tree.models.node import CanvasEdge, Document, PersistedNode


def export_document(
    document: Document,
    tree: NodeTree,
    *,
    layout: LayoutResult | None = None,
) -> dict[str, Any]:
    """Serialize a document and its tree.

    Node order is parents-first, so an importer can insert rows as it reads
    them. ``layout`` positions are included when given.
    """
    data: dict[str, Any] = {
        "version": EXPORT_FORMAT_VERSION,
        "mindmap": {
            "id": document.id,
            "title": document.title,
            "created_at": document.created_at,
            "updated_at": document.updated_at,
        },
        "nodes": [
            {
                "id": n.id,
                "content": n.content,
                "parent_node_id": n.parent_id,
                "sort_order": n.sibling_order,
                "depth": n.depth,
            }
            for n in nodes_parents_first(tree)
        ],
        "exported_at": datetime.now(tz=UTC).isoformat(),
    }
    if layout is not None:
        data["layout"] = {
            "nodes": [
                {"id": node_id, "position": {"x": pos.x, "y": pos.y}}
                for node_id, pos in layout.positions.items()
            ]
        }
    return data


def parse_export_data(
    data: dict[str, Any], *, document_id: str = "", remap_ids: bool = False
) -> tuple[str, list[PersistedNode], list[CanvasEdge]]:
    """Parse exported JSON into a title, node rows and parent edges.

    The result is meant for ``TreeSynchronizer.load``, which repairs dangling
    parents and cycles. Depth in the file is ignored.

    Args:
        data: Exported document dict.
        document_id: Id of the document the rows will belong to.
        remap_ids: Give every node a fresh UUID (parent links follow), so a
            file can be imported next to the document it was exported from.

    Returns:
        Tuple of (title, node rows, parent edges).
    """
    if "nodes" not in data or not isinstance(data["nodes"], list):
        msg = "Export data has no 'nodes' list"
        raise ValueError(msg)

    title = str((data.get("mindmap") or {}).get("title", "Untitled"))
    for i, raw in enumerate(data["nodes"]):
        if "id" not in raw:
            msg = f"Node #{i} has no id"
            raise ValueError(msg)

    new_ids: dict[str, str] = {}
    if remap_ids:
        for raw in data["nodes"]:
            new_ids.setdefault(str(raw["id"]), str(uuid.uuid4()))

    nodes: list[PersistedNode] = []
    edges: list[CanvasEdge] = []
    for i, raw in enumerate(data["nodes"]):
        node_id = str(raw["id"])
        node_id = new_ids.get(node_id, node_id)
        parent_id = raw.get("parent_node_id")
        if parent_id is not None:
            parent_id = new_ids.get(str(parent_id), str(parent_id))
        nodes.append(
            PersistedNode(
                id=node_id,
                document_id=document_id,
                content=str(raw.get("content", "")),
                parent_node_id=parent_id,
                sibling_order=int(raw.get("sort_order", i)),
                depth=0,
            )
        )
        if parent_id:
            edges.append(CanvasEdge(source=parent_id, target=node_id))
    return title, nodes, edges
