"""MCP server exposing mind-map reading and editing tools.

Nodes are addressed by their path addresses (``root``, ``root-0-1``,
``float-0``), never by internal ids.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger
from mcp.server.fastmcp import Context, FastMCP

from mindmap_tree.config import DATABASE_FILENAME, resolve_data_directory
from mindmap_tree.core.address.assigner import resolve_address
from mindmap_tree.core.database.documents import (
    create_document,
    fetch_rows,
    get_document,
    list_documents,
    resolve_document,
)
from mindmap_tree.core.database.store import SqliteStore
from mindmap_tree.core.sync.canvas import build_canvas_view, parse_canvas
from mindmap_tree.core.sync.synchronizer import TreeSynchronizer
from mindmap_tree.core.tree.hierarchy import build_hierarchy, hierarchy_to_dict
from mindmap_tree.core.tree.markdown import render_tree_as_markdown
from mindmap_tree.errors import (
    ConcurrentEditError,
    InvalidAddressError,
    MindMapError,
    NodeNotFoundError,
    PersistenceError,
    RootProtectedError,
)
from mindmap_tree.models.node import Document
from mindmap_tree.protocols import StoreProtocol


def _error(kind: str, message: str) -> dict[str, Any]:
    return {"success": False, "error": message, "kind": kind}


def _error_from(exc: MindMapError) -> dict[str, Any]:
    if isinstance(exc, RootProtectedError):
        return _error("root_protected", str(exc))
    if isinstance(exc, ConcurrentEditError):
        return _error("concurrent_edit", str(exc))
    if isinstance(exc, PersistenceError):
        return _error("persistence", str(exc))
    if isinstance(exc, InvalidAddressError):
        return _error("invalid_address", str(exc))
    if isinstance(exc, NodeNotFoundError):
        return _error("not_found", str(exc))
    return _error("error", str(exc))


def _open_document(
    store: StoreProtocol, document: str
) -> tuple[TreeSynchronizer, Document] | dict[str, Any]:
    """Load a document into a synchronizer, or return an error dict."""
    doc_id = resolve_document(store, document)
    doc = get_document(store, doc_id) if doc_id else None
    if doc is None:
        return _error("not_found", f"Document '{document}' not found.")
    sync = TreeSynchronizer(store, doc.id)
    nodes, edges = fetch_rows(store, doc.id)
    sync.load(nodes, edges)
    return sync, doc


async def _save(
    sync: TreeSynchronizer, doc: Document, expected_version: int | None
) -> int:
    """Persist, guarding against writes that happened since the document was read."""
    return await sync.persist(
        expected_version=doc.version if expected_version is None else expected_version
    )


# --- Core functions (testable without MCP context) ---


def mindmap_list_documents(store: StoreProtocol) -> dict[str, Any]:
    """List all mind-map documents with metadata."""
    docs = list_documents(store)
    return {
        "documents": [
            {
                "id": d.id,
                "title": d.title,
                "version": d.version,
                "node_count": d.node_count,
                "updated_at": d.updated_at,
            }
            for d in docs
        ],
        "count": len(docs),
        "total_nodes": sum(d.node_count for d in docs),
    }


def mindmap_create_document(store: StoreProtocol, *, title: str) -> dict[str, Any]:
    """Create a document with its main node."""
    if not title.strip():
        return _error("invalid", "Title must not be empty.")
    doc = create_document(store, title)
    return {"success": True, "document_id": doc.id, "title": doc.title, "address": "root"}


def mindmap_read(
    store: StoreProtocol,
    *,
    document: str,
    address: str | None = None,
    max_depth: int | None = None,
    output_format: str = "markdown",
) -> dict[str, Any]:
    """Read a document, or the subtree at ``address``, as markdown or JSON.

    Args:
        document: Document title or id.
        address: Node address to start from (None = whole document).
        max_depth: Max levels below the start to include (None = unlimited).
        output_format: "markdown" or "json".
    """
    opened = _open_document(store, document)
    if isinstance(opened, dict):
        return opened
    sync, doc = opened

    try:
        start_id = resolve_address(sync.tree, address) if address else None
    except MindMapError as e:
        return _error_from(e)

    result: dict[str, Any] = {
        "document_id": doc.id,
        "title": doc.title,
        "version": doc.version,
        "node_count": len(sync.tree),
    }
    if output_format == "markdown":
        result["content"] = render_tree_as_markdown(
            sync.tree, sync.addresses, start_id=start_id, max_depth=max_depth
        )
        return result

    hierarchy = build_hierarchy(sync.tree, sync.addresses, start_id=start_id, max_depth=max_depth)
    result["nodes"] = [hierarchy_to_dict(entry, sync.tree) for entry in hierarchy]
    return result


def mindmap_get_layout(store: StoreProtocol, *, document: str) -> dict[str, Any]:
    """Canvas positions, addresses and connectors for every node of a document."""
    opened = _open_document(store, document)
    if isinstance(opened, dict):
        return opened
    sync, doc = opened
    view = build_canvas_view(sync.tree, sync.layout, sync.addresses)
    return {"document_id": doc.id, "version": doc.version, **view.to_dict()}


# --- Write core functions ---


async def mindmap_add_node(
    store: StoreProtocol,
    *,
    document: str,
    content: str,
    address: str | None = None,
    relation: str = "child",
    expected_version: int | None = None,
) -> dict[str, Any]:
    """Add a node and save the document.

    Args:
        document: Document title or id.
        content: Text of the new node.
        address: Parent address (relation "child") or sibling address
            (relation "sibling"); unused for "floating".
        relation: "child", "sibling" or "floating".
        expected_version: Fail if the stored document is not at this version.
    """
    if relation not in ("child", "sibling", "floating"):
        return _error("invalid", f"Unknown relation '{relation}'.")
    if relation != "floating" and not address:
        return _error("invalid", f"An address is required for relation '{relation}'.")

    opened = _open_document(store, document)
    if isinstance(opened, dict):
        return opened
    sync, doc = opened

    try:
        if relation == "floating":
            node_id = sync.insert_root_level(content)
        elif relation == "child":
            node_id = sync.insert_child(resolve_address(sync.tree, address or ""), content)
        else:
            node_id = sync.insert_sibling(resolve_address(sync.tree, address or ""), content)
        version = await _save(sync, doc, expected_version)
    except MindMapError as e:
        return _error_from(e)

    return {
        "success": True,
        "node_id": node_id,
        "address": sync.addresses[node_id],
        "version": version,
    }


async def mindmap_rename_node(
    store: StoreProtocol,
    *,
    document: str,
    address: str,
    content: str,
    expected_version: int | None = None,
) -> dict[str, Any]:
    """Replace a node's text and save the document."""
    opened = _open_document(store, document)
    if isinstance(opened, dict):
        return opened
    sync, doc = opened

    try:
        node_id = resolve_address(sync.tree, address)
        sync.rename(node_id, content)
        version = await _save(sync, doc, expected_version)
    except MindMapError as e:
        return _error_from(e)
    return {"success": True, "address": address, "version": version}


async def mindmap_delete_node(
    store: StoreProtocol,
    *,
    document: str,
    address: str,
    expected_version: int | None = None,
) -> dict[str, Any]:
    """Delete the subtree at ``address`` and save the document.

    The main node (``root``) can only be deleted when it is the last node.
    The response names the node to select next: the deleted node's parent,
    or the main node when a root-level node was deleted.
    """
    opened = _open_document(store, document)
    if isinstance(opened, dict):
        return opened
    sync, doc = opened

    try:
        node_id = resolve_address(sync.tree, address)
        parent_id = sync.tree.get(node_id).parent_id
        removed = sync.delete_subtree(node_id)
        version = await _save(sync, doc, expected_version)
    except MindMapError as e:
        return _error_from(e)

    if parent_id is not None:
        selected = sync.addresses.get(parent_id)
    else:
        main = sync.tree.main_node()
        selected = sync.addresses[main.id] if main else None
    return {
        "success": True,
        "removed": len(removed),
        "removed_ids": sorted(removed),
        "selected": selected,
        "version": version,
    }


async def mindmap_reconcile(
    store: StoreProtocol,
    *,
    document: str,
    nodes: list[dict[str, Any]],
    edges: list[dict[str, Any]],
    expected_version: int | None = None,
) -> dict[str, Any]:
    """Replace a document with an edited canvas graph and save it.

    Args:
        document: Document title or id.
        nodes: Canvas nodes ``{id, position: {x, y}, content}``.
        edges: Canvas edges ``{source, target}``.
        expected_version: Fail if the stored document is not at this version.
    """
    opened = _open_document(store, document)
    if isinstance(opened, dict):
        return opened
    sync, doc = opened

    try:
        canvas_nodes, canvas_edges = parse_canvas(nodes, edges)
    except ValueError as e:
        return _error("invalid", str(e))
    try:
        sync.reconcile(canvas_nodes, canvas_edges)
        version = await _save(sync, doc, expected_version)
    except MindMapError as e:
        return _error_from(e)

    view = build_canvas_view(sync.tree, sync.layout, sync.addresses)
    return {"success": True, "version": version, **view.to_dict()}


# --- MCP Server Setup ---


@dataclass
class ServerContext:
    """Shared resources for the MCP server lifetime."""

    store: SqliteStore
    data_dir: Path
    # One write at a time: persists of the same document must not overlap.
    write_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


@asynccontextmanager
async def server_lifespan(_server: FastMCP) -> AsyncIterator[ServerContext]:
    """Open database on startup, close on shutdown."""
    data_dir = resolve_data_directory()
    data_dir.mkdir(parents=True, exist_ok=True)
    store = SqliteStore.open(data_dir / DATABASE_FILENAME)
    logger.info("Serving mind maps from {}", data_dir)
    try:
        yield ServerContext(store=store, data_dir=data_dir)
    finally:
        store.close()


mcp_server = FastMCP(
    "mindmap-tree",
    instructions="""\
Mind maps are trees of short text nodes. Every node has an address:

- `root` is the document's main node.
- `float-0`, `float-1`, ... are other top-level (floating) nodes.
- `<parent>-<n>` is the n-th child (0-based) of `<parent>`, e.g. `root-0-2`.

Addresses are positional: deleting or adding a node shifts the addresses of
later siblings. Re-read the document after structural edits before using
addresses again.

## Tips
- Use mindmap_read_tool first to see the outline with addresses.
- Pass expected_version (from the last read) to edits to avoid overwriting
  someone else's changes.
- `root` cannot be deleted while other nodes exist.
""",
    lifespan=server_lifespan,
)


def _ctx(mcp_ctx: Context) -> ServerContext:
    return mcp_ctx.request_context.lifespan_context  # type: ignore[return-value]


# --- MCP Tool Wrappers ---


@mcp_server.tool()
async def mindmap_list_documents_tool(ctx: Context) -> dict[str, Any]:
    """List all mind-map documents with node counts and versions."""
    return mindmap_list_documents(_ctx(ctx).store)


@mcp_server.tool()
async def mindmap_create_document_tool(ctx: Context, title: str) -> dict[str, Any]:
    """Create a new mind map whose main node (`root`) carries the title.

    Args:
        title: Document title.
    """
    async with _ctx(ctx).write_lock:
        return mindmap_create_document(_ctx(ctx).store, title=title)


@mcp_server.tool()
async def mindmap_read_tool(
    ctx: Context,
    document: str,
    address: str | None = None,
    max_depth: int | None = None,
    output_format: str = "markdown",
) -> dict[str, Any]:
    """Read a mind map as a markdown outline (with addresses) or nested JSON.

    Args:
        document: Document title or id.
        address: Start at this node (None = whole document).
        max_depth: Max levels below the start (None = unlimited).
        output_format: "markdown" or "json".
    """
    return mindmap_read(
        _ctx(ctx).store,
        document=document,
        address=address,
        max_depth=max_depth,
        output_format=output_format,
    )


@mcp_server.tool()
async def mindmap_get_layout_tool(ctx: Context, document: str) -> dict[str, Any]:
    """Get canvas positions, addresses and connectors for every node.

    Args:
        document: Document title or id.
    """
    return mindmap_get_layout(_ctx(ctx).store, document=document)


@mcp_server.tool()
async def mindmap_add_node_tool(
    ctx: Context,
    document: str,
    content: str,
    address: str | None = None,
    relation: str = "child",
    expected_version: int | None = None,
) -> dict[str, Any]:
    """Add a node as a child of, or sibling after, the node at `address`.

    Use relation="floating" (no address) for a new top-level node.

    Args:
        document: Document title or id.
        content: Text of the new node.
        address: Parent (child) or sibling address.
        relation: "child", "sibling" or "floating".
        expected_version: Version from the last read, to detect concurrent edits.
    """
    async with _ctx(ctx).write_lock:
        return await mindmap_add_node(
            _ctx(ctx).store,
            document=document,
            content=content,
            address=address,
            relation=relation,
            expected_version=expected_version,
        )


@mcp_server.tool()
async def mindmap_rename_node_tool(
    ctx: Context,
    document: str,
    address: str,
    content: str,
    expected_version: int | None = None,
) -> dict[str, Any]:
    """Replace the text of the node at `address`.

    Args:
        document: Document title or id.
        address: Node address.
        content: New text.
        expected_version: Version from the last read, to detect concurrent edits.
    """
    async with _ctx(ctx).write_lock:
        return await mindmap_rename_node(
            _ctx(ctx).store,
            document=document,
            address=address,
            content=content,
            expected_version=expected_version,
        )


@mcp_server.tool()
async def mindmap_delete_node_tool(
    ctx: Context,
    document: str,
    address: str,
    expected_version: int | None = None,
) -> dict[str, Any]:
    """Delete the node at `address` together with all of its descendants.

    Args:
        document: Document title or id.
        address: Node address.
        expected_version: Version from the last read, to detect concurrent edits.
    """
    async with _ctx(ctx).write_lock:
        return await mindmap_delete_node(
            _ctx(ctx).store,
            document=document,
            address=address,
            expected_version=expected_version,
        )


@mcp_server.tool()
async def mindmap_reconcile_tool(
    ctx: Context,
    document: str,
    nodes: list[dict[str, Any]],
    edges: list[dict[str, Any]],
    expected_version: int | None = None,
) -> dict[str, Any]:
    """Replace a mind map with an edited canvas graph.

    Parents, depths and sibling order are re-derived from the edges.

    Args:
        document: Document title or id.
        nodes: Canvas nodes `{id, position: {x, y}, content}`.
        edges: Canvas edges `{source, target}`.
        expected_version: Version from the last read, to detect concurrent edits.
    """
    async with _ctx(ctx).write_lock:
        return await mindmap_reconcile(
            _ctx(ctx).store,
            document=document,
            nodes=nodes,
            edges=edges,
            expected_version=expected_version,
        )


def run_mcp_server() -> None:
    """Run the MCP server with stdio transport."""
    from mindmap_tree.logging_config import configure_logging

    configure_logging(quiet=True)
    mcp_server.run(transport="stdio")
