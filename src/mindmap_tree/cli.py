"""CLI for mind-map documents (outline, layout, edits, JSON exchange, MCP server)."""

import asyncio
import json
from pathlib import Path
from typing import Annotated, Any

import typer
from loguru import logger

from mindmap_tree.config import DATABASE_FILENAME, resolve_data_directory
from mindmap_tree.core.database.documents import (
    create_document,
    delete_document,
    fetch_rows,
    get_document,
    resolve_document,
)
from mindmap_tree.core.database.store import SqliteStore
from mindmap_tree.core.importer.json_io import export_document, parse_export_data
from mindmap_tree.core.sync.synchronizer import TreeSynchronizer
from mindmap_tree.errors import PersistenceError
from mindmap_tree.logging_config import configure_logging
from mindmap_tree.mcp.server import (
    mindmap_add_node,
    mindmap_create_document,
    mindmap_delete_node,
    mindmap_get_layout,
    mindmap_list_documents,
    mindmap_read,
    mindmap_rename_node,
)

app = typer.Typer(help="Mind maps: browse, lay out and edit trees of ideas.")

# Error kind -> exit code; anything unlisted exits with 1.
_EXIT_CODES = {"persistence": 2, "concurrent_edit": 2}

DataDirOption = Annotated[
    Path | None,
    typer.Option("--data-dir", "-d", help="Database directory"),
]
DocumentArgument = Annotated[str, typer.Argument(help="Document title or id")]
AddressArgument = Annotated[str, typer.Argument(help="Node address, e.g. root-0-1")]
ExpectedVersionOption = Annotated[
    int | None,
    typer.Option("--expected-version", help="Fail if the document changed since this version"),
]


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    configure_logging(verbose=verbose)


def _db_path(data_dir: Path | None) -> Path:
    return (data_dir or resolve_data_directory()) / DATABASE_FILENAME


def _open_store(data_dir: Path | None, *, create: bool = False) -> SqliteStore:
    """Open the database, raising if it doesn't exist (unless ``create``)."""
    db_path = _db_path(data_dir)
    if not db_path.exists():
        if not create:
            logger.error("Database not found: {}. Run 'new' first.", db_path)
            raise typer.Exit(1)
        db_path.parent.mkdir(parents=True, exist_ok=True)
    return SqliteStore.open(db_path)


def _finish(result: dict[str, Any], output_json: bool = False) -> dict[str, Any]:
    """Exit with the right code on an error result; echo JSON when asked."""
    if "error" in result:
        typer.echo(f"Error: {result['error']}", err=True)
        raise typer.Exit(_EXIT_CODES.get(result.get("kind", ""), 1))
    if output_json:
        typer.echo(json.dumps(result, indent=2))
    return result


@app.command()
def new(
    title: str = typer.Argument(..., help="Document title"),
    data_dir: DataDirOption = None,
) -> None:
    """Create a new mind map with a main node."""
    store = _open_store(data_dir, create=True)
    try:
        result = _finish(mindmap_create_document(store, title=title))
        typer.echo(f"Created '{result['title']}'  [id={result['document_id']}]")
    finally:
        store.close()


@app.command()
def documents(
    data_dir: DataDirOption = None,
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """List all mind maps."""
    store = _open_store(data_dir)
    try:
        result = _finish(mindmap_list_documents(store), output_json)
        if output_json:
            return
        typer.echo(f"{result['count']} documents:\n")
        for doc in result["documents"]:
            typer.echo(
                f"  {doc['title']} - {doc['node_count']} nodes, "
                f"v{doc['version']}  [id={doc['id']}]"
            )
    finally:
        store.close()


@app.command()
def show(
    document: DocumentArgument,
    address: Annotated[
        str | None,
        typer.Option("--address", "-a", help="Start at this node"),
    ] = None,
    max_depth: Annotated[
        int | None,
        typer.Option("--max-depth", "-m", help="Max depth levels to render"),
    ] = None,
    data_dir: DataDirOption = None,
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Show a mind map as an outline with node addresses."""
    store = _open_store(data_dir)
    try:
        result = _finish(
            mindmap_read(
                store,
                document=document,
                address=address,
                max_depth=max_depth,
                output_format="json" if output_json else "markdown",
            ),
            output_json,
        )
        if not output_json:
            typer.echo(f"# {result['title']}  (v{result['version']})\n")
            typer.echo(result["content"], nl=False)
    finally:
        store.close()


@app.command()
def layout(
    document: DocumentArgument,
    data_dir: DataDirOption = None,
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Show computed canvas positions for every node."""
    store = _open_store(data_dir)
    try:
        result = _finish(mindmap_get_layout(store, document=document), output_json)
        if output_json:
            return
        for node in result["nodes"]:
            marker = "*" if node["selected"] else " "
            pos = node["position"]
            typer.echo(
                f"{marker} {node['address']:<16} ({pos['x']:>7.1f}, {pos['y']:>7.1f})  "
                f"{node['content'][:60]}"
            )
        typer.echo(f"\n{len(result['nodes'])} nodes, {len(result['edges'])} edges")
    finally:
        store.close()


def _add(
    data_dir: Path | None,
    *,
    document: str,
    content: str,
    address: str | None,
    relation: str,
    expected_version: int | None,
) -> None:
    store = _open_store(data_dir)
    try:
        result = _finish(
            asyncio.run(
                mindmap_add_node(
                    store,
                    document=document,
                    content=content,
                    address=address,
                    relation=relation,
                    expected_version=expected_version,
                )
            )
        )
        typer.echo(f"Added {result['address']}  (v{result['version']})")
    finally:
        store.close()


@app.command()
def add(
    document: DocumentArgument,
    address: Annotated[str, typer.Argument(help="Parent node address")],
    content: str = typer.Argument(..., help="Text of the new node"),
    data_dir: DataDirOption = None,
    expected_version: ExpectedVersionOption = None,
) -> None:
    """Add a child node as the last child of ADDRESS."""
    _add(
        data_dir,
        document=document,
        content=content,
        address=address,
        relation="child",
        expected_version=expected_version,
    )


@app.command(name="add-sibling")
def add_sibling(
    document: DocumentArgument,
    address: AddressArgument,
    content: str = typer.Argument(..., help="Text of the new node"),
    data_dir: DataDirOption = None,
    expected_version: ExpectedVersionOption = None,
) -> None:
    """Add a node under the same parent as ADDRESS, after the existing siblings."""
    _add(
        data_dir,
        document=document,
        content=content,
        address=address,
        relation="sibling",
        expected_version=expected_version,
    )


@app.command(name="add-floating")
def add_floating(
    document: DocumentArgument,
    content: str = typer.Argument(..., help="Text of the new node"),
    data_dir: DataDirOption = None,
    expected_version: ExpectedVersionOption = None,
) -> None:
    """Add a top-level node that is not attached to the main node."""
    _add(
        data_dir,
        document=document,
        content=content,
        address=None,
        relation="floating",
        expected_version=expected_version,
    )


@app.command()
def rename(
    document: DocumentArgument,
    address: AddressArgument,
    content: str = typer.Argument(..., help="New text"),
    data_dir: DataDirOption = None,
    expected_version: ExpectedVersionOption = None,
) -> None:
    """Replace the text of a node."""
    store = _open_store(data_dir)
    try:
        result = _finish(
            asyncio.run(
                mindmap_rename_node(
                    store,
                    document=document,
                    address=address,
                    content=content,
                    expected_version=expected_version,
                )
            )
        )
        typer.echo(f"Renamed {result['address']}  (v{result['version']})")
    finally:
        store.close()


@app.command()
def delete(
    document: DocumentArgument,
    address: AddressArgument,
    data_dir: DataDirOption = None,
    expected_version: ExpectedVersionOption = None,
) -> None:
    """Delete a node and all of its descendants."""
    store = _open_store(data_dir)
    try:
        result = _finish(
            asyncio.run(
                mindmap_delete_node(
                    store,
                    document=document,
                    address=address,
                    expected_version=expected_version,
                )
            )
        )
        typer.echo(f"Deleted {result['removed']} nodes  (v{result['version']})")
        if result["selected"]:
            typer.echo(f"Selected: {result['selected']}")
    finally:
        store.close()


@app.command(name="export")
def export_cmd(
    document: DocumentArgument,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write to this file instead of stdout"),
    ] = None,
    with_layout: bool = typer.Option(False, "--layout", "-l", help="Include node positions"),
    data_dir: DataDirOption = None,
) -> None:
    """Export a mind map as JSON."""
    store = _open_store(data_dir)
    try:
        doc_id = resolve_document(store, document)
        doc = get_document(store, doc_id) if doc_id else None
        if doc is None:
            typer.echo(f"Document '{document}' not found.", err=True)
            raise typer.Exit(1)
        sync = TreeSynchronizer(store, doc.id)
        sync.load(*fetch_rows(store, doc.id))
        data = export_document(doc, sync.tree, layout=sync.layout if with_layout else None)
        text = json.dumps(data, indent=2, ensure_ascii=False)
        if output:
            output.write_text(text + "\n", encoding="utf-8")
            typer.echo(f"Exported {len(sync.tree)} nodes to {output}")
        else:
            typer.echo(text)
    finally:
        store.close()


@app.command(name="import")
def import_cmd(
    source: Path = typer.Argument(..., help="JSON file written by 'export'"),
    title: Annotated[
        str | None,
        typer.Option("--title", "-t", help="Title for the new document"),
    ] = None,
    data_dir: DataDirOption = None,
) -> None:
    """Import an exported JSON file as a new mind map."""
    if not source.exists():
        logger.error("File not found: {}", source)
        raise typer.Exit(1)
    try:
        data = json.loads(source.read_text(encoding="utf-8"))
        file_title, nodes, edges = parse_export_data(data, remap_ids=True)
    except (json.JSONDecodeError, ValueError, TypeError, AttributeError) as e:
        logger.error("Cannot read {}: {}", source, e)
        raise typer.Exit(1) from e

    store = _open_store(data_dir, create=True)
    try:
        doc = create_document(store, title or file_title, with_root=False)
        sync = TreeSynchronizer(store, doc.id)
        sync.load(nodes, edges)
        try:
            asyncio.run(sync.persist(expected_version=doc.version))
        except PersistenceError as e:
            delete_document(store, doc.id)
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(2) from e
        typer.echo(f"Imported '{doc.title}' ({len(sync.tree)} nodes)  [id={doc.id}]")
    finally:
        store.close()


@app.command()
def serve() -> None:
    """Start the MCP server (stdio transport)."""
    from mindmap_tree.mcp.server import run_mcp_server

    run_mcp_server()
