"""Tests for the mind-map CLI."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from mindmap_tree.cli import app
from mindmap_tree.core.sync.synchronizer import TreeSynchronizer
from mindmap_tree.errors import PersistenceError

runner = CliRunner()


def _new(tmp_path: Path, title: str = "Trip") -> Path:
    data = tmp_path / "data"
    result = runner.invoke(app, ["new", title, "--data-dir", str(data)])
    assert result.exit_code == 0, result.output
    return data


def test_new_creates_database(tmp_path: Path) -> None:
    data = _new(tmp_path)
    assert (data / "mindmaps.db").exists()


def test_documents_without_database_fails(tmp_path: Path) -> None:
    result = runner.invoke(app, ["documents", "--data-dir", str(tmp_path / "none")])
    assert result.exit_code == 1


def test_documents_json_outputs_valid_json(tmp_path: Path) -> None:
    data = _new(tmp_path)
    result = runner.invoke(app, ["documents", "--json", "--data-dir", str(data)])
    assert result.exit_code == 0, result.output
    parsed = json.loads(result.output)
    assert parsed["count"] == 1
    assert parsed["documents"][0]["title"] == "Trip"


def test_add_then_show(tmp_path: Path) -> None:
    data = _new(tmp_path)
    result = runner.invoke(app, ["add", "Trip", "root", "Packing", "--data-dir", str(data)])
    assert result.exit_code == 0, result.output
    assert "Added root-0  (v1)" in result.output

    runner.invoke(app, ["add-sibling", "Trip", "root-0", "Tickets", "--data-dir", str(data)])
    runner.invoke(app, ["add-floating", "Trip", "Someday", "--data-dir", str(data)])

    result = runner.invoke(app, ["show", "Trip", "--data-dir", str(data)])
    assert result.exit_code == 0, result.output
    assert "- `root` Trip" in result.output
    assert "    - `root-0` Packing" in result.output
    assert "    - `root-1` Tickets" in result.output
    assert "- `float-0` Someday" in result.output


def test_show_json(tmp_path: Path) -> None:
    data = _new(tmp_path)
    result = runner.invoke(app, ["show", "Trip", "--json", "--data-dir", str(data)])
    assert result.exit_code == 0, result.output
    parsed = json.loads(result.output)
    assert parsed["nodes"][0]["address"] == "root"


def test_layout_json(tmp_path: Path) -> None:
    data = _new(tmp_path)
    result = runner.invoke(app, ["layout", "Trip", "--json", "--data-dir", str(data)])
    assert result.exit_code == 0, result.output
    parsed = json.loads(result.output)
    assert parsed["nodes"][0]["position"] == {"x": 200, "y": 240}
    assert parsed["nodes"][0]["selected"] is True


def test_rename_and_delete(tmp_path: Path) -> None:
    data = _new(tmp_path)
    runner.invoke(app, ["add", "Trip", "root", "Packing", "--data-dir", str(data)])
    result = runner.invoke(app, ["rename", "Trip", "root-0", "Luggage", "--data-dir", str(data)])
    assert result.exit_code == 0, result.output

    result = runner.invoke(app, ["delete", "Trip", "root-0", "--data-dir", str(data)])
    assert result.exit_code == 0, result.output
    assert "Deleted 1 nodes" in result.output
    assert "Selected: root" in result.output


def test_delete_main_node_exits_with_1(tmp_path: Path) -> None:
    data = _new(tmp_path)
    runner.invoke(app, ["add", "Trip", "root", "Packing", "--data-dir", str(data)])
    result = runner.invoke(app, ["delete", "Trip", "root", "--data-dir", str(data)])
    assert result.exit_code == 1
    assert "main node" in result.output


def test_stale_version_exits_with_2(tmp_path: Path) -> None:
    data = _new(tmp_path)
    result = runner.invoke(
        app,
        ["rename", "Trip", "root", "x", "--expected-version", "5", "--data-dir", str(data)],
    )
    assert result.exit_code == 2


def test_unknown_address_exits_with_1(tmp_path: Path) -> None:
    data = _new(tmp_path)
    result = runner.invoke(app, ["add", "Trip", "root-3", "x", "--data-dir", str(data)])
    assert result.exit_code == 1
    assert "No node at address" in result.output


def test_export_then_import(tmp_path: Path) -> None:
    data = _new(tmp_path)
    runner.invoke(app, ["add", "Trip", "root", "Packing", "--data-dir", str(data)])
    out = tmp_path / "trip.json"
    result = runner.invoke(
        app, ["export", "Trip", "--output", str(out), "--layout", "--data-dir", str(data)]
    )
    assert result.exit_code == 0, result.output
    exported = json.loads(out.read_text())
    assert [n["content"] for n in exported["nodes"]] == ["Trip", "Packing"]
    assert len(exported["layout"]["nodes"]) == 2

    result = runner.invoke(
        app, ["import", str(out), "--title", "Trip copy", "--data-dir", str(data)]
    )
    assert result.exit_code == 0, result.output
    assert "(2 nodes)" in result.output

    result = runner.invoke(app, ["show", "Trip copy", "--data-dir", str(data)])
    assert "    - `root-0` Packing" in result.output


def test_import_rejects_bad_file(tmp_path: Path) -> None:
    bad = tmp_path / "bad.json"
    bad.write_text('{"mindmap": {}}')
    result = runner.invoke(app, ["import", str(bad), "--data-dir", str(tmp_path / "data")])
    assert result.exit_code == 1


def test_failed_import_leaves_no_empty_document(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    data = _new(tmp_path)
    source = tmp_path / "trip.json"
    source.write_text(json.dumps({"nodes": [{"id": "a", "content": "Trip"}]}))

    async def failing_persist(self: TreeSynchronizer, *args: object, **kwargs: object) -> int:
        msg = "disk full"
        raise PersistenceError(msg)

    monkeypatch.setattr(TreeSynchronizer, "persist", failing_persist)
    result = runner.invoke(app, ["import", str(source), "--data-dir", str(data)])
    assert result.exit_code == 2

    listed = runner.invoke(app, ["documents", "--json", "--data-dir", str(data)])
    assert json.loads(listed.output)["count"] == 1


def test_serve_command_shows_help() -> None:
    result = runner.invoke(app, ["serve", "--help"])
    assert result.exit_code == 0, result.output
    assert "MCP" in result.output
