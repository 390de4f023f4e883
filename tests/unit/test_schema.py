"""Tests for database schema and the SQLite store."""

import sqlite3
from pathlib import Path

import pytest

from mindmap_tree.core.database.schema import (
    connect,
    create_schema,
    get_metadata,
    get_schema_version,
    migrate_schema,
    set_metadata,
)
from mindmap_tree.core.database.store import SqliteStore
from mindmap_tree.errors import StoreRowCountError
from mindmap_tree.models.node import Document
from mindmap_tree.protocols import Statement, StoreProtocol


def test_create_schema_creates_tables() -> None:
    conn = connect(":memory:")
    create_schema(conn)
    tables = {
        row[0]
        for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
    }
    assert {"mind_maps", "nodes", "metadata"} <= tables


def test_migrate_schema_on_empty_db_creates_schema_and_sets_version() -> None:
    conn = connect(":memory:")
    assert get_schema_version(conn) is None
    migrate_schema(conn)
    assert get_schema_version(conn) == 1
    migrate_schema(conn)
    assert get_schema_version(conn) == 1


def test_metadata_round_trip() -> None:
    conn = connect(":memory:")
    assert get_metadata(conn, "anything") is None
    migrate_schema(conn)
    set_metadata(conn, "last_import", "today")
    assert get_metadata(conn, "last_import") == "today"


def test_sibling_order_is_unique_per_parent(store: SqliteStore, example_doc: Document) -> None:
    with pytest.raises(sqlite3.IntegrityError):
        store.execute(
            "INSERT INTO nodes (id, document_id, content, parent_node_id, sibling_order, depth) "
            "VALUES ('X', 'doc1', '', 'A', 1, 1)"
        )


def test_root_level_sibling_order_is_unique(store: SqliteStore, example_doc: Document) -> None:
    with pytest.raises(sqlite3.IntegrityError):
        store.execute(
            "INSERT INTO nodes (id, document_id, content, parent_node_id, sibling_order, depth) "
            "VALUES ('X', 'doc1', '', NULL, 0, 0)"
        )


def test_negative_sibling_order_is_rejected(store: SqliteStore, example_doc: Document) -> None:
    with pytest.raises(sqlite3.IntegrityError):
        store.execute(
            "INSERT INTO nodes (id, document_id, content, parent_node_id, sibling_order, depth) "
            "VALUES ('X', 'doc1', '', 'A', -1, 1)"
        )


def test_deleting_a_parent_row_cascades(store: SqliteStore, example_doc: Document) -> None:
    store.execute("DELETE FROM nodes WHERE id = 'B'")
    ids = {r[0] for r in store.query("SELECT id FROM nodes")}
    assert ids == {"A", "C"}


def test_store_satisfies_protocol(store: SqliteStore) -> None:
    assert isinstance(store, StoreProtocol)


def test_run_atomic_commits_all_statements(store: SqliteStore, example_doc: Document) -> None:
    store.run_atomic(
        [
            Statement("UPDATE nodes SET content = 'x' WHERE id = ?", ("C",)),
            Statement("UPDATE nodes SET content = 'y' WHERE id = ?", ("D",)),
        ]
    )
    assert dict(store.query("SELECT id, content FROM nodes WHERE id IN ('C', 'D')")) == {
        "C": "x",
        "D": "y",
    }


def test_run_atomic_rolls_back_on_error(store: SqliteStore, example_doc: Document) -> None:
    with pytest.raises(sqlite3.OperationalError):
        store.run_atomic(
            [
                Statement("DELETE FROM nodes WHERE document_id = ?", ("doc1",)),
                Statement("INSERT INTO missing_table VALUES (1)"),
            ]
        )
    assert store.query("SELECT COUNT(*) FROM nodes") == [(4,)]


def test_run_atomic_checks_expected_rowcount(store: SqliteStore, example_doc: Document) -> None:
    with pytest.raises(StoreRowCountError) as exc_info:
        store.run_atomic(
            [
                Statement("DELETE FROM nodes WHERE id = ?", ("C",)),
                Statement("UPDATE mind_maps SET version = 9 WHERE id = ?", ("nope",),
                          expected_rowcount=1),
            ]
        )
    assert exc_info.value.actual == 0
    assert store.query("SELECT COUNT(*) FROM nodes") == [(4,)]


def test_run_atomic_many(store: SqliteStore, example_doc: Document) -> None:
    store.run_atomic(
        [
            Statement(
                "UPDATE nodes SET content = ? WHERE id = ?",
                [("one", "A"), ("two", "B")],
                many=True,
            )
        ]
    )
    assert dict(store.query("SELECT id, content FROM nodes WHERE id IN ('A', 'B')")) == {
        "A": "one",
        "B": "two",
    }


def test_open_creates_database_file(tmp_path: Path) -> None:
    path = tmp_path / "maps.db"
    s = SqliteStore.open(path)
    s.close()
    assert path.exists()
    reopened = SqliteStore.open(path)
    assert reopened.query("SELECT value FROM metadata WHERE key = 'schema_version'") == [("1",)]
    reopened.close()


def test_run_atomic_returns_rows_read_inside_the_transaction(
    store: SqliteStore, example_doc: Document
) -> None:
    rows = store.run_atomic(
        [
            Statement("UPDATE mind_maps SET version = version + 1 WHERE id = ?", ("doc1",)),
            Statement("SELECT version FROM mind_maps WHERE id = ?", ("doc1",), fetch=True),
        ]
    )
    assert rows == [(1,)]
    assert store.run_atomic([Statement("DELETE FROM nodes WHERE id = ?", ("D",))]) == []
