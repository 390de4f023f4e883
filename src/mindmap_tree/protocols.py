"""Protocols for dependency injection of the relational store."""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True)
class Statement:
    """One SQL statement in an atomic batch.

    With ``many=True``, ``params`` is a sequence of parameter rows and the
    statement is run once per row. ``expected_rowcount`` makes the whole
    batch fail (and roll back) when the statement touches a different
    number of rows. Rows of ``fetch=True`` statements are returned by
    ``run_atomic``, read inside the same transaction.
    """

    sql: str
    params: Sequence[Any] = ()
    many: bool = False
    expected_rowcount: int | None = None
    fetch: bool = False


@runtime_checkable
class StoreProtocol(Protocol):
    """Query and transaction primitives of the persistence store."""

    def execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        """Run a single statement and commit it."""
        ...

    def query(self, sql: str, params: Sequence[Any] = ()) -> list[tuple[Any, ...]]:
        """Run a statement and return all rows."""
        ...

    def run_atomic(self, statements: Sequence[Statement]) -> list[tuple[Any, ...]]:
        """Run all statements in one transaction, rolling back on any error.

        Returns the rows of every ``fetch`` statement, in batch order.
        """
        ...
