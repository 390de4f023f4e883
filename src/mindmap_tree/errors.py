"""Exception hierarchy for the mind-map tree engine."""


class MindMapError(Exception):
    """Base class for all mind-map errors."""


class RootProtectedError(MindMapError):
    """The canonical main node cannot be deleted while other nodes exist."""

    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(
            f"Node {node_id!r} is the main node and cannot be deleted while other nodes exist"
        )


class AddressContractError(MindMapError, LookupError):
    """A non-root node references a parent that is missing from the snapshot."""


class NodeNotFoundError(MindMapError, KeyError):
    """An edit referenced a node id or address that is not in the tree."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return str(self.args[0]) if self.args else ""


class InvalidAddressError(MindMapError, ValueError):
    """An address string is not well-formed."""


class PersistenceError(MindMapError):
    """The atomic replace-all transaction failed and was rolled back."""


class ConcurrentEditError(PersistenceError):
    """The stored document version did not match the expected version."""

    def __init__(self, document_id: str, expected_version: int) -> None:
        self.document_id = document_id
        self.expected_version = expected_version
        super().__init__(
            f"Document {document_id!r} changed since version {expected_version}; reload and retry"
        )


class StoreRowCountError(MindMapError):
    """A statement in an atomic batch touched an unexpected number of rows."""

    def __init__(self, sql: str, expected: int, actual: int) -> None:
        self.sql = sql
        self.expected = expected
        self.actual = actual
        super().__init__(f"Expected {expected} rows, statement touched {actual}: {sql}")
