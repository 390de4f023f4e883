"""Path-encoded node addresses: ``root``, ``float-<k>``, ``<parent>-<s>``.

Addresses are the stable external references to nodes. They are derived
from tree structure alone (root-level order and sibling order), so the
same tree always yields the same addresses, independent of node ids.
"""

import re
from dataclasses import dataclass

from mindmap_tree import config
from mindmap_tree.core.tree.node_tree import NodeTree
from mindmap_tree.errors import AddressContractError, InvalidAddressError, NodeNotFoundError

_SEP = re.escape(config.ADDRESS_SEPARATOR)
_BASE = rf"(?:{re.escape(config.ROOT_ADDRESS)}|{re.escape(config.FLOAT_PREFIX)}{_SEP}[0-9]+)"
# ASCII digits only; always matched against the whole string.
_ADDRESS_RE = re.compile(rf"(?P<base>{_BASE})(?P<path>(?:{_SEP}[0-9]+)*)")


@dataclass(frozen=True)
class ParsedAddress:
    """Structure recovered from an address string.

    ``depth`` counts the child segments after the base token. ``parent`` is
    the address with the last segment removed, None for root-level addresses.
    """

    address: str
    base: str
    depth: int
    parent: str | None
    is_floating: bool
    segments: tuple[int, ...]


def is_valid_address(address: str) -> bool:
    return _ADDRESS_RE.fullmatch(address) is not None


def parse_address(address: str) -> ParsedAddress | None:
    """Parse an address, returning None when it is not well-formed."""
    match = _ADDRESS_RE.fullmatch(address)
    if match is None:
        return None
    base = match.group("base")
    path = match.group("path")
    segments = tuple(int(s) for s in path.split(config.ADDRESS_SEPARATOR)[1:]) if path else ()
    parent = address.rsplit(config.ADDRESS_SEPARATOR, 1)[0] if segments else None
    return ParsedAddress(
        address=address,
        base=base,
        depth=len(segments),
        parent=parent,
        is_floating=base != config.ROOT_ADDRESS,
        segments=segments,
    )


def root_level_address(index: int) -> str:
    """Address of the root-level node at ``index`` (0 is the main node)."""
    if index == 0:
        return config.ROOT_ADDRESS
    return f"{config.FLOAT_PREFIX}{config.ADDRESS_SEPARATOR}{index - 1}"


def child_address(parent_address: str, index: int) -> str:
    return f"{parent_address}{config.ADDRESS_SEPARATOR}{index}"


class AddressAssigner:
    """Derive the address of every node from a tree snapshot.

    Stateless: every call recomputes from the snapshot it is given.
    """

    def assign(self, tree: NodeTree) -> dict[str, str]:
        """Map node id -> address for every node in ``tree``.

        Raises:
            AddressContractError: A non-root node's parent is not in the tree,
                or a node cannot be reached from any root-level node.
        """
        for node in tree:
            if node.parent_id is not None and node.parent_id not in tree:
                msg = f"Node {node.id!r} references missing parent {node.parent_id!r}"
                raise AddressContractError(msg)

        addresses: dict[str, str] = {}
        stack: list[tuple[str, str]] = [
            (root.id, root_level_address(i)) for i, root in enumerate(tree.root_nodes())
        ]
        while stack:
            node_id, address = stack.pop()
            if node_id in addresses:
                continue
            addresses[node_id] = address
            stack.extend(
                (child.id, child_address(address, i))
                for i, child in enumerate(tree.children_of(node_id))
            )

        if len(addresses) != len(tree):
            orphans = sorted(n.id for n in tree if n.id not in addresses)
            msg = f"Nodes unreachable from any root-level node: {orphans!r}"
            raise AddressContractError(msg)
        return addresses

    def address_of(self, tree: NodeTree, node_id: str) -> str:
        tree.get(node_id)
        return self.assign(tree)[node_id]


def resolve_address(tree: NodeTree, address: str) -> str:
    """Return the id of the node carrying ``address``.

    Walks the address segment by segment instead of assigning the whole tree.

    Raises:
        InvalidAddressError: The address is not well-formed.
        NodeNotFoundError: No node carries the address.
    """
    parsed = parse_address(address)
    if parsed is None:
        msg = f"Invalid address: {address!r}"
        raise InvalidAddressError(msg)

    roots = tree.root_nodes()
    if parsed.is_floating:
        index = int(parsed.base.rsplit(config.ADDRESS_SEPARATOR, 1)[1]) + 1
    else:
        index = 0
    if index >= len(roots):
        msg = f"No node at address {address!r}"
        raise NodeNotFoundError(msg)

    current = roots[index]
    for segment in parsed.segments:
        children = tree.children_of(current.id)
        if segment >= len(children):
            msg = f"No node at address {address!r}"
            raise NodeNotFoundError(msg)
        current = children[segment]
    return current.id
