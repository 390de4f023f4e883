"""Tests for address assignment and parsing."""

import pytest

from mindmap_tree.core.address.assigner import (
    AddressAssigner,
    child_address,
    is_valid_address,
    parse_address,
    resolve_address,
    root_level_address,
)
from mindmap_tree.core.tree.node_tree import NodeTree
from mindmap_tree.errors import AddressContractError, InvalidAddressError, NodeNotFoundError
from mindmap_tree.models.node import Node


def test_example_tree_addresses(example_tree: NodeTree) -> None:
    assert AddressAssigner().assign(example_tree) == {
        "A": "root",
        "B": "root-0",
        "C": "root-1",
        "D": "root-0-0",
    }


def test_addresses_shift_after_deleting_a_sibling(example_tree: NodeTree) -> None:
    trimmed = example_tree.without(["B", "D"])
    assert AddressAssigner().assign(trimmed) == {"A": "root", "C": "root-0"}


def test_floating_nodes_are_numbered_from_zero() -> None:
    tree = NodeTree(
        [
            Node(id="m", parent_id=None, sibling_order=0, content=""),
            Node(id="f1", parent_id=None, sibling_order=1, content=""),
            Node(id="f2", parent_id=None, sibling_order=2, content=""),
            Node(id="f2c", parent_id="f2", sibling_order=0, content=""),
        ]
    )
    addresses = AddressAssigner().assign(tree)
    assert addresses["f1"] == "float-0"
    assert addresses["f2"] == "float-1"
    assert addresses["f2c"] == "float-1-0"


def test_addresses_ignore_node_ids() -> None:
    first = NodeTree(
        [
            Node(id="x", parent_id=None, sibling_order=0, content=""),
            Node(id="y", parent_id="x", sibling_order=0, content=""),
        ]
    )
    second = NodeTree(
        [
            Node(id="zzz", parent_id=None, sibling_order=0, content=""),
            Node(id="aaa", parent_id="zzz", sibling_order=0, content=""),
        ]
    )
    assigner = AddressAssigner()
    assert sorted(assigner.assign(first).values()) == sorted(assigner.assign(second).values())


def test_empty_tree_has_no_addresses() -> None:
    assert AddressAssigner().assign(NodeTree()) == {}


def test_missing_parent_is_a_contract_error() -> None:
    tree = NodeTree([Node(id="x", parent_id="gone", sibling_order=0, content="")])
    with pytest.raises(AddressContractError, match="missing parent"):
        AddressAssigner().assign(tree)


def test_unreachable_cycle_is_a_contract_error() -> None:
    tree = NodeTree(
        [
            Node(id="r", parent_id=None, sibling_order=0, content=""),
            Node(id="x", parent_id="y", sibling_order=0, content=""),
            Node(id="y", parent_id="x", sibling_order=0, content=""),
        ]
    )
    with pytest.raises(AddressContractError, match="unreachable"):
        AddressAssigner().assign(tree)


def test_address_of(example_tree: NodeTree) -> None:
    assert AddressAssigner().address_of(example_tree, "D") == "root-0-0"
    with pytest.raises(NodeNotFoundError):
        AddressAssigner().address_of(example_tree, "nope")


@pytest.mark.parametrize(
    "address",
    ["root", "root-0", "root-12-3", "float-0", "float-4-0-1"],
)
def test_valid_addresses(address: str) -> None:
    assert is_valid_address(address)


@pytest.mark.parametrize(
    "address",
    [
        "", "Root", "root-", "root--1", "float", "float-", "float-x", "root-a", "node-1",
        "root-1 ", "root\n", "root-1\n", "root-\u0661", "float-\u0663",
    ],
)
def test_invalid_addresses(address: str) -> None:
    assert not is_valid_address(address)
    assert parse_address(address) is None


def test_parse_address_structure() -> None:
    parsed = parse_address("float-2-0-5")
    assert parsed is not None
    assert parsed.base == "float-2"
    assert parsed.segments == (0, 5)
    assert parsed.depth == 2
    assert parsed.parent == "float-2-0"
    assert parsed.is_floating

    root = parse_address("root")
    assert root is not None
    assert root.depth == 0
    assert root.parent is None
    assert not root.is_floating


def test_address_builders() -> None:
    assert root_level_address(0) == "root"
    assert root_level_address(1) == "float-0"
    assert root_level_address(3) == "float-2"
    assert child_address("root-1", 4) == "root-1-4"


def test_resolve_address(example_tree: NodeTree) -> None:
    assert resolve_address(example_tree, "root") == "A"
    assert resolve_address(example_tree, "root-0-0") == "D"
    assert resolve_address(example_tree, "root-1") == "C"


def test_resolve_agrees_with_assign() -> None:
    tree = NodeTree(
        [
            Node(id="m", parent_id=None, sibling_order=0, content=""),
            Node(id="f", parent_id=None, sibling_order=1, content=""),
            Node(id="fa", parent_id="f", sibling_order=0, content=""),
            Node(id="fb", parent_id="f", sibling_order=3, content=""),
        ]
    )
    for node_id, address in AddressAssigner().assign(tree).items():
        assert resolve_address(tree, address) == node_id


def test_resolve_unknown_address(example_tree: NodeTree) -> None:
    with pytest.raises(NodeNotFoundError):
        resolve_address(example_tree, "root-5")
    with pytest.raises(NodeNotFoundError):
        resolve_address(example_tree, "float-0")
    with pytest.raises(InvalidAddressError):
        resolve_address(example_tree, "left-0")


def test_resolve_rejects_trailing_newline(example_tree: NodeTree) -> None:
    with pytest.raises(InvalidAddressError):
        resolve_address(example_tree, "root\n")


def test_assigned_addresses_parse_back_to_tree_structure() -> None:
    nodes = [Node(id="m", parent_id=None, sibling_order=0, content="")]
    for i in range(3):
        nodes.append(Node(id=f"m{i}", parent_id="m", sibling_order=i, content=""))
        nodes.append(Node(id=f"m{i}x", parent_id=f"m{i}", sibling_order=0, content=""))
    for k in range(2):
        nodes.append(Node(id=f"f{k}", parent_id=None, sibling_order=k + 1, content=""))
        nodes.append(Node(id=f"f{k}a", parent_id=f"f{k}", sibling_order=0, content=""))
        nodes.append(Node(id=f"f{k}ab", parent_id=f"f{k}a", sibling_order=0, content=""))
    tree = NodeTree(nodes)

    addresses = AddressAssigner().assign(tree)
    for node in tree:
        parsed = parse_address(addresses[node.id])
        assert parsed is not None, addresses[node.id]
        assert parsed.depth == tree.depth_of(node.id)
        expected_parent = addresses[node.parent_id] if node.parent_id else None
        assert parsed.parent == expected_parent
        assert parsed.is_floating == node.id.startswith("f")
