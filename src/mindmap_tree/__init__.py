"""Mind-map tree engine: canonical trees, layout, addresses and persistence."""

from mindmap_tree.core.address.assigner import AddressAssigner
from mindmap_tree.core.layout.engine import LayoutConfig, LayoutEngine, LayoutResult
from mindmap_tree.core.sync.synchronizer import TreeSynchronizer
from mindmap_tree.core.tree.node_tree import NodeTree
from mindmap_tree.protocols import StoreProtocol

__version__ = "0.1.0"

__all__ = [
    "AddressAssigner",
    "LayoutConfig",
    "LayoutEngine",
    "LayoutResult",
    "NodeTree",
    "StoreProtocol",
    "TreeSynchronizer",
]
