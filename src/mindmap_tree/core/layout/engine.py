"""Left-to-right tree layout for mind maps.

Each node gets a vertical band proportional to its subtree weight (number of
leaves below it, minimum 1). Children are stacked inside their parent's band
and the parent is centered on it, so sibling subtrees never overlap. Depth
maps to a fixed horizontal step.
"""

from dataclasses import dataclass, field

from loguru import logger

from mindmap_tree import config
from mindmap_tree.core.tree.node_tree import NodeTree
from mindmap_tree.models.node import LayoutEdge, Position


@dataclass(frozen=True)
class LayoutConfig:
    """Spacing constants, in canvas pixels."""

    level_spacing: float = config.LEVEL_SPACING
    sibling_spacing: float = config.SIBLING_SPACING
    base_x: float = config.ROOT_START_X
    base_y: float = config.ROOT_START_Y
    min_vertical_spacing: float = config.MIN_VERTICAL_SPACING

    def __post_init__(self) -> None:
        # A leaf band narrower than the minimum step would let nested
        # children spill out of their parent's band.
        if self.min_vertical_spacing > self.sibling_spacing:
            msg = (
                f"min_vertical_spacing ({self.min_vertical_spacing}) must not exceed "
                f"sibling_spacing ({self.sibling_spacing})"
            )
            raise ValueError(msg)

    @property
    def root_gap(self) -> float:
        """Minimum vertical step between stacked root subtrees."""
        return self.min_vertical_spacing * 2


@dataclass
class LayoutResult:
    """Result of the layout algorithm."""

    positions: dict[str, Position] = field(default_factory=dict)
    edges: list[LayoutEdge] = field(default_factory=list)


def edge_id(source: str, target: str) -> str:
    return f"edge_{source}_{target}"


class LayoutEngine:
    """Compute canvas positions and connectors for a NodeTree."""

    def __init__(self, layout_config: LayoutConfig | None = None) -> None:
        self.config = layout_config or LayoutConfig()

    def layout(self, tree: NodeTree) -> LayoutResult:
        """Position every node reachable from a root-level node.

        Deterministic and idempotent: the same tree always gives the same
        result. Nodes that no root reaches (only possible in a tree built
        by hand with broken parent links) are left out.
        """
        result = LayoutResult()
        if not len(tree):
            return result

        weights = subtree_weights(tree)
        cfg = self.config
        root_offset = cfg.base_y

        for root in tree.root_nodes():
            band = weights[root.id] * cfg.sibling_spacing
            result.positions[root.id] = Position(cfg.base_x, root_offset + band / 2)
            self._layout_subtree(tree, root.id, root_offset, weights, result)
            root_offset += max(band, cfg.root_gap)

        skipped = len(tree) - len(result.positions)
        if skipped:
            logger.debug("Layout skipped {} unreachable nodes", skipped)
        return result

    def _layout_subtree(
        self,
        tree: NodeTree,
        root_id: str,
        start: float,
        weights: dict[str, int],
        result: LayoutResult,
    ) -> None:
        cfg = self.config
        # (parent id, top of the parent's band); depth-first so edges come out
        # in reading order.
        stack: list[tuple[str, float]] = [(root_id, start)]
        visited = {root_id}
        while stack:
            parent_id, offset = stack.pop()
            pending: list[tuple[str, float]] = []
            for child in tree.children_of(parent_id):
                if child.id in visited:
                    continue
                visited.add(child.id)
                band = weights[child.id] * cfg.sibling_spacing
                result.positions[child.id] = Position(
                    cfg.base_x + tree.depth_of(child.id) * cfg.level_spacing,
                    offset + band / 2,
                )
                result.edges.append(
                    LayoutEdge(id=edge_id(parent_id, child.id), source=parent_id, target=child.id)
                )
                pending.append((child.id, offset))
                offset += max(band, cfg.min_vertical_spacing)
            stack.extend(reversed(pending))


def subtree_weights(tree: NodeTree) -> dict[str, int]:
    """Leaf count below each node (1 for a leaf), computed once per node."""
    weights: dict[str, int] = {}
    for node in tree:
        if node.id in weights:
            continue
        # Iterative post-order; ``on_path`` stops a cyclic chain from looping.
        stack: list[tuple[str, bool]] = [(node.id, False)]
        on_path: set[str] = set()
        while stack:
            node_id, expanded = stack.pop()
            if expanded:
                on_path.discard(node_id)
                total = sum(
                    weights.get(c.id, 1) for c in tree.children_of(node_id) if c.id != node_id
                )
                weights[node_id] = max(total, 1)
                continue
            if node_id in weights or node_id in on_path:
                continue
            on_path.add(node_id)
            stack.append((node_id, True))
            stack.extend(
                (c.id, False) for c in tree.children_of(node_id) if c.id not in weights
            )
    return weights
