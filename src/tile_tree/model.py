from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Optional

from .extent import BoundingBox, BoundingBox3D


@dataclass(frozen=True)
class Feature:
    id: str
    box: BoundingBox3D

    @classmethod
    def from_box(cls, box: BoundingBox3D) -> "Feature":
        return cls(id=box.id, box=box)


@dataclass(frozen=True)
class TileAddress:
    """Position of a tile in the quadtree.

    Top-level grid cells are level 0; quadrant (i, j) of (level, x, y) is
    (level + 1, 2x + i, 2y + j).
    """

    level: int
    x: int
    y: int

    def child(self, i: int, j: int) -> "TileAddress":
        return TileAddress(level=self.level + 1, x=self.x * 2 + i, y=self.y * 2 + j)

    def key(self) -> str:
        return f"{self.level}/{self.x}/{self.y}"


@dataclass
class Node:
    """One tile of the tree: the features it shows and its refinements.

    The root has no address and no features of its own; its extent is the
    overall extent the grid was laid over.
    """

    extent: BoundingBox
    address: Optional[TileAddress] = None
    features: list[Feature] = field(default_factory=list)
    children: list["Node"] = field(default_factory=list)

    @property
    def is_root(self) -> bool:
        return self.address is None

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def feature_ids(self) -> list[str]:
        return [f.id for f in self.features]


def iter_nodes(root: Node) -> Iterator[tuple[int, Node]]:
    """Depth-first pre-order walk yielding (depth, node); the root is depth 0."""

    stack: list[tuple[int, Node]] = [(0, root)]
    while stack:
        depth, node = stack.pop()
        yield depth, node
        for child in reversed(node.children):
            stack.append((depth + 1, child))


@dataclass(frozen=True)
class TreeSummary:
    node_count: int
    leaf_count: int
    feature_count: int
    max_depth: int
    max_features_per_node: int


def summarize_tree(root: Node) -> TreeSummary:
    node_count = 0
    leaf_count = 0
    feature_count = 0
    max_depth = 0
    max_features = 0
    for depth, node in iter_nodes(root):
        if node.is_root:
            continue
        node_count += 1
        if node.is_leaf:
            leaf_count += 1
        feature_count += len(node.features)
        max_depth = max(max_depth, depth)
        max_features = max(max_features, len(node.features))

    return TreeSummary(
        node_count=node_count,
        leaf_count=leaf_count,
        feature_count=feature_count,
        max_depth=max_depth,
        max_features_per_node=max_features,
    )
