"""Level-of-detail tile tree construction from feature bounding boxes."""

from .builder import DEFAULT_MAX_DEPTH, TileTreeBuilder, build_tree
from .errors import (
    BuildCancelledError,
    InvalidArgumentError,
    RecordDecodeError,
    TileTreeError,
)
from .extent import (
    BoundingBox,
    BoundingBox3D,
    compute_cell_extent,
    grid_dimensions,
    overall_extent,
    quarter_cell,
)
from .model import Feature, Node, TileAddress, TreeSummary, iter_nodes, summarize_tree

__all__ = [
    "BoundingBox",
    "BoundingBox3D",
    "BuildCancelledError",
    "DEFAULT_MAX_DEPTH",
    "Feature",
    "InvalidArgumentError",
    "Node",
    "RecordDecodeError",
    "TileAddress",
    "TileTreeBuilder",
    "TileTreeError",
    "TreeSummary",
    "build_tree",
    "compute_cell_extent",
    "grid_dimensions",
    "iter_nodes",
    "overall_extent",
    "quarter_cell",
    "summarize_tree",
]
