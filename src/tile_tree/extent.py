from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable

from .errors import InvalidArgumentError


def _check_axis(name: str, low: float, high: float) -> None:
    if not (math.isfinite(low) and math.isfinite(high)):
        raise InvalidArgumentError(f"{name} bounds must be finite, got {low}..{high}")
    if low > high:
        raise InvalidArgumentError(
            f"Expected {name}min <= {name}max, got {low} > {high}"
        )


@dataclass(frozen=True)
class BoundingBox:
    """An axis-aligned 2D rectangle; one grid or tile cell."""

    xmin: float
    ymin: float
    xmax: float
    ymax: float

    def __post_init__(self) -> None:
        _check_axis("x", float(self.xmin), float(self.xmax))
        _check_axis("y", float(self.ymin), float(self.ymax))

    @property
    def width(self) -> float:
        return self.xmax - self.xmin

    @property
    def height(self) -> float:
        return self.ymax - self.ymin

    def center(self) -> tuple[float, float]:
        return (self.xmin + self.xmax) / 2.0, (self.ymin + self.ymax) / 2.0

    def contains(self, x: float, y: float) -> bool:
        """Half-open point test: [xmin, xmax) x [ymin, ymax).

        A point on a shared edge belongs to exactly one of two adjacent
        cells, the one whose lower edge it lies on.
        """

        return self.xmin <= x < self.xmax and self.ymin <= y < self.ymax


@dataclass(frozen=True)
class BoundingBox3D:
    """Axis-aligned 3D box of a single feature."""

    id: str
    xmin: float
    ymin: float
    zmin: float
    xmax: float
    ymax: float
    zmax: float

    def __post_init__(self) -> None:
        _check_axis("x", float(self.xmin), float(self.xmax))
        _check_axis("y", float(self.ymin), float(self.ymax))
        _check_axis("z", float(self.zmin), float(self.zmax))

    def center(self) -> tuple[float, float, float]:
        return (
            (self.xmin + self.xmax) / 2.0,
            (self.ymin + self.ymax) / 2.0,
            (self.zmin + self.zmax) / 2.0,
        )

    def extent_x(self) -> float:
        return self.xmax - self.xmin

    def extent_y(self) -> float:
        return self.ymax - self.ymin

    def footprint_area(self) -> float:
        return self.extent_x() * self.extent_y()

    def to_2d(self) -> BoundingBox:
        return BoundingBox(xmin=self.xmin, ymin=self.ymin, xmax=self.xmax, ymax=self.ymax)


def compute_cell_extent(
    origin: BoundingBox, cell_size: float, grid_x: int, grid_y: int
) -> BoundingBox:
    """Return the rectangle of grid cell (grid_x, grid_y) anchored at origin's min corner."""

    xmin = origin.xmin + grid_x * cell_size
    ymin = origin.ymin + grid_y * cell_size
    return BoundingBox(
        xmin=xmin,
        ymin=ymin,
        xmax=origin.xmin + (grid_x + 1) * cell_size,
        ymax=origin.ymin + (grid_y + 1) * cell_size,
    )


def grid_dimensions(extent: BoundingBox, tile_size: float) -> tuple[int, int]:
    """Return (cols, rows) of tiles of tile_size needed to cover extent."""

    if not (math.isfinite(tile_size) and tile_size > 0):
        raise InvalidArgumentError(f"tile size must be > 0, got {tile_size}")

    cols = max(1, math.ceil(extent.width / tile_size))
    rows = max(1, math.ceil(extent.height / tile_size))
    # The last cell edge is origin + n * size, as in compute_cell_extent; a
    # rounded-down quotient can leave it short of the extent's max.
    while extent.xmin + cols * tile_size < extent.xmax:
        cols += 1
    while extent.ymin + rows * tile_size < extent.ymax:
        rows += 1
    return cols, rows


def quarter_cell(cell: BoundingBox) -> list[tuple[int, int, BoundingBox]]:
    """Split cell into its 2x2 sub-cells as (i, j, rect), i outer and j inner.

    The split happens at the midpoint and the outer edges are the parent's
    own, so the four rectangles tile the parent exactly.
    """

    xmid = cell.xmin + cell.width / 2.0
    ymid = cell.ymin + cell.height / 2.0
    xs = ((cell.xmin, xmid), (xmid, cell.xmax))
    ys = ((cell.ymin, ymid), (ymid, cell.ymax))

    quarters: list[tuple[int, int, BoundingBox]] = []
    for i, (x0, x1) in enumerate(xs):
        for j, (y0, y1) in enumerate(ys):
            quarters.append((i, j, BoundingBox(xmin=x0, ymin=y0, xmax=x1, ymax=y1)))
    return quarters


def overall_extent(
    boxes: Iterable[BoundingBox3D], *, box_id: str = "extent"
) -> BoundingBox3D:
    """Union of all boxes."""

    items = list(boxes)
    if not items:
        raise InvalidArgumentError("Cannot compute the extent of zero boxes")

    return BoundingBox3D(
        id=box_id,
        xmin=min(b.xmin for b in items),
        ymin=min(b.ymin for b in items),
        zmin=min(b.zmin for b in items),
        xmax=max(b.xmax for b in items),
        ymax=max(b.ymax for b in items),
        zmax=max(b.zmax for b in items),
    )
