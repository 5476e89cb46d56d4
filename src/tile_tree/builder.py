"""Tile tree builder.

Lays a grid of ``max_tile_size`` cells over the overall extent, assigns each
feature to the single cell containing its 2D center and quarters every cell
that holds more than ``capacity`` features. A node keeps the first
``capacity`` features in incoming order, so the caller must deliver features
sorted by descending weight (see ``tile_tree.records``) for coarse tiles to
show the most important ones.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Final, Optional, Sequence, Union

import numpy as np

from .errors import BuildCancelledError, InvalidArgumentError
from .extent import (
    BoundingBox,
    BoundingBox3D,
    compute_cell_extent,
    grid_dimensions,
    quarter_cell,
)
from .model import Feature, Node, TileAddress, summarize_tree

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH: Final[int] = 32
MAX_SUPPORTED_DEPTH: Final[int] = 512

Extent = Union[BoundingBox, BoundingBox3D]


@dataclass(frozen=True)
class _Cell:
    rect: BoundingBox
    address: TileAddress
    # Upper edges on the outer boundary of the grid are inclusive, nothing
    # lies beyond them to claim a center sitting exactly on the edge.
    closed_x: bool
    closed_y: bool

    def quarters(self) -> list["_Cell"]:
        return [
            _Cell(
                rect=rect,
                address=self.address.child(i, j),
                closed_x=self.closed_x and i == 1,
                closed_y=self.closed_y and j == 1,
            )
            for i, j, rect in quarter_cell(self.rect)
        ]


def _validate_capacity(capacity: object) -> int:
    if isinstance(capacity, bool) or not isinstance(capacity, (int, np.integer)):
        raise InvalidArgumentError(f"capacity must be an integer, got {capacity!r}")
    if capacity <= 0:
        raise InvalidArgumentError(f"capacity must be > 0, got {capacity}")
    return int(capacity)


def _validate_tile_size(max_tile_size: object) -> float:
    try:
        value = float(max_tile_size)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise InvalidArgumentError(
            f"max_tile_size must be a number, got {max_tile_size!r}"
        ) from exc
    if not math.isfinite(value) or value <= 0:
        raise InvalidArgumentError(f"max_tile_size must be > 0, got {max_tile_size}")
    return value


def _validate_max_depth(max_depth: Optional[int]) -> int:
    if max_depth is None:
        return DEFAULT_MAX_DEPTH
    if isinstance(max_depth, bool) or not isinstance(max_depth, int):
        raise InvalidArgumentError(f"max_depth must be an integer, got {max_depth!r}")
    if not (0 <= max_depth <= MAX_SUPPORTED_DEPTH):
        raise InvalidArgumentError(
            f"max_depth must be within [0, {MAX_SUPPORTED_DEPTH}], got {max_depth}"
        )
    return max_depth


def _as_extent(extent: object) -> BoundingBox:
    if isinstance(extent, BoundingBox3D):
        return extent.to_2d()
    if isinstance(extent, BoundingBox):
        return extent
    raise InvalidArgumentError(
        f"overall extent must be a BoundingBox or BoundingBox3D, got {type(extent).__name__}"
    )


class _TreeBuild:
    """State of a single build: the features and their centers as arrays."""

    def __init__(
        self,
        features: Sequence[Feature],
        *,
        capacity: int,
        max_depth: int,
        cancel_event: Optional[threading.Event],
    ) -> None:
        self._features = features
        self._capacity = capacity
        self._max_depth = max_depth
        self._cancel_event = cancel_event

        count = len(features)
        self._cx = np.empty(count, dtype=np.float64)
        self._cy = np.empty(count, dtype=np.float64)
        for index, feature in enumerate(features):
            cx, cy, _ = feature.box.center()
            self._cx[index] = cx
            self._cy[index] = cy

    @property
    def all_indices(self) -> np.ndarray:
        return np.arange(len(self._features), dtype=np.int64)

    def _check_cancelled(self) -> None:
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise BuildCancelledError("tile tree build cancelled")

    def _select(self, candidates: np.ndarray, cell: _Cell) -> np.ndarray:
        """Indices of candidates whose center lies in cell, in incoming order."""

        xs = self._cx[candidates]
        ys = self._cy[candidates]
        rect = cell.rect
        upper_x = xs <= rect.xmax if cell.closed_x else xs < rect.xmax
        upper_y = ys <= rect.ymax if cell.closed_y else ys < rect.ymax
        mask = (xs >= rect.xmin) & upper_x & (ys >= rect.ymin) & upper_y
        return candidates[mask]

    def _take(self, indices: np.ndarray) -> list[Feature]:
        return [self._features[i] for i in indices.tolist()]

    def build_cell(self, cell: _Cell, candidates: np.ndarray) -> Optional[Node]:
        self._check_cancelled()

        selected = self._select(candidates, cell)
        if selected.size == 0:
            return None

        node = Node(extent=cell.rect, address=cell.address)
        if selected.size <= self._capacity:
            node.features = self._take(selected)
            return node

        if cell.address.level >= self._max_depth:
            logger.warning(
                "tile_tree_depth_limit_reached",
                extra={
                    "tile": cell.address.key(),
                    "max_depth": self._max_depth,
                    "features": int(selected.size),
                    "capacity": self._capacity,
                },
            )
            node.features = self._take(selected)
            return node

        node.features = self._take(selected[: self._capacity])
        self.divide(node, cell, selected[self._capacity :])
        return node

    def divide(self, parent: Node, cell: _Cell, overflow: np.ndarray) -> None:
        for quarter in cell.quarters():
            child = self.build_cell(quarter, overflow)
            if child is not None:
                parent.children.append(child)


class TileTreeBuilder:
    def __init__(
        self,
        *,
        capacity: int,
        max_tile_size: float,
        max_depth: Optional[int] = DEFAULT_MAX_DEPTH,
        max_workers: int = 1,
        executor: Optional[Executor] = None,
        time_budget_s: Optional[float] = None,
    ) -> None:
        self._capacity = _validate_capacity(capacity)
        self._max_tile_size = _validate_tile_size(max_tile_size)
        self._max_depth = _validate_max_depth(max_depth)
        if max_workers <= 0:
            raise InvalidArgumentError("max_workers must be > 0")
        if time_budget_s is not None and not time_budget_s > 0:
            raise InvalidArgumentError("time_budget_s must be > 0")

        self._max_workers = int(max_workers)
        self._executor = executor
        self._time_budget_s = time_budget_s

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def max_tile_size(self) -> float:
        return self._max_tile_size

    @property
    def max_depth(self) -> int:
        return self._max_depth

    def _top_level_cells(self, extent: BoundingBox) -> list[_Cell]:
        cols, rows = grid_dimensions(extent, self._max_tile_size)
        cells: list[_Cell] = []
        for x in range(cols):
            for y in range(rows):
                cells.append(
                    _Cell(
                        rect=compute_cell_extent(extent, self._max_tile_size, x, y),
                        address=TileAddress(level=0, x=x, y=y),
                        closed_x=x == cols - 1,
                        closed_y=y == rows - 1,
                    )
                )
        return cells

    def _build_cells(self, build: _TreeBuild, cells: list[_Cell]) -> list[Optional[Node]]:
        candidates = build.all_indices
        if self._executor is None and self._max_workers == 1:
            return [build.build_cell(cell, candidates) for cell in cells]

        owns_executor = self._executor is None
        executor = self._executor or ThreadPoolExecutor(max_workers=self._max_workers)
        try:
            futures: list[Future[Optional[Node]]] = [
                executor.submit(build.build_cell, cell, candidates) for cell in cells
            ]
            # Joined in submission order so the tree matches a sequential build.
            return [future.result() for future in futures]
        finally:
            if owns_executor:
                executor.shutdown(wait=True)

    def build(
        self,
        features: Sequence[Feature],
        overall_extent: Extent,
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> Node:
        extent = _as_extent(overall_extent)
        items = list(features)
        root = Node(extent=extent)

        timer: Optional[threading.Timer] = None
        if self._time_budget_s is not None:
            cancel_event = cancel_event or threading.Event()
            timer = threading.Timer(self._time_budget_s, cancel_event.set)
            timer.daemon = True
            timer.start()

        t0 = time.perf_counter()
        cells = self._top_level_cells(extent)
        logger.info(
            "tile_tree_build_started",
            extra={
                "features": len(items),
                "cells": len(cells),
                "capacity": self._capacity,
                "max_tile_size": self._max_tile_size,
                "max_depth": self._max_depth,
                "max_workers": self._max_workers,
            },
        )

        try:
            if items:
                build = _TreeBuild(
                    items,
                    capacity=self._capacity,
                    max_depth=self._max_depth,
                    cancel_event=cancel_event,
                )
                root.children = [
                    node for node in self._build_cells(build, cells) if node is not None
                ]
        except BuildCancelledError:
            logger.warning(
                "tile_tree_build_cancelled",
                extra={
                    "features": len(items),
                    "duration_s": time.perf_counter() - t0,
                },
            )
            raise
        finally:
            if timer is not None:
                timer.cancel()

        summary = summarize_tree(root)
        logger.info(
            "tile_tree_build_finished",
            extra={
                "features": len(items),
                "placed_features": summary.feature_count,
                "nodes": summary.node_count,
                "leaves": summary.leaf_count,
                "depth": summary.max_depth,
                "duration_s": time.perf_counter() - t0,
            },
        )
        return root


def build_tree(
    features: Sequence[Feature],
    overall_extent: Extent,
    max_tile_size: float,
    capacity: int,
    *,
    max_depth: Optional[int] = None,
    executor: Optional[Executor] = None,
    cancel_event: Optional[threading.Event] = None,
) -> Node:
    """Build the tile tree for features pre-sorted by descending weight.

    Raises InvalidArgumentError for a non-positive capacity or tile size
    before any partitioning happens. An empty feature list yields a root
    without children.
    """

    builder = TileTreeBuilder(
        capacity=capacity,
        max_tile_size=max_tile_size,
        max_depth=max_depth,
        executor=executor,
    )
    return builder.build(features, overall_extent, cancel_event=cancel_event)
