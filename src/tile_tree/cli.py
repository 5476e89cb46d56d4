from __future__ import annotations

import argparse
import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Iterable, Optional

from .builder import TileTreeBuilder
from .config import TileTreeConfig, get_tile_tree_config
from .extent import overall_extent
from .model import Node, iter_nodes, summarize_tree
from .records import ensure_weight_order, load_feature_records, order_by_weight, to_features


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m tile_tree",
        description="Build a level-of-detail tile tree from feature bounding boxes.",
    )
    parser.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to tile-tree.yaml (defaults to TILE_TREE_CONFIG / config/tile-tree.yaml).",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Logging level (default: WARNING)",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    build = sub.add_parser("build", help="Build the tree and print one JSON line per tile.")
    build.add_argument("input", help="Feature file (.json or .csv) with id, box bounds, weight")
    build.add_argument("--features-per-tile", type=int, default=None)
    build.add_argument("--max-tile-size", type=float, default=None)
    build.add_argument("--max-depth", type=int, default=None)
    build.add_argument("--max-workers", type=int, default=None)
    build.add_argument(
        "--time-budget",
        type=float,
        default=None,
        help="Cancel the build after this many seconds",
    )
    build.add_argument(
        "--sort-by-weight",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Order features by descending weight before building; "
        "with --no-sort-by-weight the input order must already be descending "
        "(default: true)",
    )

    return parser


def _load_config(config_path: Optional[str]) -> TileTreeConfig:
    if config_path is not None:
        return get_tile_tree_config(config_path)
    try:
        return get_tile_tree_config()
    except FileNotFoundError:
        return TileTreeConfig()


def _node_payload(depth: int, node: Node) -> dict[str, Any]:
    address = node.address
    return {
        "depth": depth,
        "level": None if address is None else address.level,
        "x": None if address is None else address.x,
        "y": None if address is None else address.y,
        "extent": asdict(node.extent),
        "feature_ids": node.feature_ids(),
        "children": len(node.children),
    }


def _run_build(args: argparse.Namespace, cfg: TileTreeConfig) -> int:
    records = load_feature_records(Path(args.input))
    if args.sort_by_weight:
        records = order_by_weight(records)
    else:
        ensure_weight_order(records)

    time_budget = args.time_budget if args.time_budget is not None else cfg.time_budget_s
    builder = TileTreeBuilder(
        capacity=(
            args.features_per_tile
            if args.features_per_tile is not None
            else cfg.features_per_tile
        ),
        max_tile_size=(
            args.max_tile_size if args.max_tile_size is not None else cfg.max_tile_size
        ),
        max_depth=args.max_depth if args.max_depth is not None else cfg.max_depth,
        max_workers=args.max_workers if args.max_workers is not None else cfg.max_workers,
        time_budget_s=time_budget,
    )

    if records:
        extent = overall_extent(record.box for record in records).to_2d()
        root = builder.build(to_features(records), extent)
        for depth, node in iter_nodes(root):
            if node.is_root:
                continue
            print(json.dumps(_node_payload(depth, node), ensure_ascii=False))
        summary = summarize_tree(root)
    else:
        summary = None

    print(
        json.dumps(
            {
                "input": str(args.input),
                "features": len(records),
                "summary": asdict(summary) if summary is not None else None,
            },
            ensure_ascii=False,
        )
    )
    return 0


def main(argv: Iterable[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    cfg = _load_config(args.config_path)

    if args.command == "build":
        return _run_build(args, cfg)

    raise ValueError(f"Unknown command: {args.command}")
