from __future__ import annotations

import json
from pathlib import Path

import pytest

from tile_tree.cli import main
from tile_tree.errors import InvalidArgumentError


def _write_features(path: Path) -> None:
    rows = []
    centers = [(10, 10, 1.0), (60, 60, 5.0), (20, 20, 2.0), (70, 20, 4.0), (30, 80, 3.0)]
    for index, (cx, cy, weight) in enumerate(centers):
        rows.append(
            {
                "id": f"b{index}",
                "xmin": cx - 1,
                "ymin": cy - 1,
                "zmin": 0,
                "xmax": cx + 1,
                "ymax": cy + 1,
                "zmax": 12,
                "weight": weight,
            }
        )
    path.write_text(json.dumps(rows), encoding="utf-8")


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("TILE_TREE_CONFIG", raising=False)
    monkeypatch.setenv("TILE_TREE_CONFIG_DIR", str(tmp_path / "config"))


def test_cli_build_prints_tiles_and_summary(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    features = tmp_path / "features.json"
    _write_features(features)

    code = main(
        ["build", str(features), "--features-per-tile", "2", "--max-tile-size", "100"]
    )
    assert code == 0

    lines = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
    tiles, summary = lines[:-1], lines[-1]

    assert (tiles[0]["level"], tiles[0]["x"], tiles[0]["y"]) == (0, 0, 0)
    assert [(t["level"], t["x"], t["y"]) for t in tiles[1:]] == [(1, 0, 0), (1, 0, 1)]
    assert tiles[0]["depth"] == 1
    assert tiles[0]["feature_ids"] == ["b1", "b3"]
    assert tiles[0]["children"] == len(tiles) - 1
    assert sorted(fid for tile in tiles for fid in tile["feature_ids"]) == [
        "b0",
        "b1",
        "b2",
        "b3",
        "b4",
    ]
    assert summary["features"] == 5
    assert summary["summary"]["feature_count"] == 5
    assert summary["summary"]["max_features_per_node"] == 2


def test_cli_uses_config_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    features = tmp_path / "features.json"
    _write_features(features)
    config = tmp_path / "tree.yaml"
    config.write_text(
        "tile_tree:\n  features_per_tile: 10\n  max_tile_size: 1000\n", encoding="utf-8"
    )

    assert main(["--config", str(config), "build", str(features)]) == 0

    lines = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
    assert len(lines) == 2
    assert lines[0]["feature_ids"] == ["b1", "b3", "b4", "b2", "b0"]


def test_cli_requires_descending_order_without_sorting(tmp_path: Path) -> None:
    features = tmp_path / "features.json"
    _write_features(features)

    with pytest.raises(InvalidArgumentError, match="descending weight"):
        main(["build", str(features), "--no-sort-by-weight"])


def test_cli_empty_input(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    features = tmp_path / "features.json"
    features.write_text("[]", encoding="utf-8")

    assert main(["build", str(features)]) == 0

    lines = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
    assert lines == [{"input": str(features), "features": 0, "summary": None}]
