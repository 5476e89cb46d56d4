from __future__ import annotations

from pathlib import Path

import pytest
import yaml

REPO_CONFIG = Path(__file__).resolve().parents[1] / "config" / "tile-tree.yaml"


def _write_yaml(path: Path, data: dict) -> None:
    path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")


def test_loads_repo_default_config() -> None:
    from tile_tree.config import load_tile_tree_config

    cfg = load_tile_tree_config(REPO_CONFIG)
    assert cfg.features_per_tile == 1000
    assert cfg.max_tile_size == 2000.0
    assert cfg.max_depth == 32
    assert cfg.max_workers == 1
    assert cfg.time_budget_s is None


def test_config_loads_from_config_dir(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.chdir(tmp_path)
    config_dir = tmp_path / "settings"
    config_dir.mkdir(parents=True, exist_ok=True)
    monkeypatch.delenv("TILE_TREE_CONFIG", raising=False)
    monkeypatch.setenv("TILE_TREE_CONFIG_DIR", str(config_dir))

    _write_yaml(
        config_dir / "tile-tree.yaml",
        {
            "tile_tree": {
                "features_per_tile": 50,
                "max_tile_size": 500.0,
                "max_depth": 12,
                "max_workers": 4,
                "time_budget_s": 30,
            }
        },
    )

    from tile_tree.config import get_tile_tree_config

    get_tile_tree_config.cache_clear()
    cfg = get_tile_tree_config()
    assert cfg.features_per_tile == 50
    assert cfg.max_tile_size == 500.0
    assert cfg.max_depth == 12
    assert cfg.max_workers == 4
    assert cfg.time_budget_s == 30.0


def test_config_env_path_wins_over_config_dir(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    explicit = tmp_path / "explicit.yaml"
    _write_yaml(explicit, {"tile_tree": {"features_per_tile": 3}})
    monkeypatch.setenv("TILE_TREE_CONFIG", str(explicit))
    monkeypatch.setenv("TILE_TREE_CONFIG_DIR", str(tmp_path / "nowhere"))

    from tile_tree.config import load_tile_tree_config

    assert load_tile_tree_config().features_per_tile == 3


def test_config_discovers_nearest_config_dir(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.delenv("TILE_TREE_CONFIG", raising=False)
    monkeypatch.delenv("TILE_TREE_CONFIG_DIR", raising=False)
    (tmp_path / "config").mkdir()
    _write_yaml(tmp_path / "config" / "tile-tree.yaml", {"tile_tree": {"max_depth": 4}})
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)

    from tile_tree.config import load_tile_tree_config

    assert load_tile_tree_config().max_depth == 4


def test_empty_config_file_uses_defaults(tmp_path: Path) -> None:
    from tile_tree.config import load_tile_tree_config

    path = tmp_path / "tile-tree.yaml"
    path.write_text("", encoding="utf-8")
    cfg = load_tile_tree_config(path)
    assert cfg.features_per_tile == 1000
    assert cfg.max_depth == 32


def test_getter_caches_by_mtime_and_size(tmp_path: Path) -> None:
    from tile_tree.config import get_tile_tree_config

    path = tmp_path / "tile-tree.yaml"
    _write_yaml(path, {"tile_tree": {"features_per_tile": 9}})

    get_tile_tree_config.cache_clear()
    first = get_tile_tree_config(path)
    second = get_tile_tree_config(path)
    assert first is second

    _write_yaml(path, {"tile_tree": {"features_per_tile": 99}})
    third = get_tile_tree_config(path)
    assert third.features_per_tile == 99


def test_config_reports_yaml_errors(tmp_path: Path) -> None:
    from tile_tree.config import load_tile_tree_config

    path = tmp_path / "tile-tree.yaml"
    path.write_text("tile_tree: [", encoding="utf-8")
    with pytest.raises(ValueError, match="Failed to load tile tree YAML"):
        load_tile_tree_config(path)

    path.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ValueError, match="tile tree config must be a mapping"):
        load_tile_tree_config(path)

    _write_yaml(path, {"tile_tree": {"schema_version": 999}})
    with pytest.raises(ValueError, match="Invalid tile tree config"):
        load_tile_tree_config(path)

    _write_yaml(path, {"tile_tree": {"features_per_tile": 0}})
    with pytest.raises(ValueError, match="Invalid tile tree config"):
        load_tile_tree_config(path)

    _write_yaml(path, {"tile_tree": {"unknown": 1}})
    with pytest.raises(ValueError, match="Invalid tile tree config"):
        load_tile_tree_config(path)


def test_get_config_raises_when_missing(tmp_path: Path) -> None:
    from tile_tree.config import get_tile_tree_config

    get_tile_tree_config.cache_clear()
    with pytest.raises(FileNotFoundError, match="tile tree config file not found"):
        get_tile_tree_config(tmp_path / "missing.yaml")


def test_explicit_relative_path_wins_over_env(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.chdir(tmp_path)
    _write_yaml(tmp_path / "env.yaml", {"tile_tree": {"features_per_tile": 1}})
    _write_yaml(tmp_path / "local.yaml", {"tile_tree": {"features_per_tile": 2}})
    monkeypatch.setenv("TILE_TREE_CONFIG", str(tmp_path / "env.yaml"))

    from tile_tree.config import get_tile_tree_config, load_tile_tree_config

    assert load_tile_tree_config("local.yaml").features_per_tile == 2
    assert load_tile_tree_config().features_per_tile == 1

    get_tile_tree_config.cache_clear()
    assert get_tile_tree_config("local.yaml").features_per_tile == 2
