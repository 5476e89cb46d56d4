from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Final, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

SUPPORTED_SCHEMA_VERSIONS: Final[set[int]] = {1}

DEFAULT_TILE_TREE_CONFIG_NAME: Final[str] = "tile-tree.yaml"
DEFAULT_TILE_TREE_CONFIG_ENV: Final[str] = "TILE_TREE_CONFIG"
DEFAULT_TILE_TREE_CONFIG_DIR_ENV: Final[str] = "TILE_TREE_CONFIG_DIR"


class TileTreeConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    schema_version: int = 1

    # Maximum number of features shown by a single tile.
    features_per_tile: int = Field(default=1000, ge=1)
    # Edge length of the top-level grid cells, in source CRS units.
    max_tile_size: float = Field(default=2000.0, gt=0)
    max_depth: int = Field(default=32, ge=0, le=512)

    max_workers: int = Field(default=1, ge=1, le=128)
    time_budget_s: Optional[float] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _validate_schema_version(self) -> "TileTreeConfig":
        if self.schema_version not in SUPPORTED_SCHEMA_VERSIONS:
            raise ValueError(
                f"Unsupported tile tree schema_version={self.schema_version}; "
                f"supported versions: {sorted(SUPPORTED_SCHEMA_VERSIONS)}"
            )
        return self


class TileTreeConfigFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    tile_tree: TileTreeConfig = Field(default_factory=TileTreeConfig)


def _absolute(path: Union[str, Path]) -> Path:
    candidate = Path(path).expanduser()
    return candidate if candidate.is_absolute() else (Path.cwd() / candidate).resolve()


def _resolve_config_path(path: Optional[Union[str, Path]]) -> Path:
    """Explicit path, then $TILE_TREE_CONFIG, then tile-tree.yaml in the config dir.

    The config dir is $TILE_TREE_CONFIG_DIR or the nearest ``config/`` holding
    a tile-tree.yaml, searching upward from the working directory.
    """

    explicit = path if path is not None else os.environ.get(DEFAULT_TILE_TREE_CONFIG_ENV)
    if explicit:
        return _absolute(explicit)

    config_dir_env = os.environ.get(DEFAULT_TILE_TREE_CONFIG_DIR_ENV)
    if config_dir_env:
        return _absolute(config_dir_env) / DEFAULT_TILE_TREE_CONFIG_NAME

    cwd = Path.cwd()
    for root in (cwd, *cwd.parents):
        candidate = root / "config" / DEFAULT_TILE_TREE_CONFIG_NAME
        if candidate.is_file():
            return candidate
    return cwd / "config" / DEFAULT_TILE_TREE_CONFIG_NAME


def load_tile_tree_config(path: Optional[Union[str, Path]] = None) -> TileTreeConfig:
    config_path = _resolve_config_path(path)
    if not config_path.is_file():
        raise FileNotFoundError(f"tile tree config file not found: {config_path}")

    try:
        data: Any = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValueError(f"Failed to load tile tree YAML: {config_path}") from exc
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ValueError(f"tile tree config must be a mapping: {config_path}")

    try:
        return TileTreeConfigFile.model_validate(dict(data)).tile_tree
    except ValidationError as exc:
        raise ValueError(f"Invalid tile tree config ({config_path}): {exc}") from exc


@lru_cache(maxsize=8)
def _load_by_stat(config_path: str, mtime_ns: int, size: int) -> TileTreeConfig:
    return load_tile_tree_config(config_path)


def get_tile_tree_config(path: Optional[Union[str, Path]] = None) -> TileTreeConfig:
    """Like load_tile_tree_config, reusing the parsed result until the file changes."""

    resolved = _resolve_config_path(path)
    try:
        stat = resolved.stat()
    except FileNotFoundError as exc:
        raise FileNotFoundError(f"tile tree config file not found: {resolved}") from exc
    return _load_by_stat(str(resolved), stat.st_mtime_ns, stat.st_size)


get_tile_tree_config.cache_clear = _load_by_stat.cache_clear  # type: ignore[attr-defined]
