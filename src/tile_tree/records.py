"""Boundary between feature providers and the tree builder.

Provider rows (database cursors, JSON or CSV exports) are decoded once into
typed records here. The builder keeps the first features it sees in each
tile, so records must reach it ordered by descending weight; this module is
where that ordering is established or verified.
"""

from __future__ import annotations

import csv
import json
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, Iterable, Mapping, Sequence, Union

from .errors import InvalidArgumentError, RecordDecodeError
from .extent import BoundingBox3D
from .model import Feature

BOX_FIELDS: Final[tuple[str, ...]] = ("xmin", "ymin", "zmin", "xmax", "ymax", "zmax")
ID_FIELD: Final[str] = "id"
WEIGHT_FIELD: Final[str] = "weight"


@dataclass(frozen=True)
class FeatureRecord:
    box: BoundingBox3D
    weight: float

    @property
    def id(self) -> str:
        return self.box.id

    def to_feature(self) -> Feature:
        return Feature.from_box(self.box)


def _parse_float(row: Mapping[str, Any], key: str, *, row_id: str) -> float:
    raw = row.get(key)
    if raw is None or (isinstance(raw, str) and raw.strip() == ""):
        raise RecordDecodeError(f"feature {row_id!r} is missing {key!r}")
    if isinstance(raw, bool):
        raise RecordDecodeError(f"feature {row_id!r} has non-numeric {key}={raw!r}")
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise RecordDecodeError(
            f"feature {row_id!r} has non-numeric {key}={raw!r}"
        ) from exc
    if not math.isfinite(value):
        raise RecordDecodeError(f"feature {row_id!r} has non-finite {key}={raw!r}")
    return value


def decode_feature_row(row: Mapping[str, Any]) -> FeatureRecord:
    """Decode one provider row.

    Required keys: ``id`` and the six box bounds. ``weight`` is optional and
    defaults to the 2D footprint area of the box.
    """

    raw_id = row.get(ID_FIELD)
    row_id = "" if raw_id is None else str(raw_id).strip()
    if row_id == "":
        raise RecordDecodeError(f"feature row is missing {ID_FIELD!r}: {dict(row)!r}")

    bounds = {key: _parse_float(row, key, row_id=row_id) for key in BOX_FIELDS}
    try:
        box = BoundingBox3D(id=row_id, **bounds)
    except InvalidArgumentError as exc:
        raise RecordDecodeError(f"feature {row_id!r} has an invalid box: {exc}") from exc

    raw_weight = row.get(WEIGHT_FIELD)
    if raw_weight is None or (isinstance(raw_weight, str) and raw_weight.strip() == ""):
        weight = box.footprint_area()
    else:
        weight = _parse_float(row, WEIGHT_FIELD, row_id=row_id)

    return FeatureRecord(box=box, weight=weight)


def decode_feature_rows(rows: Iterable[Mapping[str, Any]]) -> list[FeatureRecord]:
    records = [decode_feature_row(row) for row in rows]
    seen: set[str] = set()
    for record in records:
        if record.id in seen:
            raise RecordDecodeError(f"duplicate feature id: {record.id!r}")
        seen.add(record.id)
    return records


def order_by_weight(records: Iterable[FeatureRecord]) -> list[FeatureRecord]:
    """Sort by descending weight; equal weights keep their incoming order."""

    return sorted(records, key=lambda r: r.weight, reverse=True)


def ensure_weight_order(records: Sequence[FeatureRecord]) -> None:
    for previous, current in zip(records, records[1:]):
        if current.weight > previous.weight:
            raise InvalidArgumentError(
                "features must be ordered by descending weight: "
                f"{current.id!r} ({current.weight}) follows {previous.id!r} ({previous.weight})"
            )


def to_features(records: Iterable[FeatureRecord]) -> list[Feature]:
    return [record.to_feature() for record in records]


def _load_json_rows(path: Path) -> list[Mapping[str, Any]]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise RecordDecodeError(f"Failed to parse feature JSON: {path}") from exc

    if isinstance(data, Mapping):
        data = data.get("features")
    if not isinstance(data, list):
        raise RecordDecodeError(
            f"feature JSON must be a list or an object with a 'features' list: {path}"
        )
    for item in data:
        if not isinstance(item, Mapping):
            raise RecordDecodeError(f"feature JSON entries must be objects: {path}")
    return data


def _load_csv_rows(path: Path) -> list[Mapping[str, Any]]:
    with path.open("r", encoding="utf-8", newline="") as handle:
        return list(csv.DictReader(handle))


def load_feature_records(path: Union[str, Path]) -> list[FeatureRecord]:
    """Load feature records from a ``.json`` or ``.csv`` file, in file order."""

    source = Path(path).expanduser()
    if not source.is_file():
        raise FileNotFoundError(f"feature file not found: {source}")

    suffix = source.suffix.lower()
    if suffix == ".json":
        rows = _load_json_rows(source)
    elif suffix == ".csv":
        rows = _load_csv_rows(source)
    else:
        raise ValueError(f"Unsupported feature file type {suffix!r}: {source}")

    return decode_feature_rows(rows)
