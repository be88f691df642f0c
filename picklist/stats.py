from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import numpy as np
import pandas as pd

from picklist.fields import FieldCatalog, is_structural
from picklist.rows import Row, is_number


@dataclass(frozen=True)
class ColumnStats:
    min: float
    max: float

    @property
    def has_variation(self) -> bool:
        return self.max != self.min


def ranked_fields(catalog: FieldCatalog, boolean_columns: Iterable[str] = ()) -> List[str]:
    """Fields that get a heat signal: not structural, not rank-like, not boolean computed."""
    booleans = set(boolean_columns)
    return [f for f in catalog.fields if not is_structural(f) and "rank" not in f.lower() and f not in booleans]


def numeric_frame(rows: Iterable[Row], fields: List[str]) -> pd.DataFrame:
    """Finite numeric cells only; text, booleans, infinities and missing cells become NaN."""
    records = []
    index = []
    for row in rows:
        index.append(row.team_number)
        cells = {}
        for field in fields:
            value = row.get(field)
            cells[field] = float(value) if is_number(value) and np.isfinite(value) else np.nan
        records.append(cells)
    return pd.DataFrame.from_records(records, index=pd.Index(index, name="team"), columns=fields)


def column_stats(rows: Iterable[Row], catalog: FieldCatalog, boolean_columns: Iterable[str] = ()) -> Dict[str, ColumnStats]:
    fields = ranked_fields(catalog, boolean_columns)
    frame = numeric_frame(rows, fields)
    stats: Dict[str, ColumnStats] = {}
    for field in fields:
        series = frame[field].dropna()
        if series.empty:
            continue
        stats[field] = ColumnStats(min=float(series.min()), max=float(series.max()))
    return stats


def normalize(value: object, stats: Optional[ColumnStats]) -> Optional[float]:
    """Position of ``value`` within the column range, clamped to [0, 1]; None when there is no signal."""
    if stats is None or not is_number(value) or not stats.has_variation:
        return None
    return float(np.clip((float(value) - stats.min) / (stats.max - stats.min), 0.0, 1.0))


def ranking_frame(rows: Iterable[Row], catalog: FieldCatalog, stats: Dict[str, ColumnStats]) -> pd.DataFrame:
    """Long-format frame (team, field, value, normalized) for every cell with a heat signal."""
    out = []
    for row in rows:
        for field, field_stats in stats.items():
            value = row.get(field)
            norm = normalize(value, field_stats)
            if norm is None:
                continue
            out.append({"team": str(row.team_number), "field": field, "value": float(value), "normalized": norm})
    return pd.DataFrame(out, columns=["team", "field", "value", "normalized"])
