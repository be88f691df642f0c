from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

import altair as alt

from picklist.fields import FieldCatalog
from picklist.rows import Row
from picklist.stats import ColumnStats, ranking_frame

alt.data_transformers.disable_max_rows()

# Muted red -> soft yellow -> muted green.
HEAT_RANGE = ["rgb(180, 60, 60)", "rgb(180, 160, 60)", "rgb(60, 180, 70)"]


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def ranking_heatmap(rows: Iterable[Row], catalog: FieldCatalog, stats: Dict[str, ColumnStats]) -> Optional[alt.Chart]:
    rows = list(rows)
    frame = ranking_frame(rows, catalog, stats)
    if frame.empty:
        return None
    team_order: List[str] = [str(r.team_number) for r in rows]
    field_order = [f for f in catalog.fields if f in stats]
    return (
        alt.Chart(frame)
        .mark_rect()
        .encode(
            x=alt.X("field:N", title=None, sort=field_order, axis=alt.Axis(labelAngle=-40)),
            y=alt.Y("team:N", title="Team", sort=team_order),
            color=alt.Color(
                "normalized:Q",
                title="Relative",
                scale=alt.Scale(domain=[0, 0.5, 1], range=HEAT_RANGE),
                legend=None,
            ),
            tooltip=["team", "field", alt.Tooltip("value:Q", format=",.2f")],
        )
        .properties(height=max(120, 18 * len(team_order)))
    )
