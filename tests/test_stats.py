import pytest

from picklist.charts import ranking_heatmap, to_vega_spec
from picklist.computed import ComputedColumn, ComputedColumnManager
from picklist.fields import FieldCatalog
from picklist.formula import ColumnType
from picklist.rows import Row
from picklist.stats import ColumnStats, column_stats, normalize, ranking_frame
from picklist.summary import summarize


def test_column_stats_ignore_text_and_missing_cells(ingested):
    stats = column_stats(ingested.rows, ingested.catalog)
    assert stats["Auto EPA"] == ColumnStats(8.0, 12.0)
    assert stats["Climb"] == ColumnStats(0.2, 0.7)
    assert "Notes" not in stats
    assert "Team" not in stats and "Picklist Order" not in stats


def test_rank_and_boolean_columns_get_no_stats(ingested):
    manager = ComputedColumnManager([ComputedColumn("Good", "EPA > 31", ColumnType.BOOLEAN)])
    rows, catalog = manager.apply(ingested.rows, ingested.catalog)
    stats = column_stats(rows, catalog, manager.boolean_names())
    assert "Good" not in stats


def test_normalize_clamps_and_handles_flat_columns():
    stats = ColumnStats(10.0, 20.0)
    assert normalize(15, stats) == pytest.approx(0.5)
    assert normalize(25, stats) == 1.0
    assert normalize(5, stats) == 0.0
    assert normalize(15, ColumnStats(3.0, 3.0)) is None
    assert normalize("fast", stats) is None
    assert normalize(True, stats) is None


def test_ranking_frame_and_heatmap_spec(ingested):
    stats = column_stats(ingested.rows, ingested.catalog)
    frame = ranking_frame(ingested.rows, ingested.catalog, stats)
    assert list(frame.columns) == ["team", "field", "value", "normalized"]
    # EPA has 30/33/30, Teleop EPA 20/25/18: every numeric column has variation.
    assert frame["normalized"].between(0, 1).all()
    spec = to_vega_spec(ranking_heatmap(ingested.rows, ingested.catalog, stats))
    mark = spec["mark"]
    assert (mark["type"] if isinstance(mark, dict) else mark) == "rect"


def test_heatmap_is_none_without_signal():
    rows = [Row(1, 1, {"epa": 3}), Row(2, 2, {"epa": 3})]
    catalog = FieldCatalog.from_headers(["Team", "EPA"], 0)
    assert ranking_heatmap(rows, catalog, column_stats(rows, catalog)) is None


def test_summary_picks_best_rows(ingested):
    rows = ingested.rows.rows
    summary = summarize(rows)
    assert summary.best_pick == 254
    assert summary.best_coral_bot == 1678
    assert summary.best_algae_bot == 971


def test_summary_treats_zero_order_as_unranked_and_falls_back():
    rows = [Row(1, 0, {}), Row(2, 3, {})]
    summary = summarize(rows)
    assert summary.best_pick == 2
    assert summary.best_coral_bot == 2
    assert summarize([]).best_pick is None
