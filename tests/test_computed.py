import pytest

from picklist.computed import ComputedColumn, ComputedColumnManager
from picklist.errors import UnknownColumnError, ValidationError
from picklist.formula import ColumnType


def test_add_materializes_values_and_extends_catalog(ingested):
    manager = ComputedColumnManager()
    rows, catalog = manager.add(
        ComputedColumn("Weighted", '0.4 * "Auto EPA" + 0.6 * "Teleop EPA"'), ingested.rows, ingested.catalog
    )
    assert catalog.fields[-1] == "Weighted"
    assert rows.get(254).get("Weighted") == pytest.approx(16.0)
    # The input rows are not mutated.
    assert ingested.rows.get(254).get("Weighted") is None


def test_boolean_column_uses_zero_for_missing_cells(ingested):
    manager = ComputedColumnManager()
    rows, _ = manager.add(ComputedColumn("Climber", '"Climb" > 0.5', ColumnType.BOOLEAN), ingested.rows, ingested.catalog)
    assert rows.get(254).get("Climber") is True
    assert rows.get(971).get("Climber") is False
    assert manager.boolean_names() == ["Climber"]


def test_add_with_existing_name_overwrites_in_place(ingested):
    manager = ComputedColumnManager()
    rows, catalog = manager.add(ComputedColumn("Score", "EPA * 2"), ingested.rows, ingested.catalog)
    rows, catalog = manager.add(ComputedColumn("Other", "EPA + 1"), rows, catalog)
    rows, catalog = manager.add(ComputedColumn("Score", "EPA * 3"), rows, catalog)
    assert manager.names == ["Score", "Other"]
    assert catalog.computed_fields == ("Score", "Other")
    assert rows.get(254).get("Score") == 90.0


def test_name_colliding_with_data_column_is_rejected(ingested):
    manager = ComputedColumnManager()
    with pytest.raises(ValidationError, match="already used"):
        manager.add(ComputedColumn("auto epa", "EPA * 2"), ingested.rows, ingested.catalog)
    with pytest.raises(ValidationError, match="column name"):
        manager.add(ComputedColumn(" ", "EPA"), ingested.rows, ingested.catalog)
    assert len(manager) == 0


def test_invalid_formula_leaves_manager_unchanged(ingested):
    manager = ComputedColumnManager()
    with pytest.raises(ValidationError):
        manager.add(ComputedColumn("Bad", "EPA +"), ingested.rows, ingested.catalog)
    assert manager.names == []


def test_computed_cannot_reference_computed(ingested):
    manager = ComputedColumnManager()
    rows, catalog = manager.add(ComputedColumn("Score", "EPA * 2"), ingested.rows, ingested.catalog)
    with pytest.raises(ValidationError, match="cannot reference"):
        manager.add(ComputedColumn("Double", "Score * 2"), rows, catalog)


def test_remove_drops_key_from_rows_and_catalog(ingested):
    manager = ComputedColumnManager()
    rows, catalog = manager.add(ComputedColumn("Score", "EPA * 2"), ingested.rows, ingested.catalog)
    rows, catalog = manager.remove("Score", rows, catalog)
    assert "Score" not in catalog
    assert all(r.get("Score") is None for r in rows)
    with pytest.raises(UnknownColumnError):
        manager.remove("Score", rows, catalog)


def test_recompute_is_idempotent(ingested):
    manager = ComputedColumnManager([ComputedColumn("Score", "EPA / Climb"), ComputedColumn("Good", "EPA > 31", ColumnType.BOOLEAN)])
    rows, catalog = manager.apply(ingested.rows, ingested.catalog)
    once = manager.recompute(rows, catalog.base_fields)
    twice = manager.recompute(once, catalog.base_fields)
    assert once.to_records() == twice.to_records()
    # Division by an empty (zero) climb value leaves the cell unset.
    assert once.get(971).get("Score") is None


def test_definitions_round_trip_through_dicts():
    manager = ComputedColumnManager([ComputedColumn("Good", "EPA > 31", ColumnType.BOOLEAN)])
    restored = ComputedColumnManager.from_dicts(manager.to_dicts() + [{"name": "x", "formula": "1", "type": "text"}])
    assert restored.columns == manager.columns
