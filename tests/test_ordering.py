import pytest

from picklist.errors import InactiveRowError, UnknownTeamError
from picklist.ordering import ASC, DESC, OrderModel, OrderState, sort_rows
from picklist.rows import INACTIVE_ORDER, Row


def _rows(*specs):
    return [Row(team, order, values) for team, order, values in specs]


def test_picklist_order_sort_and_toggle():
    model = OrderModel()
    model.load(_rows((1, 3, {}), (2, 1, {}), (3, 2, {})))
    assert [r.picklist_order for r in model.visible] == [1, 2, 3]
    model.sort_requested("Picklist Order")
    assert model.sort_direction == DESC
    assert [r.picklist_order for r in model.visible] == [3, 2, 1]


def test_new_column_defaults_to_descending():
    model = OrderModel()
    model.load(_rows((1, 1, {"epa": 10}), (2, 2, {"epa": 30}), (3, 3, {"epa": 20})))
    model.sort_requested("EPA")
    assert (model.sort_column, model.sort_direction) == ("EPA", DESC)
    assert model.visible_teams() == [2, 3, 1]


def test_text_sort_is_case_insensitive_and_stable():
    rows = _rows((1, 1, {"notes": "beta"}), (2, 2, {"notes": "Alpha"}), (3, 3, {"notes": "alpha"}), (4, 4, {}))
    assert [r.team_number for r in sort_rows(rows, "Notes", ASC)][0] == 4
    ordered = [r.team_number for r in sort_rows(rows[:3], "Notes", ASC)]
    assert ordered[-1] == 1
    assert set(ordered[:2]) == {2, 3}


def test_sort_ties_keep_input_order():
    rows = _rows((1, 1, {"epa": 5}), (2, 2, {"epa": 5}), (3, 3, {"epa": 9}))
    assert [r.team_number for r in sort_rows(rows, "EPA", DESC)] == [3, 1, 2]
    assert [r.team_number for r in sort_rows(rows, "EPA", ASC)] == [1, 2, 3]


def test_manual_order_survives_refresh():
    model = OrderModel()
    model.load(_rows((1, 1, {}), (2, 2, {}), (3, 3, {})))
    model.row_dragged(2, 0)
    assert model.state is OrderState.MANUAL
    assert model.visible_teams() == [3, 1, 2]
    model.data_refreshed(_rows((1, 1, {"epa": 1}), (2, 2, {}), (4, 4, {}), (3, 3, {})))
    assert model.visible_teams() == [3, 1, 2, 4]
    assert model.visible[1].get("EPA") == 1.0
    model.sort_requested("Picklist Order")
    assert model.state is OrderState.SORTED


def test_refresh_in_sorted_state_resorts():
    model = OrderModel()
    model.load(_rows((1, 1, {"epa": 1}), (2, 2, {"epa": 2})))
    model.set_sort("EPA", DESC)
    model.data_refreshed(_rows((1, 1, {"epa": 5}), (2, 2, {"epa": 2})))
    assert model.visible_teams() == [1, 2]


def test_drag_out_of_range():
    model = OrderModel()
    model.load(_rows((1, 1, {})))
    with pytest.raises(IndexError):
        model.row_dragged(0, 3)


def test_deactivate_then_reactivate_restores_order():
    model = OrderModel()
    model.load(_rows((1, 1, {}), (2, 5, {})))
    row = model.deactivate(2)
    assert row.picklist_order == INACTIVE_ORDER
    assert not model.is_active(2)
    assert model.inactive_orders() == {2: 5}
    assert [r.team_number for r in model.active_rows()] == [1]
    assert model.reactivate(2).picklist_order == 5
    assert model.is_active(2)
    assert model.inactive_orders() == {}


def test_activity_is_derived_from_the_sentinel_on_load():
    model = OrderModel()
    model.load(_rows((1, 1, {}), (2, INACTIVE_ORDER, {})), inactive_orders={"2": 4})
    assert not model.is_active(2)
    assert model.reactivate(2).picklist_order == 4


def test_order_edit():
    model = OrderModel()
    model.load(_rows((1, 1, {}), (2, 2, {})))
    model.order_edited(1, 10)
    assert model.state is OrderState.EDITED
    # The sequence is not re-sorted until the next sort or refresh.
    assert model.visible_teams() == [1, 2]
    model.deactivate(2)
    with pytest.raises(InactiveRowError):
        model.order_edited(2, 3)
    with pytest.raises(UnknownTeamError):
        model.order_edited(99, 3)
