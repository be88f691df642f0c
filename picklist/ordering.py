"""Row ordering: sort column/direction, manual drag order and direct order edits.

A table is always in exactly one ``OrderState``:

- ``sorted``: rows follow the active sort column and direction.
- ``manual``: a drag fixed the sequence; refreshed data is spliced in by team
  number until the next sort request.
- ``edited``: a picklist order was typed in; the sequence is left alone until
  the next refresh or sort.
"""

from __future__ import annotations

import locale
import logging
from enum import Enum
from functools import cmp_to_key
from typing import Any, Dict, Iterable, List, Optional, Set

from picklist.errors import InactiveRowError, UnknownTeamError
from picklist.fields import PICKLIST_ORDER, TEAM
from picklist.rows import INACTIVE_ORDER, Row, is_number

logger = logging.getLogger(__name__)

ASC = "asc"
DESC = "desc"


class OrderState(str, Enum):
    SORTED = "sorted"
    MANUAL = "manual"
    EDITED = "edited"


def default_direction(column: str) -> str:
    return ASC if column == PICKLIST_ORDER else DESC


def sort_value(row: Row, column: str) -> Any:
    if column == PICKLIST_ORDER:
        return row.picklist_order
    if column == TEAM:
        return row.team_number
    return row.get(column)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def compare_values(a: Any, b: Any) -> int:
    if is_number(a) and is_number(b):
        return (a > b) - (a < b)
    sa, sb = _as_text(a), _as_text(b)
    result = locale.strcoll(sa.casefold(), sb.casefold()) or locale.strcoll(sa, sb)
    return (result > 0) - (result < 0)


def sort_rows(rows: Iterable[Row], column: str, direction: str = ASC) -> List[Row]:
    """Stable sort; ties keep their input order in both directions."""
    sign = 1 if direction == ASC else -1
    return sorted(rows, key=cmp_to_key(lambda a, b: sign * compare_values(sort_value(a, column), sort_value(b, column))))


def move(rows: List[Row], index_from: int, index_to: int) -> List[Row]:
    n = len(rows)
    if not (0 <= index_from < n) or not (0 <= index_to < n):
        raise IndexError(f"Cannot move row {index_from} to {index_to} in a table of {n} rows")
    out = list(rows)
    row = out.pop(index_from)
    out.insert(index_to, row)
    return out


class OrderModel:
    def __init__(self, sort_column: str = PICKLIST_ORDER, sort_direction: str = ASC):
        self.sort_column = sort_column
        self.sort_direction = sort_direction if sort_direction in (ASC, DESC) else default_direction(sort_column)
        self.state = OrderState.SORTED
        self._view: List[Row] = []
        self._inactive: Set[int] = set()
        self._aside: Dict[int, int] = {}

    # ----- queries -----
    @property
    def visible(self) -> List[Row]:
        return list(self._view)

    def visible_teams(self) -> List[int]:
        return [r.team_number for r in self._view]

    def is_active(self, team_number: int) -> bool:
        self._find(team_number)
        return team_number not in self._inactive

    def active_rows(self) -> List[Row]:
        return [r for r in self._view if r.team_number not in self._inactive]

    def inactive_orders(self) -> Dict[int, int]:
        """Orders stashed by deactivation, keyed by team."""
        return dict(self._aside)

    def _find(self, team_number: int) -> Row:
        for row in self._view:
            if row.team_number == team_number:
                return row
        raise UnknownTeamError(team_number)

    def _resort(self) -> None:
        self._view = sort_rows(self._view, self.sort_column, self.sort_direction)
        self.state = OrderState.SORTED

    # ----- events -----
    def load(self, rows: Iterable[Row], sort_column: Optional[str] = None, sort_direction: Optional[str] = None,
             inactive_orders: Optional[Dict[int, int]] = None) -> List[Row]:
        """Start over with a new data set; activity is derived from the sentinel order."""
        if sort_column:
            self.sort_column = sort_column
            self.sort_direction = sort_direction if sort_direction in (ASC, DESC) else default_direction(sort_column)
        self._view = list(rows)
        self._inactive = {r.team_number for r in self._view if r.picklist_order == INACTIVE_ORDER}
        self._aside = {int(t): int(o) for t, o in (inactive_orders or {}).items() if int(t) in self._inactive}
        self._resort()
        return self.visible

    def sort_requested(self, column: str) -> List[Row]:
        if column == self.sort_column:
            self.sort_direction = DESC if self.sort_direction == ASC else ASC
        else:
            self.sort_column = column
            self.sort_direction = default_direction(column)
        self._resort()
        logger.debug("Sorted by %s %s", self.sort_column, self.sort_direction)
        return self.visible

    def set_sort(self, column: str, direction: str) -> List[Row]:
        self.sort_column = column
        self.sort_direction = direction if direction in (ASC, DESC) else default_direction(column)
        self._resort()
        return self.visible

    def row_dragged(self, index_from: int, index_to: int) -> List[Row]:
        self._view = move(self._view, index_from, index_to)
        self.state = OrderState.MANUAL
        return self.visible

    def order_edited(self, team_number: int, value: int) -> Row:
        row = self._find(team_number)
        if team_number in self._inactive:
            raise InactiveRowError(team_number)
        row.picklist_order = int(value)
        if self.state is not OrderState.MANUAL:
            self.state = OrderState.EDITED
        return row

    def data_refreshed(self, rows: Iterable[Row]) -> List[Row]:
        rows = list(rows)
        present = {r.team_number for r in rows}
        self._inactive &= present
        self._aside = {t: o for t, o in self._aside.items() if t in present}
        if self.state is OrderState.MANUAL and self._view:
            by_team = {r.team_number: r for r in rows}
            spliced = [by_team.pop(r.team_number, r) for r in self._view if r.team_number in present]
            spliced.extend(r for r in rows if r.team_number in by_team)
            self._view = spliced
            return self.visible
        self._view = rows
        self._resort()
        return self.visible

    def deactivate(self, team_number: int) -> Row:
        row = self._find(team_number)
        if team_number in self._inactive:
            return row
        self._aside[team_number] = row.picklist_order
        row.picklist_order = INACTIVE_ORDER
        self._inactive.add(team_number)
        if self.state is not OrderState.MANUAL:
            self.state = OrderState.EDITED
        return row

    def reactivate(self, team_number: int) -> Row:
        row = self._find(team_number)
        if team_number not in self._inactive:
            return row
        if team_number in self._aside:
            row.picklist_order = self._aside.pop(team_number)
        self._inactive.discard(team_number)
        if self.state is not OrderState.MANUAL:
            self.state = OrderState.EDITED
        return row
