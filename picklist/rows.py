from __future__ import annotations

import math
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Union

import pandas as pd

from picklist.errors import PicklistError, UnknownTeamError
from picklist.fields import PICKLIST_ORDER, TEAM, FieldCatalog, lookup

CellValue = Union[float, str, bool]

INACTIVE_ORDER = 999

TEAM_RECORD_KEY = "teamNumber"
ORDER_RECORD_KEY = "picklistOrder"


def check_cell(value: Any) -> CellValue:
    """Coerce a cell to one of the storable tagged types or raise."""
    if isinstance(value, bool) or isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return float(value)
    raise PicklistError(f"Unsupported cell value {value!r} ({type(value).__name__})")


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and not (isinstance(value, float) and math.isnan(value))


class Row:
    """One team's record: fixed identity, editable order, metric cells keyed by canonical field key."""

    __slots__ = ("_team_number", "picklist_order", "_values")

    def __init__(self, team_number: int, picklist_order: int, values: Optional[Mapping[str, Any]] = None):
        self._team_number = int(team_number)
        self.picklist_order = int(picklist_order)
        self._values: Dict[str, CellValue] = {}
        for key, value in (values or {}).items():
            self.set(key, value)

    @property
    def team_number(self) -> int:
        return self._team_number

    @property
    def values(self) -> Mapping[str, CellValue]:
        return dict(self._values)

    def keys(self) -> List[str]:
        return list(self._values)

    def get(self, field: str) -> Optional[CellValue]:
        return lookup(self._values, field)

    def set(self, key: str, value: Any) -> None:
        if key in (TEAM_RECORD_KEY, ORDER_RECORD_KEY):
            raise PicklistError(f"{key} is not a metric key")
        self._values[key] = check_cell(value)

    def discard(self, key: str) -> None:
        self._values.pop(key, None)

    def display_value(self, field: str) -> Optional[CellValue]:
        if field == PICKLIST_ORDER:
            return self.picklist_order
        if field == TEAM:
            return self.team_number
        return self.get(field)

    def copy(self) -> "Row":
        return Row(self._team_number, self.picklist_order, self._values)

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {TEAM_RECORD_KEY: self._team_number, ORDER_RECORD_KEY: self.picklist_order}
        record.update(self._values)
        return record

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Row":
        values = {k: v for k, v in record.items() if k not in (TEAM_RECORD_KEY, ORDER_RECORD_KEY) and v is not None}
        return cls(int(record[TEAM_RECORD_KEY]), int(record.get(ORDER_RECORD_KEY) or 0), values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Row):
            return NotImplemented
        return (
            self._team_number == other._team_number
            and self.picklist_order == other.picklist_order
            and self._values == other._values
        )

    def __repr__(self) -> str:
        return f"Row(team={self._team_number}, order={self.picklist_order}, values={self._values!r})"


class RowStore:
    """Ordered rows with unique team numbers."""

    def __init__(self, rows: Iterable[Row] = ()):
        self._rows: List[Row] = []
        self._by_team: Dict[int, Row] = {}
        for row in rows:
            self.add(row)

    def add(self, row: Row) -> None:
        if row.team_number in self._by_team:
            raise PicklistError(f"Duplicate team number {row.team_number}")
        self._rows.append(row)
        self._by_team[row.team_number] = row

    def get(self, team_number: int) -> Row:
        try:
            return self._by_team[team_number]
        except KeyError:
            raise UnknownTeamError(team_number) from None

    def __contains__(self, team_number: object) -> bool:
        return team_number in self._by_team

    def __iter__(self) -> Iterator[Row]:
        return iter(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    @property
    def rows(self) -> List[Row]:
        return list(self._rows)

    def team_numbers(self) -> List[int]:
        return [r.team_number for r in self._rows]

    def copy(self) -> "RowStore":
        return RowStore(r.copy() for r in self._rows)

    def to_records(self) -> List[Dict[str, Any]]:
        return [r.to_record() for r in self._rows]

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> "RowStore":
        store = cls()
        for record in records:
            row = Row.from_record(record)
            if row.team_number in store:
                continue
            store.add(row)
        return store


def rows_to_frame(rows: Iterable[Row], catalog: FieldCatalog) -> pd.DataFrame:
    """Tabular view with display field names as columns, in the given row order."""
    fields = catalog.fields
    records = [{f: row.display_value(f) for f in fields} for row in rows]
    if not records:
        return pd.DataFrame(columns=fields)
    return pd.DataFrame.from_records(records, columns=fields)
