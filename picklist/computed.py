from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from picklist.errors import UnknownColumnError, ValidationError
from picklist.fields import FieldCatalog, canonical_key
from picklist.formula import ColumnType, CompiledFormula, compile_formula, evaluate_compiled, validate_formula
from picklist.rows import RowStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ComputedColumn:
    name: str
    formula: str
    type: ColumnType = ColumnType.NUMERIC

    @property
    def key(self) -> str:
        return canonical_key(self.name)

    @property
    def is_boolean(self) -> bool:
        return ColumnType(self.type) is ColumnType.BOOLEAN

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "formula": self.formula, "type": ColumnType(self.type).value}

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ComputedColumn":
        return cls(
            name=str(raw.get("name", "")).strip(),
            formula=str(raw.get("formula", "")).strip(),
            type=ColumnType(raw.get("type") or ColumnType.NUMERIC.value),
        )


class ComputedColumnManager:
    """Ordered computed-column definitions and their materialization into rows."""

    def __init__(self, columns: Iterable[ComputedColumn] = ()):
        self._columns: List[ComputedColumn] = list(columns)

    @property
    def columns(self) -> List[ComputedColumn]:
        return list(self._columns)

    @property
    def names(self) -> List[str]:
        return [c.name for c in self._columns]

    def __iter__(self) -> Iterator[ComputedColumn]:
        return iter(list(self._columns))

    def __len__(self) -> int:
        return len(self._columns)

    def get(self, name: str) -> Optional[ComputedColumn]:
        return next((c for c in self._columns if c.name == name), None)

    def boolean_names(self) -> List[str]:
        return [c.name for c in self._columns if c.is_boolean]

    def _index_of(self, column: ComputedColumn) -> Optional[int]:
        for i, existing in enumerate(self._columns):
            if existing.name == column.name or existing.key == column.key:
                return i
        return None

    def validate(self, column: ComputedColumn, catalog: FieldCatalog) -> ComputedColumn:
        name = (column.name or "").strip()
        formula = (column.formula or "").strip()
        available = [f for f in catalog.metric_fields]
        if not name:
            raise ValidationError("Please enter a column name", available)
        if not formula:
            raise ValidationError("Please enter a formula", available)
        if canonical_key(name) in catalog.base_keys():
            raise ValidationError(f"Column name {name!r} is already used by a data column", available)
        column = ComputedColumn(name, formula, ColumnType(column.type))
        validate_formula(formula, catalog.base_fields, column.type, computed_names=self.names)
        return column

    def add(self, column: ComputedColumn, rows: RowStore, catalog: FieldCatalog) -> Tuple[RowStore, FieldCatalog]:
        """Validate, store (overwriting a same-named column in place) and materialize over every row."""
        column = self.validate(column, catalog)
        columns = list(self._columns)
        index = self._index_of(column)
        stale_key = None
        if index is None:
            columns.append(column)
        else:
            stale_key = columns[index].key
            columns[index] = column
        new_rows = _recompute(columns, rows, catalog.base_fields, drop_keys=[stale_key] if stale_key else [])
        self._columns = columns
        logger.info("Computed column %r %s", column.name, "added" if index is None else "replaced")
        return new_rows, catalog.with_computed(self.names)

    def remove(self, name: str, rows: RowStore, catalog: FieldCatalog) -> Tuple[RowStore, FieldCatalog]:
        column = self.get(name)
        if column is None:
            raise UnknownColumnError(name)
        new_rows = RowStore()
        for row in rows:
            row = row.copy()
            row.discard(column.key)
            new_rows.add(row)
        self._columns = [c for c in self._columns if c.name != name]
        logger.info("Computed column %r removed", name)
        return new_rows, catalog.with_computed(self.names)

    def recompute(self, rows: RowStore, base_fields: Iterable[str]) -> RowStore:
        """Rerun every formula, in definition order, against the base fields only."""
        return _recompute(self._columns, rows, list(base_fields))

    def apply(self, rows: RowStore, catalog: FieldCatalog) -> Tuple[RowStore, FieldCatalog]:
        base = catalog.without_computed()
        return self.recompute(rows, base.base_fields), base.with_computed(self.names)

    def to_dicts(self) -> List[Dict[str, str]]:
        return [c.to_dict() for c in self._columns]

    @classmethod
    def from_dicts(cls, raw: Optional[Iterable[Mapping[str, Any]]]) -> "ComputedColumnManager":
        columns = []
        for item in raw or []:
            try:
                column = ComputedColumn.from_dict(item)
            except ValueError:
                logger.warning("Ignoring computed column with unknown type: %r", item)
                continue
            if column.name:
                columns.append(column)
        return cls(columns)


def _compile_all(columns: Iterable[ComputedColumn], base_fields: List[str]) -> List[Tuple[ComputedColumn, Optional[CompiledFormula]]]:
    compiled = []
    for column in columns:
        try:
            compiled.append((column, compile_formula(column.formula, base_fields)))
        except ValidationError as exc:
            logger.warning("Computed column %r cannot be computed: %s", column.name, exc.message)
            compiled.append((column, None))
    return compiled


def _recompute(columns: Iterable[ComputedColumn], rows: RowStore, base_fields: Iterable[str], drop_keys: Iterable[str] = ()) -> RowStore:
    base_fields = list(base_fields)
    compiled = _compile_all(columns, base_fields)
    drop_keys = list(drop_keys)
    out = RowStore()
    for row in rows:
        row = row.copy()
        for key in drop_keys:
            row.discard(key)
        for column, formula in compiled:
            value = evaluate_compiled(formula, row, column.type) if formula is not None else None
            if value is None:
                row.discard(column.key)
            else:
                row.set(column.key, value)
        out.add(row)
    return out
