"""One user's working picklist: the table, its computed columns and its ordering.

Every mutating operation builds the new rows/catalog first and only assigns
them once nothing else can fail, so an error leaves the previous state intact.
Writes to the store are best-effort; failures become entries in ``warnings``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import pandas as pd

from picklist.charts import ranking_heatmap, to_vega_spec
from picklist.computed import ComputedColumn, ComputedColumnManager
from picklist.errors import EmptyDataError, PersistenceError, PicklistError, UnknownPicklistError
from picklist.fields import PICKLIST_ORDER, TEAM, FieldCatalog
from picklist.formula import ColumnType
from picklist.ingest import ingest_csv
from picklist.merge import apply_update_csv
from picklist.ordering import OrderModel
from picklist.persistence import (
    COMPUTED_COLUMNS_KEY,
    TABLE_STATE_KEY,
    MemoryStore,
    PicklistLibrary,
    RemotePicklistClient,
    SavedPicklist,
    Store,
    json_safe,
    namespaced,
)
from picklist.rows import Row, RowStore, rows_to_frame
from picklist.stats import ColumnStats, column_stats
from picklist.summary import PicklistSummary, summarize

logger = logging.getLogger(__name__)

_WRITE_FAILED = "Could not save picklist state: "


class PicklistSession:
    def __init__(
        self,
        store: Optional[Store] = None,
        computed: Optional[ComputedColumnManager] = None,
        namespace: str = "",
        remote: Optional[RemotePicklistClient] = None,
    ):
        self.store = store if store is not None else MemoryStore()
        self.namespace = namespace
        self.computed = computed if computed is not None else ComputedColumnManager()
        self.remote = remote
        self.library = PicklistLibrary(self.store)
        self.catalog = FieldCatalog((PICKLIST_ORDER, TEAM))
        self.rows = RowStore()
        self.order = OrderModel()
        self.show_table = False
        self.warnings: List[str] = []

    # ----- state accessors -----
    @property
    def fields(self) -> List[str]:
        return self.catalog.fields

    @property
    def sort_column(self) -> str:
        return self.order.sort_column

    @property
    def sort_direction(self) -> str:
        return self.order.sort_direction

    def _key(self, key: str) -> str:
        return namespaced(self.namespace, key)

    def _swap(self, rows: RowStore, catalog: FieldCatalog) -> None:
        self.rows = rows
        self.catalog = catalog

    # ----- data loading -----
    def upload_csv(self, text: str) -> int:
        """Replace the table with a freshly ingested CSV; computed columns are reapplied."""
        result = ingest_csv(text)
        if not len(result.rows):
            raise EmptyDataError()
        rows, catalog = self.computed.apply(result.rows, result.catalog)
        self._swap(rows, catalog)
        self.order.load(rows)
        self.show_table = True
        logger.info("Loaded %d teams with %d fields", len(rows), len(catalog.fields))
        self.persist()
        return len(rows)

    def update_csv(self, text: str) -> int:
        """Merge a partial metrics CSV into the existing rows, keeping identity and order."""
        merged = apply_update_csv(self.rows, text)
        rows = self.computed.recompute(merged, self.catalog.base_fields)
        self.rows = rows
        self.order.data_refreshed(rows)
        self.persist()
        return len(rows)

    # ----- computed columns -----
    def add_computed_column(self, name: str, formula: str, column_type: ColumnType | str = ColumnType.NUMERIC) -> ComputedColumn:
        column = ComputedColumn(name=(name or "").strip(), formula=(formula or "").strip(), type=ColumnType(column_type))
        rows, catalog = self.computed.add(column, self.rows, self.catalog)
        self._swap(rows, catalog)
        self.order.data_refreshed(rows)
        self.persist()
        return self.computed.get(column.name) or column

    def remove_computed_column(self, name: str) -> None:
        rows, catalog = self.computed.remove(name, self.rows, self.catalog)
        self._swap(rows, catalog)
        self.order.data_refreshed(rows)
        self.persist()

    # ----- ordering -----
    def sortable_columns(self) -> List[str]:
        """Every displayed column, computed ones included."""
        return self.catalog.fields

    def sort_by(self, column: str) -> List[Row]:
        if column not in self.sortable_columns():
            raise PicklistError(f"Cannot sort by unknown column {column!r}")
        visible = self.order.sort_requested(column)
        self.persist()
        return visible

    def reorder(self, index_from: int, index_to: int) -> List[Row]:
        visible = self.order.row_dragged(index_from, index_to)
        self.persist()
        return visible

    def edit_order(self, team_number: int, value: int) -> Row:
        row = self.order.order_edited(team_number, value)
        self.persist()
        return row

    def deactivate(self, team_number: int) -> Row:
        row = self.order.deactivate(team_number)
        self.persist()
        return row

    def reactivate(self, team_number: int) -> Row:
        row = self.order.reactivate(team_number)
        self.persist()
        return row

    # ----- views -----
    def visible_rows(self) -> List[Row]:
        return self.order.visible

    def stats(self) -> Dict[str, ColumnStats]:
        return column_stats(self.rows, self.catalog, self.computed.boolean_names())

    def summary(self) -> PicklistSummary:
        return summarize(self.order.active_rows())

    def table_payload(self, include_chart: bool = True) -> Dict[str, Any]:
        visible = self.order.visible
        stats = self.stats()
        summary = self.summary()
        chart = ranking_heatmap(visible, self.catalog, stats) if include_chart else None
        return {
            "fields": self.catalog.fields,
            "computedColumns": self.computed.to_dicts(),
            "sortOrder": self.order.sort_column,
            "sortDirection": self.order.sort_direction,
            "orderState": self.order.state.value,
            "showTable": self.show_table,
            "rows": [
                {
                    "team": row.team_number,
                    "picklistOrder": row.picklist_order,
                    "active": self.order.is_active(row.team_number),
                    "values": {f: row.display_value(f) for f in self.catalog.fields},
                }
                for row in visible
            ],
            "stats": {f: {"min": s.min, "max": s.max} for f, s in stats.items()},
            "summary": {
                "bestPick": summary.best_pick,
                "bestCoralBot": summary.best_coral_bot,
                "bestAlgaeBot": summary.best_algae_bot,
            },
            "heatmap": to_vega_spec(chart) if chart is not None else None,
            "warnings": self.take_warnings(),
        }

    def export_frame(self) -> pd.DataFrame:
        return rows_to_frame(self.order.visible, self.catalog)

    # ----- saved picklists -----
    def _records(self) -> List[Dict[str, Any]]:
        return json_safe([r.to_record() for r in self.order.visible])

    def saved_picklists(self) -> List[SavedPicklist]:
        return self.library.list()

    def save_picklist(self, name: str) -> SavedPicklist:
        """Snapshot the current table under ``name``; raises on invalid name or storage failure."""
        picklist = self.library.save(
            name,
            data=self._records(),
            fields=self.catalog.fields,
            sort_order=self.order.sort_column,
            sort_direction=self.order.sort_direction,
            computed_columns=self.computed.to_dicts(),
        )
        logger.info("Saved picklist %r (%d teams)", name, len(picklist.data))
        return picklist

    def load_picklist(self, name: str) -> SavedPicklist:
        picklist = self.library.get(name)
        if picklist is None:
            raise UnknownPicklistError(name)
        computed = self.computed
        if picklist.computed_columns is not None:
            computed = ComputedColumnManager.from_dicts(picklist.computed_columns)
        loaded = RowStore.from_records(picklist.data)
        catalog = FieldCatalog.from_fields(picklist.fields, computed.names)
        rows, catalog = computed.apply(loaded, catalog)
        self.computed = computed
        self._swap(rows, catalog)
        self.order.load(rows, picklist.sort_order, picklist.sort_direction)
        self.show_table = True
        self.persist()
        return picklist

    def delete_picklist(self, name: str) -> bool:
        return self.library.delete(name)

    def push_remote(self, name: str) -> bool:
        if self.remote is None:
            raise PicklistError("Remote picklist saving is not configured")
        try:
            self.remote.push(name, self._records())
        except PersistenceError as exc:
            logger.warning("Remote save of %r failed: %s", name, exc)
            self.warnings.append(str(exc))
            return False
        return True

    def take_warnings(self) -> List[str]:
        """Return pending warnings and clear them."""
        out, self.warnings = self.warnings, []
        return out

    # ----- store -----
    def persist(self) -> bool:
        """Write table state and computed columns; warnings from an earlier write are dropped."""
        self.warnings = [w for w in self.warnings if not w.startswith(_WRITE_FAILED)]
        try:
            if self.show_table:
                self.store.save(self._key(TABLE_STATE_KEY), {
                    "csvData": json_safe(self.rows.to_records()),
                    "csvFields": self.catalog.fields,
                    "sortOrder": self.order.sort_column,
                    "sortDirection": self.order.sort_direction,
                    "showTable": self.show_table,
                    "inactiveOrders": {str(t): o for t, o in self.order.inactive_orders().items()},
                })
            self.store.save(self._key(COMPUTED_COLUMNS_KEY), self.computed.to_dicts())
        except PersistenceError as exc:
            logger.warning("Could not persist picklist state: %s", exc)
            self.warnings.append(f"{_WRITE_FAILED}{exc}")
            return False
        return True

    def restore(self) -> bool:
        """Reload table state and computed columns from the store; False when nothing usable was found."""
        try:
            state = self.store.load(self._key(TABLE_STATE_KEY))
            raw_computed = self.store.load(self._key(COMPUTED_COLUMNS_KEY))
        except PersistenceError as exc:
            logger.warning("Could not restore picklist state: %s", exc)
            self.warnings.append(str(exc))
            return False

        computed = ComputedColumnManager.from_dicts(raw_computed) if raw_computed else self.computed
        if not state or not state.get("csvData"):
            self.computed = computed
            return False
        try:
            loaded = RowStore.from_records(state["csvData"])
            catalog = FieldCatalog.from_fields(state.get("csvFields") or [], computed.names)
            rows, catalog = computed.apply(loaded, catalog)
            inactive = {int(t): int(o) for t, o in (state.get("inactiveOrders") or {}).items()}
        except (KeyError, TypeError, ValueError, PicklistError) as exc:
            logger.warning("Ignoring unreadable table state: %s", exc)
            self.warnings.append(f"Stored table state is unreadable: {exc}")
            return False
        self.computed = computed
        self._swap(rows, catalog)
        self.order.load(rows, state.get("sortOrder"), state.get("sortDirection"), inactive)
        self.show_table = bool(state.get("showTable", True))
        return True
