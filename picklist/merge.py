"""Merge a partial "metrics update" CSV into an existing row set.

Identity (team number) and the user's ordering are never taken from the update.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Mapping

from picklist.errors import EmptyDataError
from picklist.fields import canonical_key
from picklist.ingest import parse_cell, parse_team_number, read_header, split_cells
from picklist.rows import CellValue, RowStore

logger = logging.getLogger(__name__)

UpdateMap = Dict[int, Dict[str, CellValue]]

_SEPARATORS = re.compile(r"[\s_-]")


def is_protected_header(header: str) -> bool:
    normalized = _SEPARATORS.sub("", header.lower())
    return "team" in normalized or "picklistorder" in normalized


def is_protected_key(key: str) -> bool:
    lowered = key.lower()
    return "team" in lowered or "picklist" in lowered


def parse_update_csv(text: str) -> UpdateMap:
    headers, identity_index, data_lines = read_header(text)
    metric_columns = [
        (i, canonical_key(h))
        for i, h in enumerate(headers)
        if i != identity_index and not is_protected_header(h)
    ]
    dropped = [h for i, h in enumerate(headers) if i != identity_index and is_protected_header(h)]
    if dropped:
        logger.info("Ignoring protected update columns: %s", dropped)

    updates: UpdateMap = {}
    for line in data_lines:
        line = line.strip()
        if not line:
            continue
        cells = split_cells(line)
        if len(cells) != len(headers):
            continue
        team_number = parse_team_number(cells[identity_index])
        if team_number is None:
            continue
        updates[team_number] = {key: parse_cell(cells[i]) for i, key in metric_columns}
    return updates


def merge_update(rows: RowStore, updates: Mapping[int, Mapping[str, CellValue]]) -> RowStore:
    merged = RowStore()
    touched = 0
    for existing in rows:
        metrics = updates.get(existing.team_number)
        if metrics is None:
            merged.add(existing)
            continue
        # Row.copy() carries team_number and picklist_order from the existing row.
        updated = existing.copy()
        for key, value in metrics.items():
            if is_protected_key(key):
                continue
            updated.set(key, value)
        merged.add(updated)
        touched += 1
    unknown = len([t for t in updates if t not in rows])
    logger.info("Merged update into %d of %d rows (%d update rows had no matching team)", touched, len(rows), unknown)
    return merged


def apply_update_csv(rows: RowStore, text: str) -> RowStore:
    updates = parse_update_csv(text)
    if not updates:
        raise EmptyDataError()
    return merge_update(rows, updates)
