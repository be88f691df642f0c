from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from picklist.errors import FormatError
from picklist.fields import IDENTITY_HEADERS, PICKLIST_ORDER, FieldCatalog, canonical_key, find_identity_column
from picklist.rows import CellValue, Row, RowStore

logger = logging.getLogger(__name__)

TOO_FEW_LINES = "CSV must have at least a header row and one data row"
MISSING_IDENTITY = "CSV must have a 'Team Number' or 'Team' column"

_INT_PREFIX = re.compile(r"\s*([+-]?\d+)")
_FLOAT_PREFIX = re.compile(r"\s*([+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?))")


@dataclass
class IngestResult:
    rows: RowStore
    catalog: FieldCatalog
    skipped_lines: int = 0

    @property
    def fields(self) -> List[str]:
        return self.catalog.fields


def split_lines(text: str) -> List[str]:
    return text.strip().split("\n")


def split_cells(line: str) -> List[str]:
    # No quoting support: embedded commas always split.
    return [c.strip() for c in line.split(",")]


def parse_team_number(cell: str) -> Optional[int]:
    """Integer prefix of the cell (``"254b"`` -> 254); None unless positive."""
    match = _INT_PREFIX.match(cell)
    if not match:
        return None
    value = int(match.group(1))
    return value if value > 0 else None


def parse_float(cell: str) -> Optional[float]:
    match = _FLOAT_PREFIX.match(cell)
    if not match:
        return None
    token = match.group(1)
    if token.lstrip("+-") == "Infinity":
        return -math.inf if token.startswith("-") else math.inf
    return float(token)


def parse_cell(cell: str) -> CellValue:
    number = parse_float(cell)
    return number if number is not None else cell


def read_header(text: str) -> Tuple[List[str], int, List[str]]:
    """Split the text into (headers, identity index, data lines); raises FormatError."""
    lines = split_lines(text)
    if len(lines) < 2:
        raise FormatError(TOO_FEW_LINES)
    headers = split_cells(lines[0])
    identity_index = find_identity_column(headers)
    if identity_index is None:
        raise FormatError(MISSING_IDENTITY)
    return headers, identity_index, lines[1:]


def ingest_csv(text: str) -> IngestResult:
    headers, identity_index, data_lines = read_header(text)
    catalog = FieldCatalog.from_headers(headers, identity_index)

    metric_columns = [
        (i, canonical_key(h))
        for i, h in enumerate(headers)
        if i != identity_index and h.lower() not in IDENTITY_HEADERS and canonical_key(h) != canonical_key(PICKLIST_ORDER)
    ]

    store = RowStore()
    skipped = 0
    picklist_order = 1
    for line in data_lines:
        line = line.strip()
        if not line:
            continue
        cells = split_cells(line)
        if len(cells) != len(headers):
            skipped += 1
            continue
        team_number = parse_team_number(cells[identity_index])
        if team_number is None or team_number in store:
            skipped += 1
            continue
        row = Row(team_number, picklist_order, {key: parse_cell(cells[i]) for i, key in metric_columns})
        store.add(row)
        picklist_order += 1

    if skipped:
        logger.info("Skipped %d malformed or duplicate CSV rows", skipped)
    logger.debug("Ingested %d rows with fields %s", len(store), catalog.fields)
    return IngestResult(rows=store, catalog=catalog, skipped_lines=skipped)
