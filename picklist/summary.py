from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from picklist.rows import Row, is_number


@dataclass(frozen=True)
class PicklistSummary:
    best_pick: Optional[int] = None
    best_coral_bot: Optional[int] = None
    best_algae_bot: Optional[int] = None


def _order_rank(row: Row) -> float:
    # An order of 0 means "not ranked".
    return row.picklist_order or float("inf")


def _find_key(rows: List[Row], *parts: str) -> Optional[str]:
    for key in rows[0].keys():
        lowered = key.lower()
        if all(p in lowered for p in parts):
            return key
    return None


def _best_by(rows: List[Row], key: str) -> Row:
    best = rows[0]
    best_value = float("-inf")
    for row in rows:
        value = row.values.get(key)
        value = float(value) if is_number(value) else float("-inf")
        if value > best_value:
            best, best_value = row, value
    return best


def summarize(active_rows: List[Row]) -> PicklistSummary:
    if not active_rows:
        return PicklistSummary()
    best_pick = min(active_rows, key=_order_rank)

    coral_key = _find_key(active_rows, "coral", "teleop")
    coral = _best_by(active_rows, coral_key) if coral_key else best_pick

    algae_key = _find_key(active_rows, "algae", "net")
    algae = _best_by(active_rows, algae_key) if algae_key else best_pick

    return PicklistSummary(
        best_pick=best_pick.team_number,
        best_coral_bot=coral.team_number,
        best_algae_bot=algae.team_number,
    )
