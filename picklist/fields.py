"""Header canonicalization and the ordered field list shown to users."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

PICKLIST_ORDER = "Picklist Order"
TEAM = "Team"
RANK = "Rank"
STRUCTURAL_FIELDS: Tuple[str, ...] = (PICKLIST_ORDER, TEAM, RANK)

IDENTITY_HEADERS = ("team number", "team")

_WHITESPACE = re.compile(r"\s+")


def canonical_key(header: str) -> str:
    return _WHITESPACE.sub("", str(header).lower())


def lookup(values: Mapping[str, Any], field: str) -> Any:
    """Resolve a display field against a row's value mapping.

    Canonical-key lookup first, then a case-insensitive scan of the existing keys
    so rows restored from older saves (``autoEpa`` style keys) resolve the same way.
    """
    key = canonical_key(field)
    if key in values:
        return values[key]
    for existing in values:
        if existing.lower() == key:
            return values[existing]
    return None


def is_structural(field: str) -> bool:
    return field in STRUCTURAL_FIELDS


def find_identity_column(headers: Sequence[str]) -> Optional[int]:
    """Index of the team identity column; ``Team Number`` wins over ``Team``."""
    lowered = [h.lower() for h in headers]
    for name in IDENTITY_HEADERS:
        if name in lowered:
            return lowered.index(name)
    return None


@dataclass(frozen=True)
class FieldCatalog:
    base_fields: Tuple[str, ...]
    computed_fields: Tuple[str, ...] = ()

    @property
    def fields(self) -> List[str]:
        return list(self.base_fields) + list(self.computed_fields)

    @property
    def metric_fields(self) -> List[str]:
        return [f for f in self.base_fields if not is_structural(f)]

    @property
    def has_rank(self) -> bool:
        return any(f.lower() == RANK.lower() for f in self.base_fields)

    def key_for(self, name: str) -> str:
        return canonical_key(name)

    def base_keys(self) -> List[str]:
        return [canonical_key(f) for f in self.base_fields]

    def is_computed(self, name: str) -> bool:
        return name in self.computed_fields

    def with_computed(self, names: Iterable[str]) -> "FieldCatalog":
        return FieldCatalog(self.base_fields, tuple(names))

    def without_computed(self) -> "FieldCatalog":
        return FieldCatalog(self.base_fields, ())

    def __contains__(self, name: object) -> bool:
        return name in self.base_fields or name in self.computed_fields

    @classmethod
    def from_headers(cls, headers: Sequence[str], identity_index: int) -> "FieldCatalog":
        """Build the catalog for a freshly ingested CSV header row."""
        metrics = [
            h
            for i, h in enumerate(headers)
            if i != identity_index and h.lower() not in IDENTITY_HEADERS and canonical_key(h) != canonical_key(PICKLIST_ORDER)
        ]
        return cls((PICKLIST_ORDER, TEAM, *metrics))

    @classmethod
    def from_fields(cls, fields: Iterable[str], computed_names: Iterable[str] = ()) -> "FieldCatalog":
        """Rebuild a catalog from a persisted field list that mixes base and computed names."""
        computed = [c for c in computed_names]
        computed_set = set(computed)
        fields = list(fields)
        base = [f for f in fields if f not in computed_set]
        if not base or base[0] != PICKLIST_ORDER:
            base = [PICKLIST_ORDER] + [f for f in base if f != PICKLIST_ORDER]
        if TEAM not in base:
            base.insert(1, TEAM)
        return cls(tuple(base), tuple(computed))
