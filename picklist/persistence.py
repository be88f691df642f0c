"""Key-value persistence for table state, computed columns and saved picklists.

The engine only talks to a ``Store``; which backend sits behind it (memory, a
directory of JSON files) is decided by whoever builds the session.
"""

from __future__ import annotations

import contextlib
import json
import logging
import math
import os
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol
from urllib.parse import quote

import requests

from picklist.errors import PersistenceError, ValidationError

logger = logging.getLogger(__name__)

TABLE_STATE_KEY = "thunderpick_table_state"
COMPUTED_COLUMNS_KEY = "thunderpick_computed_columns"
SAVED_PICKLISTS_KEY = "thunderpick_saved_picklists"


class Store(Protocol):
    def load(self, key: str) -> Optional[Any]:
        ...

    def save(self, key: str, value: Any) -> None:
        ...


def _dumps(key: str, value: Any) -> str:
    try:
        return json.dumps(value, allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise PersistenceError(f"Cannot serialize {key}: {exc}") from exc


def _loads(key: str, text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError as exc:
        raise PersistenceError(f"Stored {key} is not valid JSON: {exc}") from exc


class MemoryStore:
    """Stores serialized JSON text so behaviour matches the file store."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def load(self, key: str) -> Optional[Any]:
        text = self._data.get(key)
        return None if text is None else _loads(key, text)

    def save(self, key: str, value: Any) -> None:
        self._data[key] = _dumps(key, value)

    def keys(self) -> List[str]:
        return list(self._data)


class JsonFileStore:
    """One ``<key>.json`` file per key inside ``directory``."""

    def __init__(self, directory: os.PathLike | str):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        # Distinct keys map to distinct files.
        return self.directory / f"{quote(key, safe='')}.json"

    def load(self, key: str) -> Optional[Any]:
        path = self._path(key)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise PersistenceError(f"Cannot read {path}: {exc}") from exc
        return _loads(key, text)

    def save(self, key: str, value: Any) -> None:
        text = _dumps(key, value)
        path = self._path(key)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".part")
        except OSError as exc:
            raise PersistenceError(f"Cannot write {path}: {exc}") from exc
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(text)
            os.replace(tmp, path)
        except OSError as exc:
            with contextlib.suppress(OSError):
                os.unlink(tmp)
            raise PersistenceError(f"Cannot write {path}: {exc}") from exc


def namespaced(namespace: str, key: str) -> str:
    return f"{namespace}:{key}" if namespace else key


# ---------- saved picklists ----------

@dataclass
class SavedPicklist:
    name: str
    data: List[Dict[str, Any]]
    fields: List[str]
    sort_order: str
    sort_direction: str
    timestamp: int
    computed_columns: Optional[List[Dict[str, str]]] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "name": self.name,
            "data": self.data,
            "fields": self.fields,
            "sortOrder": self.sort_order,
            "sortDirection": self.sort_direction,
            "timestamp": self.timestamp,
        }
        if self.computed_columns is not None:
            out["computedColumns"] = self.computed_columns
        return out

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "SavedPicklist":
        return cls(
            name=str(raw["name"]),
            data=list(raw.get("data") or []),
            fields=list(raw.get("fields") or []),
            sort_order=raw.get("sortOrder") or "Picklist Order",
            sort_direction=raw.get("sortDirection") or "asc",
            timestamp=int(raw.get("timestamp") or 0),
            computed_columns=raw.get("computedColumns"),
        )


def check_picklist_name(name: str) -> str:
    if not name:
        raise ValidationError("Please enter a picklist name")
    if " " in name:
        raise ValidationError("Picklist name cannot contain spaces")
    return name


class PicklistLibrary:
    def __init__(self, store: Store, key: str = SAVED_PICKLISTS_KEY):
        self.store = store
        self.key = key

    def list(self) -> List[SavedPicklist]:
        raw = self.store.load(self.key) or []
        out = []
        for item in raw:
            try:
                out.append(SavedPicklist.from_dict(item))
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping unreadable saved picklist entry")
        return out

    def get(self, name: str) -> Optional[SavedPicklist]:
        return next((p for p in self.list() if p.name == name), None)

    def save(
        self,
        name: str,
        data: List[Dict[str, Any]],
        fields: List[str],
        sort_order: str = "Picklist Order",
        sort_direction: str = "asc",
        computed_columns: Optional[List[Dict[str, str]]] = None,
        timestamp: Optional[int] = None,
    ) -> SavedPicklist:
        check_picklist_name(name)
        picklist = SavedPicklist(
            name=name,
            data=data,
            fields=list(fields),
            sort_order=sort_order,
            sort_direction=sort_direction,
            timestamp=int(time.time() * 1000) if timestamp is None else timestamp,
            computed_columns=computed_columns,
        )
        picklists = self.list()
        index = next((i for i, p in enumerate(picklists) if p.name == name), None)
        if index is None:
            picklists.append(picklist)
        else:
            picklists[index] = picklist
        self.store.save(self.key, [p.to_dict() for p in picklists])
        return picklist

    def delete(self, name: str) -> bool:
        picklists = self.list()
        remaining = [p for p in picklists if p.name != name]
        if len(remaining) == len(picklists):
            return False
        self.store.save(self.key, [p.to_dict() for p in remaining])
        return True


# ---------- legacy remote save ----------

@dataclass
class RemotePicklistClient:
    url: str
    timeout: float = 10.0
    session: requests.Session = field(default_factory=requests.Session)

    def push(self, name: str, data: List[Dict[str, Any]]) -> None:
        payload = {"name": name, "data": data, "static": True}
        try:
            response = self.session.post(self.url, json=payload, headers={"Content-Type": "application/json"}, timeout=self.timeout)
        except requests.RequestException as exc:
            raise PersistenceError(f"Remote save failed: {exc}") from exc
        if not response.ok:
            raise PersistenceError(f"Remote save returned {response.status_code}: {response.text[:200]}")
        logger.info("Pushed picklist %r (%d rows) to %s", name, len(data), self.url)


def json_safe(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Non-finite numbers are stored as null, the way JSON.stringify writes them."""
    out = []
    for record in records:
        clean = {}
        for key, value in record.items():
            if isinstance(value, float) and not math.isfinite(value):
                value = None
            clean[key] = value
        out.append(clean)
    return out
