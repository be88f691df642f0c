from __future__ import annotations

import logging
import math
import threading
import uuid
from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd
from fastapi import FastAPI, Query
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from api.schemas import (
    ComputedColumnModel,
    CsvPayload,
    LoadResponse,
    OrderEditRequest,
    PicklistSaveRequest,
    RemoteSaveRequest,
    ReorderRequest,
    RowResponse,
    SavedPicklistInfo,
    SavedPicklistsResponse,
    SessionResponse,
    SortRequest,
)
from picklist.config import get_settings
from picklist.errors import (
    FormatError,
    InactiveRowError,
    PicklistError,
    UnknownColumnError,
    UnknownPicklistError,
    UnknownTeamError,
    ValidationError,
)
from picklist.persistence import JsonFileStore, RemotePicklistClient, SavedPicklist, Store
from picklist.rows import Row
from picklist.session import PicklistSession

settings = get_settings()
logging.basicConfig(level=settings.log_level)

app = FastAPI(title="Picklist API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.store = JsonFileStore(settings.storage_dir)

_sessions: Dict[str, Tuple[PicklistSession, threading.Lock]] = {}
_sessions_lock = threading.Lock()


class UnknownSessionError(KeyError):
    def __str__(self) -> str:
        return f"Session {self.args[0]!r} does not exist"


def _store() -> Store:
    return app.state.store


def _remote() -> Optional[RemotePicklistClient]:
    if not settings.remote_url:
        return None
    return RemotePicklistClient(settings.remote_url, timeout=settings.remote_timeout)


def _session(session_id: str) -> Tuple[PicklistSession, threading.Lock]:
    with _sessions_lock:
        try:
            return _sessions[session_id]
        except KeyError:
            raise UnknownSessionError(session_id) from None


def _json(data: object, status_code: int = 200) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
            },
        ),
    )


def _error(exc: Exception, where: str) -> JSONResponse:
    content = {"error": str(exc), "type": type(exc).__name__}
    if isinstance(exc, InactiveRowError):
        return JSONResponse(status_code=409, content=content)
    if isinstance(exc, (UnknownSessionError, UnknownTeamError, UnknownColumnError, UnknownPicklistError)):
        return JSONResponse(status_code=404, content=content)
    if isinstance(exc, ValidationError):
        content["error"] = exc.message
        content["available_columns"] = exc.available_columns
        return JSONResponse(status_code=400, content=content)
    if isinstance(exc, (FormatError, PicklistError, IndexError)):
        return JSONResponse(status_code=400, content=content)
    logger.exception("%s failed", where)
    return JSONResponse(status_code=500, content=content)


def _row(session: PicklistSession, row: Row) -> dict:
    return RowResponse(
        team=row.team_number,
        picklist_order=row.picklist_order,
        active=session.order.is_active(row.team_number),
    ).model_dump()


def _picklist_info(picklist: SavedPicklist) -> SavedPicklistInfo:
    return SavedPicklistInfo(
        name=picklist.name,
        timestamp=picklist.timestamp,
        teams=len(picklist.data),
        fields=picklist.fields,
        sort_order=picklist.sort_order,
        sort_direction=picklist.sort_direction,
        computed_columns=picklist.computed_columns,
    )


@app.post("/sessions")
def create_session(session_id: Optional[str] = Query(default=None)):
    """Open a session; passing a known id reattaches to (and restores) its stored state."""
    try:
        session_id = session_id or uuid.uuid4().hex
        with _sessions_lock:
            existing = session_id in _sessions
        if existing:
            return _json(SessionResponse(session_id=session_id, restored=False).model_dump())
        # Store reads happen outside the registry lock.
        session = PicklistSession(_store(), namespace=session_id, remote=_remote())
        restored = session.restore()
        with _sessions_lock:
            entry = _sessions.setdefault(session_id, (session, threading.Lock()))
        if entry[0] is not session:
            return _json(SessionResponse(session_id=session_id, restored=False).model_dump())
        return _json(SessionResponse(session_id=session_id, restored=restored).model_dump(), status_code=201)
    except Exception as exc:
        return _error(exc, "create_session")


@app.delete("/sessions/{session_id}")
def close_session(session_id: str):
    with _sessions_lock:
        existed = _sessions.pop(session_id, None) is not None
    return _json({"closed": existed})


@app.post("/sessions/{session_id}/upload")
def upload(session_id: str, payload: CsvPayload):
    try:
        session, lock = _session(session_id)
        with lock:
            count = session.upload_csv(payload.csv_text)
            return _json(LoadResponse(rows=count, fields=session.fields, warnings=session.take_warnings()).model_dump())
    except Exception as exc:
        return _error(exc, "upload")


@app.post("/sessions/{session_id}/update")
def update(session_id: str, payload: CsvPayload):
    try:
        session, lock = _session(session_id)
        with lock:
            count = session.update_csv(payload.csv_text)
            return _json(LoadResponse(rows=count, fields=session.fields, warnings=session.take_warnings()).model_dump())
    except Exception as exc:
        return _error(exc, "update")


@app.get("/sessions/{session_id}/table")
def table(session_id: str, chart: bool = Query(default=True)):
    try:
        session, lock = _session(session_id)
        with lock:
            return _json(session.table_payload(include_chart=chart))
    except Exception as exc:
        return _error(exc, "table")


@app.post("/sessions/{session_id}/computed")
def add_computed(session_id: str, column: ComputedColumnModel):
    try:
        session, lock = _session(session_id)
        with lock:
            added = session.add_computed_column(column.name, column.formula, column.type)
            return _json({"column": added.to_dict(), "fields": session.fields})
    except Exception as exc:
        return _error(exc, "add_computed")


@app.delete("/sessions/{session_id}/computed/{name}")
def remove_computed(session_id: str, name: str):
    try:
        session, lock = _session(session_id)
        with lock:
            session.remove_computed_column(name)
            return _json({"fields": session.fields})
    except Exception as exc:
        return _error(exc, "remove_computed")


@app.post("/sessions/{session_id}/sort")
def sort(session_id: str, request: SortRequest):
    try:
        session, lock = _session(session_id)
        with lock:
            visible = session.sort_by(request.column)
            return _json({
                "sortOrder": session.sort_column,
                "sortDirection": session.sort_direction,
                "teams": [r.team_number for r in visible],
            })
    except Exception as exc:
        return _error(exc, "sort")


@app.post("/sessions/{session_id}/reorder")
def reorder(session_id: str, request: ReorderRequest):
    try:
        session, lock = _session(session_id)
        with lock:
            visible = session.reorder(request.index_from, request.index_to)
            return _json({"teams": [r.team_number for r in visible]})
    except Exception as exc:
        return _error(exc, "reorder")


@app.put("/sessions/{session_id}/rows/{team_number}/order")
def edit_order(session_id: str, team_number: int, request: OrderEditRequest):
    try:
        session, lock = _session(session_id)
        with lock:
            row = session.edit_order(team_number, request.picklist_order)
            return _json(_row(session, row))
    except Exception as exc:
        return _error(exc, "edit_order")


@app.post("/sessions/{session_id}/rows/{team_number}/deactivate")
def deactivate(session_id: str, team_number: int):
    try:
        session, lock = _session(session_id)
        with lock:
            return _json(_row(session, session.deactivate(team_number)))
    except Exception as exc:
        return _error(exc, "deactivate")


@app.post("/sessions/{session_id}/rows/{team_number}/reactivate")
def reactivate(session_id: str, team_number: int):
    try:
        session, lock = _session(session_id)
        with lock:
            return _json(_row(session, session.reactivate(team_number)))
    except Exception as exc:
        return _error(exc, "reactivate")


@app.get("/sessions/{session_id}/export")
def export_csv(session_id: str):
    try:
        session, lock = _session(session_id)
        with lock:
            export_df = session.export_frame()
    except Exception as exc:
        return _error(exc, "export_csv")
    csv_bytes = export_df.to_csv(index=False).encode("utf-8")
    return Response(content=csv_bytes, media_type="text/csv", headers={"Content-Disposition": "attachment; filename=picklist.csv"})


@app.get("/sessions/{session_id}/picklists")
def list_picklists(session_id: str):
    try:
        session, lock = _session(session_id)
        with lock:
            picklists = [_picklist_info(p) for p in session.saved_picklists()]
            return _json(SavedPicklistsResponse(picklists=picklists).model_dump())
    except Exception as exc:
        return _error(exc, "list_picklists")


@app.post("/sessions/{session_id}/picklists")
def save_picklist(session_id: str, request: PicklistSaveRequest):
    try:
        session, lock = _session(session_id)
        with lock:
            picklist = session.save_picklist(request.name.strip())
            return _json(_picklist_info(picklist).model_dump(), status_code=201)
    except Exception as exc:
        return _error(exc, "save_picklist")


@app.post("/sessions/{session_id}/picklists/{name}/load")
def load_picklist(session_id: str, name: str):
    try:
        session, lock = _session(session_id)
        with lock:
            session.load_picklist(name)
            return _json(LoadResponse(rows=len(session.rows), fields=session.fields, warnings=session.take_warnings()).model_dump())
    except Exception as exc:
        return _error(exc, "load_picklist")


@app.delete("/sessions/{session_id}/picklists/{name}")
def delete_picklist(session_id: str, name: str):
    try:
        session, lock = _session(session_id)
        with lock:
            if not session.delete_picklist(name):
                raise UnknownPicklistError(name)
            return _json({"deleted": name})
    except Exception as exc:
        return _error(exc, "delete_picklist")


@app.post("/sessions/{session_id}/remote")
def remote_save(session_id: str, request: RemoteSaveRequest):
    try:
        session, lock = _session(session_id)
        with lock:
            ok = session.push_remote(request.name.strip())
            if not ok:
                return _json({"saved": False, "error": session.take_warnings()[-1]}, status_code=502)
            return _json({"saved": True})
    except Exception as exc:
        return _error(exc, "remote_save")
