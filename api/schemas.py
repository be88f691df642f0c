from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class CsvPayload(BaseModel):
    csv_text: str


class ComputedColumnModel(BaseModel):
    name: str
    formula: str
    type: Literal["numeric", "boolean"] = "numeric"


class SortRequest(BaseModel):
    column: str


class ReorderRequest(BaseModel):
    index_from: int
    index_to: int


class OrderEditRequest(BaseModel):
    picklist_order: int


class PicklistSaveRequest(BaseModel):
    name: str


class RemoteSaveRequest(BaseModel):
    name: str


class SessionResponse(BaseModel):
    session_id: str
    restored: bool = False


class LoadResponse(BaseModel):
    rows: int
    fields: List[str]
    warnings: List[str] = Field(default_factory=list)


class RowResponse(BaseModel):
    team: int
    picklist_order: int
    active: bool


class SavedPicklistInfo(BaseModel):
    name: str
    timestamp: int
    teams: int
    fields: List[str]
    sort_order: str
    sort_direction: str
    computed_columns: Optional[List[Dict[str, str]]] = None


class SavedPicklistsResponse(BaseModel):
    picklists: List[SavedPicklistInfo]
