"""Request and result models for transaction and dispatch writes."""

from datetime import datetime
from typing import Annotated, Optional

from pydantic import BaseModel, Field

# Largest value an SQLite INTEGER column holds
MAX_SQL_INT = 2**63 - 1

RowId = Annotated[int, Field(ge=1, le=MAX_SQL_INT)]
Count = Annotated[int, Field(ge=0, le=MAX_SQL_INT)]


class TransactionRequest(BaseModel):
    """Progress report for one process of a catch."""

    quantitysheet_id: RowId
    project_id: RowId
    lot_no: Optional[str] = None
    process_id: RowId
    status: int = Field(default=0, ge=0, le=2)
    interim_quantity: Count = 0
    remarks: Optional[str] = None
    voice_recording: Optional[str] = None
    zone_id: Optional[RowId] = None
    machine_id: Optional[RowId] = None
    team_ids: list[RowId] = Field(default_factory=list)
    alarm_id: Optional[str] = None


class TransactionStatusUpdate(BaseModel):
    status: int = Field(ge=0, le=2)


class DispatchRequest(BaseModel):
    """Shipment details for a (project, lot)."""

    project_id: RowId
    lot_no: str
    process_id: RowId = 14
    box_count: Count = 0
    messenger_name: Optional[str] = None
    messenger_mobile: Optional[str] = None
    dispatch_mode: Optional[str] = None
    vehicle_no: Optional[str] = None
    driver_name: Optional[str] = None
    driver_mobile: Optional[str] = None
    status: bool = False
    dispatch_date: Optional[datetime] = None


class RecordResult(BaseModel):
    """Outcome of a transaction write."""

    message: str
    transaction_ids: list[int] = Field(default_factory=list)
    created: int = 0
    updated: int = 0
