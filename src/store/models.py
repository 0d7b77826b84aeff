"""Pydantic models for domain store entities."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class GroupModel(BaseModel):
    """Owning group of projects."""

    group_id: int
    name: str
    status: bool = True


class ProjectModel(BaseModel):
    """Project (TypeId 1 = Booklet, 2 = Paper)."""

    project_id: int
    name: str
    group_id: Optional[int] = None
    type_id: int = 1
    no_of_series: Optional[int] = None  # Parallel series count, null means 1
    series_name: Optional[str] = None
    status: bool = True

    @property
    def series_divisor(self) -> int:
        return self.no_of_series or 1


class ProcessModel(BaseModel):
    """Production process master record."""

    process_id: int
    name: str
    status: bool = True


class ProjectProcessModel(BaseModel):
    """Pipeline membership of a process within a project."""

    project_id: int
    process_id: int
    sequence: int
    weightage: Decimal = Decimal("0")
    process_type: str = "Dependent"
    range_start: Optional[int] = None  # Sequence this stage depends on when Independent
    user_ids: list[int] = Field(default_factory=list)


class QuantitySheetModel(BaseModel):
    """A catch: one printable unit with its own quantity and process set."""

    quantity_sheet_id: int
    project_id: int
    lot_no: Optional[str] = None
    catch_no: Optional[str] = None
    course: Optional[str] = None
    subject: Optional[str] = None
    paper: Optional[str] = None
    exam_date: Optional[str] = None  # Free text; unparseable values are skipped
    exam_time: Optional[str] = None
    quantity: Decimal = Decimal("0")
    process_ids: list[int] = Field(default_factory=list)
    percentage_catch: Decimal = Decimal("0")
    status: int = 1
    stop_catch: int = 0

    def requires(self, process_id: int) -> bool:
        return process_id in self.process_ids


class TransactionModel(BaseModel):
    """Execution record of one process for one catch (0 pending, 1 WIP, 2 completed)."""

    transaction_id: int
    quantitysheet_id: int
    project_id: int
    lot_no: Optional[str] = None
    process_id: int
    status: int = 0
    interim_quantity: int = 0
    remarks: Optional[str] = None
    voice_recording: Optional[str] = None
    zone_id: Optional[int] = None
    machine_id: Optional[int] = None
    team_ids: list[int] = Field(default_factory=list)
    alarm_id: Optional[str] = None


class DispatchModel(BaseModel):
    """Terminal shipment record for a (project, lot)."""

    dispatch_id: int
    project_id: int
    process_id: int = 14
    lot_no: Optional[str] = None
    box_count: int = 0
    messenger_name: Optional[str] = None
    messenger_mobile: Optional[str] = None
    dispatch_mode: Optional[str] = None
    vehicle_no: Optional[str] = None
    driver_name: Optional[str] = None
    driver_mobile: Optional[str] = None
    status: bool = False
    dispatch_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class EventLogModel(BaseModel):
    """Append-only audit row."""

    event_id: int
    transaction_id: Optional[int] = None
    category: str
    event: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    logged_at: datetime
    event_triggered_by: int = 0


class ZoneModel(BaseModel):
    zone_id: int
    zone_no: Optional[str] = None
    zone_description: Optional[str] = None


class MachineModel(BaseModel):
    machine_id: int
    machine_name: str


class TeamModel(BaseModel):
    team_id: int
    team_name: str
    user_ids: list[int] = Field(default_factory=list)


class UserModel(BaseModel):
    user_id: int
    user_name: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role_id: int = 5

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)
