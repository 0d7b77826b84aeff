"""Pydantic models for production-status and production report responses."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Union

from pydantic import BaseModel, Field


# =============================================================================
# Production status
# =============================================================================


class UnderProductionLot(BaseModel):
    """An undispatched (project, lot) with active catches."""

    project_id: int
    name: str
    group_id: Optional[int] = None
    type_id: int
    lot_no: str
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None
    total_catch_no: int
    total_quantity: Decimal


class CatchQuantity(BaseModel):
    catch_no: Optional[str] = None
    quantity: Decimal


class PendingProcessRow(BaseModel):
    """Unfinished work for one process of a lot."""

    project_id: int
    lot_no: str
    process_id: int
    group_id: int
    type_id: int
    total_catch_count: int
    total_quantity: Decimal
    last_logged_at: Optional[datetime] = None
    catch_details: Optional[list[CatchQuantity]] = None


class GroupOption(BaseModel):
    group_id: Optional[int] = None
    name: str


class ProjectOption(BaseModel):
    project_id: int
    name: str


class LotOption(BaseModel):
    lot_no: str


class LotSummary(BaseModel):
    total_catches: int = 0
    total_quantity: Decimal = Decimal("0")
    exam_from: Optional[datetime] = None
    exam_to: Optional[datetime] = None


class DispatchSummary(BaseModel):
    """A dispatch of today with the quantities of its lot."""

    dispatch_id: int
    project_id: int
    lot_no: Optional[str] = None
    box_count: int = 0
    dispatch_date: Optional[datetime] = None
    quantity_sheet_summary: LotSummary


# =============================================================================
# Event-log driven reports
# =============================================================================


class DailyProductionRow(BaseModel):
    """Catches completed in the window for one (project, lot)."""

    project_id: int
    project_name: str = ""
    type_id: Optional[int] = None
    group_id: Optional[int] = None
    group_name: str = "Unknown"
    lot_no: Optional[str] = None
    total_catches: int
    total_quantity: Decimal
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None


class DailyProductionSummary(BaseModel):
    total_groups: int = 0
    total_lots: int = 0
    total_projects: int = 0
    total_catches: int = 0
    total_quantity: Decimal = Decimal("0")


class ProductionSplit(BaseModel):
    """Completed catches and quantity split by project type."""

    completed_catches_in_booklet: int = 0
    completed_quantity_in_booklet: Decimal = Decimal("0")
    completed_catches_in_paper: int = 0
    completed_quantity_in_paper: Decimal = Decimal("0")


class ProcessProductionRow(ProductionSplit):
    process_id: Union[int, str]  # "Total" on the grand-total row


class ProjectProductionRow(ProductionSplit):
    project_id: int


class GroupProductionRow(ProductionSplit):
    """Per-group totals, or per-project rows when narrowed to a group or project."""

    group_id: Optional[int] = None
    project_id: Optional[int] = None
    booklet_catch_list: Optional[list[int]] = None
    paper_catch_list: Optional[list[int]] = None
    lot_nos: Optional[list[Optional[str]]] = None


class QuickCompletion(BaseModel):
    """Two status changes on one transaction logged close together."""

    transaction_id: int
    project_id: Optional[int] = None
    group_id: Optional[int] = None
    quantity_sheet_id: Optional[int] = None
    catch_no: Optional[str] = None
    quantity: Optional[Decimal] = None
    first_event_id: int
    second_event_id: int
    first_logged_at: datetime
    second_logged_at: datetime
    first_triggered_by: int = 0
    second_triggered_by: int = 0
    minutes_between: int


class QuickCompletionPage(BaseModel):
    start_date: date
    end_date: date
    page: int
    page_size: int
    total_items: int
    total_pages: int
    items: list[QuickCompletion] = Field(default_factory=list)


# =============================================================================
# Catch tracking
# =============================================================================


class TeamDetail(BaseModel):
    team_name: str
    user_names: list[str] = Field(default_factory=list)


class CatchStatusRow(BaseModel):
    """Current production state of one catch."""

    quantity_sheet_id: int
    catch_no: Optional[str] = None
    lot_no: Optional[str] = None
    paper: Optional[str] = None
    course: Optional[str] = None
    subject: Optional[str] = None
    exam_date: Optional[str] = None
    exam_time: Optional[str] = None
    quantity: Decimal = Decimal("0")
    catch_status: str = "Pending"
    current_process_name: Optional[str] = None
    process_names: list[str] = Field(default_factory=list)
    dispatch_date: str = "Not Available"
    zone_descriptions: list[str] = Field(default_factory=list)
    team_details: list[TeamDetail] = Field(default_factory=list)
    machine_names: list[str] = Field(default_factory=list)


class ProcessTransactionDetail(BaseModel):
    transaction_id: int
    status: int
    interim_quantity: int = 0
    zone_no: Optional[str] = None
    team_members: list[str] = Field(default_factory=list)
    supervisor: Optional[str] = None
    machine_name: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None


class ProcessWiseEntry(BaseModel):
    """A pipeline stage a catch has passed through, with its transactions."""

    process_id: int
    process_name: str = ""
    sequence: int
    transactions: list[ProcessTransactionDetail] = Field(default_factory=list)

