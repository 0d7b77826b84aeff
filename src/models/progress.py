"""Pydantic models for completion and percentage responses."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class CatchCompletion(BaseModel):
    """Weighted completion of a single catch."""

    quantity_sheet_id: int
    lot_no: str
    process_weights: dict[int, Decimal] = Field(
        default_factory=dict, description="Renormalized local weight per process"
    )
    completed_weightage: Decimal = Decimal("0")
    catch_percentage: Decimal = Field(
        default=Decimal("0"), description="PercentageCatch x earned weight / 100"
    )


class ProjectCompletion(BaseModel):
    """Per-lot and overall weighted completion of a project."""

    project_id: int
    project_name: str = ""
    completion_percentage: Decimal = Decimal("0")
    project_total_quantity: Decimal = Decimal("0")
    lot_percentages: dict[str, Decimal] = Field(default_factory=dict)
    lot_quantities: dict[str, Decimal] = Field(default_factory=dict)
    catches: list[CatchCompletion] = Field(default_factory=list)


class ProjectCompletionSummary(BaseModel):
    """Row of the user project-completion listing."""

    project_id: int
    project_name: str
    completion_percentage: Decimal
    project_total_quantity: Decimal


class CombinedCatchDetail(BaseModel):
    completed_process_percentage: Decimal
    lot_percentage: Decimal
    process_details: dict[int, Decimal]


class CombinedPercentages(BaseModel):
    """Lot totals, lot weights and per-process lot progress for one project."""

    project_id: int
    total_lot_percentages: dict[str, Decimal] = Field(default_factory=dict)
    lot_quantities: dict[str, Decimal] = Field(default_factory=dict)
    lot_weightages: dict[str, Decimal] = Field(default_factory=dict)
    project_lot_percentages: dict[str, Decimal] = Field(default_factory=dict)
    total_project_lot_percentage: Decimal = Decimal("0")
    project_total_quantity: Decimal = Decimal("0")
    lot_process_weightage_sum: dict[str, dict[int, Decimal]] = Field(default_factory=dict)
    catches: dict[str, dict[int, CombinedCatchDetail]] = Field(default_factory=dict)


class LotProcessPercentage(BaseModel):
    lot_number: str
    percentage: Decimal
    total_sheets: int
    completed_sheets: int
    lot_quantity: Optional[Decimal] = None


class ProcessStatistics(BaseModel):
    total_lots: int
    total_sheets: int
    completed_sheets: int
    overall_percentage: Decimal
    total_quantity: Optional[Decimal] = None


class ProcessPercentageEntry(BaseModel):
    process_id: int
    statistics: ProcessStatistics
    lots: list[LotProcessPercentage]


class ProcessPercentages(BaseModel):
    """Completed-catch ratios per process and lot."""

    project_id: int
    total_processes: int
    overall_project_percentage: Decimal
    overall_project_quantity: Optional[Decimal] = None
    processes: list[ProcessPercentageEntry] = Field(default_factory=list)
