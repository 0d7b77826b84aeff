"""Pydantic models for pipeline statistics responses."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class ProcessTrainStage(BaseModel):
    """Counts and quantities for one pipeline stage of a lot."""

    process_id: int
    process_sequence: int
    process_name: str = ""
    process_type: str = "Dependent"
    range_start: Optional[int] = None
    wip_count: int = 0
    completed_count: int = 0
    wip_total_quantity: Decimal = Decimal("0")
    completed_total_quantity: Decimal = Decimal("0")
    initial_total_quantity: Decimal = Decimal("0")
    remaining_quantity: Decimal = Decimal("0")
    total_catch_no: int = 0
    remaining_catch_no: int = 0


class StatusDetailRow(BaseModel):
    """A catch of a lot with its effective status for one process."""

    quantity_sheet_id: int
    catch_no: Optional[str] = None
    paper: Optional[str] = None
    exam_date: Optional[str] = None
    exam_time: Optional[str] = None
    course: Optional[str] = None
    subject: Optional[str] = None
    quantity: Decimal = Decimal("0")
    status: int = 0
