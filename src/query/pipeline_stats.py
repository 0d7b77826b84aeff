"""Per-stage WIP/completed/remaining statistics for a project lot.

Base counts come from the lot's transactions grouped by process. Each
stage after the first is then re-based on its predecessor's completed
output: entry stages (CTP, digital printing) start from the lot's
pre-pipeline totals, the stage right after cutting merges digital and
cut output (quartered for booklets), independent stages chain from their
RangeStart stage and booklet stages past the cut are normalized per series.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Sequence

from src.models.pipeline import ProcessTrainStage, StatusDetailRow
from src.process_config import ProcessConstants
from src.query.numbers import ZERO, floor_zero, round2
from src.query.pipeline import PipelineResolver, PipelineStage
from src.store.models import ProjectModel, QuantitySheetModel, TransactionModel
from src.store.reader import StoreReader

logger = logging.getLogger(__name__)


@dataclass
class _StageTally:
    """Mutable working figures for one stage during adjustment."""

    stage: PipelineStage
    wip_count: int = 0
    completed_count: int = 0
    wip_quantity: Decimal = ZERO
    completed_quantity: Decimal = ZERO
    initial_quantity: Decimal = ZERO
    remaining_quantity: Decimal = ZERO
    total_catch: int = 0
    remaining_catch: int = 0

    def rebalance(self) -> None:
        self.remaining_quantity = self.initial_quantity - self.wip_quantity - self.completed_quantity

    def divide_by_series(self, series: int) -> None:
        self.completed_quantity = self.completed_quantity / series
        self.wip_quantity = self.wip_quantity / series
        self.completed_count //= series
        self.wip_count //= series

    def carry_from(self, previous: "_StageTally") -> None:
        self.initial_quantity = previous.completed_quantity
        self.rebalance()
        self.remaining_catch = previous.completed_count - self.wip_count - self.completed_count
        self.total_catch = previous.completed_count

    def to_model(self) -> ProcessTrainStage:
        # Quantities keep full precision until here
        return ProcessTrainStage(
            process_id=self.stage.process_id,
            process_sequence=self.stage.sequence,
            process_name=self.stage.process_name,
            process_type=self.stage.process_type,
            range_start=self.stage.range_start,
            wip_count=floor_zero(self.wip_count),
            completed_count=floor_zero(self.completed_count),
            wip_total_quantity=round2(floor_zero(self.wip_quantity)),
            completed_total_quantity=round2(floor_zero(self.completed_quantity)),
            initial_total_quantity=round2(floor_zero(self.initial_quantity)),
            remaining_quantity=round2(floor_zero(self.remaining_quantity)),
            total_catch_no=floor_zero(self.total_catch),
            remaining_catch_no=floor_zero(self.remaining_catch),
        )


@dataclass(frozen=True)
class EntryTotals:
    """Completed first-stage output of a lot split by entry process."""

    ctp_quantity: Decimal = ZERO
    ctp_count: int = 0
    digital_quantity: Decimal = ZERO
    digital_count: int = 0


@dataclass
class _Rows:
    transactions: list[TransactionModel] = field(default_factory=list)
    sheets: dict[int, QuantitySheetModel] = field(default_factory=dict)


def compute_entry_totals(
    pipeline: Sequence[PipelineStage],
    transactions: Sequence[TransactionModel],
    sheets: dict[int, QuantitySheetModel],
    constants: ProcessConstants,
) -> EntryTotals:
    """Totals over completed first-stage transactions, by the catch's process set."""
    if not pipeline:
        return EntryTotals()
    first_process = pipeline[0].process_id
    ctp_quantity = digital_quantity = ZERO
    ctp_count = digital_count = 0
    for t in transactions:
        sheet = sheets.get(t.quantitysheet_id)
        if sheet is None or t.process_id != first_process or t.status != 2:
            continue
        if sheet.requires(constants.ctp):
            ctp_quantity += sheet.quantity
            ctp_count += 1
        if sheet.requires(constants.digital_printing):
            digital_quantity += sheet.quantity
            digital_count += 1
    return EntryTotals(ctp_quantity, ctp_count, digital_quantity, digital_count)


def _base_tally(
    stage: PipelineStage,
    transactions: Sequence[TransactionModel],
    sheets: dict[int, QuantitySheetModel],
) -> _StageTally:
    tally = _StageTally(stage=stage)
    wip_catches = completed_catches = 0
    for t in transactions:
        sheet = sheets.get(t.quantitysheet_id)
        if sheet is None or t.process_id != stage.process_id:
            continue
        has_catch = bool(sheet.catch_no)
        tally.initial_quantity += sheet.quantity
        tally.total_catch += int(has_catch)
        if t.status == 1:
            tally.wip_count += 1
            tally.wip_quantity += sheet.quantity
            wip_catches += int(has_catch)
        elif t.status == 2:
            tally.completed_count += 1
            tally.completed_quantity += sheet.quantity
            completed_catches += int(has_catch)
    tally.rebalance()
    tally.remaining_catch = tally.total_catch - wip_catches - completed_catches

    # Base figures are clamped before any cross-stage adjustment reads them
    tally.wip_count = floor_zero(tally.wip_count)
    tally.completed_count = floor_zero(tally.completed_count)
    tally.wip_quantity = floor_zero(tally.wip_quantity)
    tally.completed_quantity = floor_zero(tally.completed_quantity)
    tally.initial_quantity = floor_zero(tally.initial_quantity)
    tally.remaining_quantity = floor_zero(tally.remaining_quantity)
    tally.total_catch = floor_zero(tally.total_catch)
    tally.remaining_catch = floor_zero(tally.remaining_catch)
    return tally


def compute_process_train(
    pipeline: Sequence[PipelineStage],
    project: ProjectModel,
    transactions: Sequence[TransactionModel],
    sheets: dict[int, QuantitySheetModel],
    constants: ProcessConstants,
) -> list[ProcessTrainStage]:
    if not pipeline:
        return []

    entry = compute_entry_totals(pipeline, transactions, sheets, constants)
    tallies = [_base_tally(stage, transactions, sheets) for stage in pipeline]
    by_process = {tally.stage.process_id: tally for tally in tallies}
    by_sequence = {tally.stage.sequence: tally for tally in tallies}

    booklet = constants.is_booklet(project.type_id)
    series = project.series_divisor
    quarter = constants.booklet_quarter
    cutting = by_process.get(constants.cutting)
    after_cut = cutting.stage.sequence + 1 if cutting is not None else None
    if cutting is None:
        logger.debug("Project %s has no cutting stage", project.project_id)

    for current in tallies[1:]:
        stage = current.stage
        previous: Optional[_StageTally] = None

        if stage.process_id == constants.cutting:
            previous = by_process.get(constants.offset_printing)
        elif stage.process_id == constants.digital_printing:
            current.initial_quantity = entry.digital_quantity
            current.total_catch = entry.digital_count
            current.rebalance()
            current.remaining_catch = current.total_catch - current.wip_count - current.completed_count
        elif stage.process_id == constants.ctp:
            current.initial_quantity = entry.ctp_quantity
            current.total_catch = entry.ctp_count
            current.rebalance()
            current.remaining_catch = current.total_catch - current.wip_count - current.completed_count
        elif stage.sequence == after_cut:
            cut_output = by_sequence.get(stage.sequence - 1)
            digital = by_process.get(constants.digital_printing)
            digital_quantity = digital.completed_quantity if digital else ZERO
            digital_count = digital.completed_count if digital else 0
            cut_quantity = cut_output.completed_quantity if cut_output else ZERO
            cut_catches = cut_output.total_catch if cut_output else 0

            if booklet:
                current.initial_quantity = digital_quantity / quarter + cut_quantity / quarter
                current.divide_by_series(series)
                current.total_catch = cut_catches // quarter + digital_count // quarter
            else:
                current.initial_quantity = digital_quantity + cut_quantity
                current.total_catch = cut_catches + digital_count
            current.rebalance()
            current.remaining_catch = current.total_catch - current.wip_count - current.completed_count
        elif stage.process_type == constants.independent_process_type:
            previous = by_sequence.get(stage.range_start)
        else:
            previous = by_sequence.get(stage.sequence - 1)

        if previous is None or stage.sequence == after_cut:
            continue
        if booklet and after_cut is not None and stage.sequence > after_cut:
            current.divide_by_series(series)
        current.carry_from(previous)

    return [tally.to_model() for tally in tallies]


def filter_status_details(
    sheets: Sequence[QuantitySheetModel],
    transactions: Sequence[TransactionModel],
    process_id: int,
    status: int,
) -> list[StatusDetailRow]:
    """Catches requiring the process whose transaction matches the requested status.

    Status 0 also matches catches that have no transaction for the process.
    """
    by_sheet: dict[int, list[TransactionModel]] = {}
    for t in transactions:
        if t.process_id == process_id:
            by_sheet.setdefault(t.quantitysheet_id, []).append(t)

    rows = []
    for sheet in sheets:
        if not sheet.requires(process_id):
            continue
        matches = by_sheet.get(sheet.quantity_sheet_id) or [None]
        for t in matches:
            effective = t.status if t is not None else 0
            if status == 0:
                if effective != 0:
                    continue
            elif t is None or t.status != status:
                continue
            rows.append(
                StatusDetailRow(
                    quantity_sheet_id=sheet.quantity_sheet_id,
                    catch_no=sheet.catch_no,
                    paper=sheet.paper,
                    exam_date=sheet.exam_date,
                    exam_time=sheet.exam_time,
                    course=sheet.course,
                    subject=sheet.subject,
                    quantity=sheet.quantity,
                    status=effective,
                )
            )
    return rows


class PipelineStatisticsEngine:
    """Stage statistics and status drill-down for a project lot."""

    def __init__(self, reader: StoreReader, resolver: PipelineResolver, constants: ProcessConstants):
        self.reader = reader
        self.resolver = resolver
        self.constants = constants

    async def _lot_rows(self, project_id: int, lot_no: str) -> _Rows:
        transactions = await self.reader.get_transactions(project_id=project_id, lot_no=lot_no)
        sheet_ids = {t.quantitysheet_id for t in transactions}
        sheets = await self.reader.get_quantity_sheets(sheet_ids=sheet_ids) if sheet_ids else []
        return _Rows(
            transactions=transactions,
            sheets={sheet.quantity_sheet_id: sheet for sheet in sheets},
        )

    async def process_train(self, project_id: int, lot_no: str) -> list[ProcessTrainStage]:
        project, pipeline = await asyncio.gather(
            self.reader.get_project(project_id),
            self.resolver.resolve(project_id),
        )
        if project is None:
            logger.warning("Process train requested for unknown project %s", project_id)
            return []
        if not pipeline:
            return []

        rows = await self._lot_rows(project_id, lot_no)
        stages = compute_process_train(
            pipeline, project, rows.transactions, rows.sheets, self.constants
        )
        logger.debug(
            "Process train for project %s lot %s: %s stages, %s transactions",
            project_id,
            lot_no,
            len(stages),
            len(rows.transactions),
        )
        return stages

    async def status_details(
        self, project_id: int, lot_no: str, process_id: int, status: int
    ) -> list[StatusDetailRow]:
        sheets, transactions = await asyncio.gather(
            self.reader.get_quantity_sheets(project_id=project_id, lot_no=lot_no),
            self.reader.get_transactions(
                project_id=project_id, lot_no=lot_no, process_id=process_id
            ),
        )
        return filter_status_details(sheets, transactions, process_id, status)
