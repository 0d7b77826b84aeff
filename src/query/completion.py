"""Weighted completion percentages for catches, lots and projects.

A catch earns the pipeline weight of every process it requires that has a
completed (Status == 2) transaction. Local weights are topped up to 100
when the catch's resolved processes sum below 100. Lot completion adds up
PercentageCatch-scaled catch completions with rounding after every step,
and project completion weights each lot by its share of the quantity.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional, Sequence

from src.models.progress import (
    CatchCompletion,
    CombinedCatchDetail,
    CombinedPercentages,
    LotProcessPercentage,
    ProcessPercentageEntry,
    ProcessPercentages,
    ProcessStatistics,
    ProjectCompletion,
    ProjectCompletionSummary,
)
from src.process_config import ProcessConstants
from src.query.numbers import HUNDRED, ZERO, ratio_percent, round2
from src.query.pipeline import PipelineResolver, PipelineStage
from src.store.models import DispatchModel, ProjectModel, QuantitySheetModel, TransactionModel
from src.store.reader import StoreReader

logger = logging.getLogger(__name__)

# Users below this role see every active project
ALL_PROJECTS_ROLE_CEILING = 5


class CatchScope(str, Enum):
    """Which active catches take part in percentage aggregation."""

    INCLUDE_STOPPED = "include_stopped"
    EXCLUDE_STOPPED = "exclude_stopped"


def scoped_sheets(
    sheets: Iterable[QuantitySheetModel], scope: CatchScope
) -> list[QuantitySheetModel]:
    """Active (Status == 1) catches with a lot, minus stopped ones when excluded."""
    result = []
    for sheet in sheets:
        if sheet.status != 1 or sheet.lot_no is None:
            continue
        if scope is CatchScope.EXCLUDE_STOPPED and sheet.stop_catch != 0:
            continue
        result.append(sheet)
    return result


def resolve_catch_weights(
    sheet: QuantitySheetModel, pipeline_weights: dict[int, Decimal]
) -> dict[int, Decimal]:
    """Local weight per required process, raised evenly so the total reaches 100.

    Processes missing from the pipeline are dropped. Totals already at or
    above 100 are left untouched.
    """
    weights: dict[int, Decimal] = {}
    total = ZERO
    for process_id in sheet.process_ids:
        if process_id not in pipeline_weights or process_id in weights:
            continue
        weights[process_id] = round2(pipeline_weights[process_id])
        total += pipeline_weights[process_id]

    if weights and total < HUNDRED:
        adjustment = (HUNDRED - total) / len(weights)
        for process_id in weights:
            weights[process_id] = round2(weights[process_id] + adjustment)
    return weights


def completed_keys(transactions: Iterable[TransactionModel]) -> set[tuple[int, int]]:
    """(quantitysheet_id, process_id) pairs with a completed transaction."""
    return {(t.quantitysheet_id, t.process_id) for t in transactions if t.status == 2}


def compute_catch_completion(
    sheet: QuantitySheetModel,
    weights: dict[int, Decimal],
    completed: set[tuple[int, int]],
    dispatched_lots: set[str],
    constants: ProcessConstants,
) -> CatchCompletion:
    earned = {pid for pid in weights if (sheet.quantity_sheet_id, pid) in completed}
    # A dispatched lot counts as the terminal process being done
    if sheet.requires(constants.dispatch) and sheet.lot_no in dispatched_lots:
        earned.add(constants.dispatch)

    earned_weight = sum((weights.get(pid, ZERO) for pid in earned), ZERO)
    return CatchCompletion(
        quantity_sheet_id=sheet.quantity_sheet_id,
        lot_no=sheet.lot_no or "",
        process_weights=weights,
        completed_weightage=round2(earned_weight),
        catch_percentage=round2(sheet.percentage_catch * earned_weight / HUNDRED),
    )


def _dispatched_lots(
    dispatches: Iterable[DispatchModel], constants: ProcessConstants, require_status: bool
) -> set[str]:
    return {
        d.lot_no
        for d in dispatches
        if d.lot_no is not None
        and d.process_id == constants.dispatch
        and (d.status or not require_status)
    }


def compute_project_completion(
    project_id: int,
    sheets: Sequence[QuantitySheetModel],
    pipeline: Sequence[PipelineStage],
    transactions: Sequence[TransactionModel],
    dispatches: Sequence[DispatchModel],
    constants: ProcessConstants,
    scope: CatchScope = CatchScope.INCLUDE_STOPPED,
    project_name: str = "",
) -> ProjectCompletion:
    pipeline_weights = PipelineResolver.weight_map(pipeline)
    completed = completed_keys(transactions)
    dispatched = _dispatched_lots(dispatches, constants, require_status=False)

    lot_percentages: dict[str, Decimal] = {}
    lot_quantities: dict[str, Decimal] = {}
    total_quantity = ZERO
    catches = []

    for sheet in scoped_sheets(sheets, scope):
        weights = resolve_catch_weights(sheet, pipeline_weights)
        catch = compute_catch_completion(sheet, weights, completed, dispatched, constants)
        catches.append(catch)

        lot = catch.lot_no
        lot_percentages[lot] = round2(lot_percentages.get(lot, ZERO) + catch.catch_percentage)
        lot_quantities[lot] = lot_quantities.get(lot, ZERO) + sheet.quantity
        total_quantity += sheet.quantity

    project_percentage = ZERO
    if total_quantity > 0:
        for lot, lot_percentage in lot_percentages.items():
            lot_weight = lot_quantities[lot] / total_quantity * HUNDRED
            project_percentage += lot_percentage * lot_weight / HUNDRED

    return ProjectCompletion(
        project_id=project_id,
        project_name=project_name,
        completion_percentage=round2(project_percentage),
        project_total_quantity=total_quantity,
        lot_percentages=lot_percentages,
        lot_quantities=lot_quantities,
        catches=catches,
    )


def compute_combined_percentages(
    project_id: int,
    sheets: Sequence[QuantitySheetModel],
    pipeline: Sequence[PipelineStage],
    transactions: Sequence[TransactionModel],
    dispatches: Sequence[DispatchModel],
    constants: ProcessConstants,
) -> CombinedPercentages:
    """Lot completion with per-process lot progress and the dispatch override."""
    pipeline_weights = PipelineResolver.weight_map(pipeline)
    in_scope = scoped_sheets(sheets, CatchScope.EXCLUDE_STOPPED)
    completed = completed_keys(transactions)
    earned_dispatch = _dispatched_lots(dispatches, constants, require_status=False)
    confirmed_dispatch = _dispatched_lots(dispatches, constants, require_status=True)

    completed_counts: dict[tuple[str, int], int] = defaultdict(int)
    for t in transactions:
        if t.status == 2 and t.lot_no is not None:
            completed_counts[(t.lot_no, t.process_id)] += 1
    required_counts: dict[tuple[str, int], int] = defaultdict(int)
    for sheet in in_scope:
        for process_id in set(sheet.process_ids):
            required_counts[(sheet.lot_no, process_id)] += 1

    result = CombinedPercentages(project_id=project_id)
    total_quantity = ZERO

    for sheet in in_scope:
        lot = sheet.lot_no
        weights = resolve_catch_weights(sheet, pipeline_weights)
        catch = compute_catch_completion(sheet, weights, completed, earned_dispatch, constants)

        result.catches.setdefault(lot, {})[sheet.quantity_sheet_id] = CombinedCatchDetail(
            completed_process_percentage=catch.completed_weightage,
            lot_percentage=catch.catch_percentage,
            process_details=weights,
        )
        result.total_lot_percentages[lot] = round2(
            result.total_lot_percentages.get(lot, ZERO) + catch.catch_percentage
        )
        result.lot_quantities[lot] = result.lot_quantities.get(lot, ZERO) + sheet.quantity
        total_quantity += sheet.quantity

        process_progress = result.lot_process_weightage_sum.setdefault(lot, {})
        for process_id in weights:
            percentage = ratio_percent(
                completed_counts[(lot, process_id)], required_counts[(lot, process_id)]
            )
            if process_id == constants.dispatch and lot in confirmed_dispatch:
                percentage = round2(HUNDRED)
            process_progress[process_id] = percentage

    # Dispatch is a hard completion signal for the whole lot
    for lot, progress in result.lot_process_weightage_sum.items():
        if progress.get(constants.dispatch) == HUNDRED:
            result.total_lot_percentages[lot] = round2(HUNDRED)

    for lot, quantity in result.lot_quantities.items():
        lot_weight = ratio_percent(quantity, total_quantity)
        result.lot_weightages[lot] = lot_weight
        result.project_lot_percentages[lot] = round2(
            result.total_lot_percentages[lot] * lot_weight / HUNDRED
        )

    result.total_project_lot_percentage = round2(
        sum(result.project_lot_percentages.values(), ZERO)
    )
    result.project_total_quantity = round2(total_quantity)
    return result


def _distinct_lots(sheets: Iterable[QuantitySheetModel]) -> list[str]:
    return list(dict.fromkeys(sheet.lot_no for sheet in sheets))


def compute_process_percentages(
    project_id: int,
    sheets: Sequence[QuantitySheetModel],
    pipeline: Sequence[PipelineStage],
    transactions: Sequence[TransactionModel],
) -> ProcessPercentages:
    """Completed catches per process and lot; nothing to complete counts as 100%."""
    in_scope = scoped_sheets(sheets, CatchScope.EXCLUDE_STOPPED)
    completed = completed_keys(transactions)
    lots = _distinct_lots(in_scope)
    project_sheets = project_completed = 0
    entries = []

    for stage in pipeline:
        process_sheets = process_completed = 0
        lot_rows = []
        for lot in lots:
            lot_sheets = [s for s in in_scope if s.lot_no == lot]
            done = sum(1 for s in lot_sheets if (s.quantity_sheet_id, stage.process_id) in completed)
            required = sum(1 for s in lot_sheets if s.requires(stage.process_id))
            process_sheets += required
            process_completed += done
            lot_rows.append(
                LotProcessPercentage(
                    lot_number=lot,
                    percentage=ratio_percent(done, required, empty=HUNDRED),
                    total_sheets=required,
                    completed_sheets=done,
                )
            )
        project_sheets += process_sheets
        project_completed += process_completed
        entries.append(
            ProcessPercentageEntry(
                process_id=stage.process_id,
                statistics=ProcessStatistics(
                    total_lots=len(lot_rows),
                    total_sheets=process_sheets,
                    completed_sheets=process_completed,
                    overall_percentage=ratio_percent(process_completed, process_sheets, empty=HUNDRED),
                ),
                lots=lot_rows,
            )
        )

    return ProcessPercentages(
        project_id=project_id,
        total_processes=len(pipeline),
        overall_project_percentage=ratio_percent(project_completed, project_sheets, empty=HUNDRED),
        processes=entries,
    )


def compute_process_lot_percentages(
    project_id: int,
    sheets: Sequence[QuantitySheetModel],
    pipeline: Sequence[PipelineStage],
    transactions: Sequence[TransactionModel],
) -> ProcessPercentages:
    """Like compute_process_percentages but only over catches requiring each process."""
    in_scope = scoped_sheets(sheets, CatchScope.EXCLUDE_STOPPED)
    completed = completed_keys(transactions)
    project_sheets = project_completed = 0
    project_quantity = ZERO
    entries = []

    for stage in pipeline:
        process_sheets_list = [s for s in in_scope if s.requires(stage.process_id)]
        process_quantity = sum((s.quantity for s in process_sheets_list), ZERO)
        process_sheets = process_completed = 0
        lot_rows = []
        for lot in _distinct_lots(process_sheets_list):
            lot_sheets = [s for s in process_sheets_list if s.lot_no == lot]
            done = sum(1 for s in lot_sheets if (s.quantity_sheet_id, stage.process_id) in completed)
            process_sheets += len(lot_sheets)
            process_completed += done
            lot_rows.append(
                LotProcessPercentage(
                    lot_number=lot,
                    percentage=ratio_percent(done, len(lot_sheets)),
                    total_sheets=len(lot_sheets),
                    completed_sheets=done,
                    lot_quantity=sum((s.quantity for s in lot_sheets), ZERO),
                )
            )
        project_sheets += process_sheets
        project_completed += process_completed
        project_quantity += process_quantity
        entries.append(
            ProcessPercentageEntry(
                process_id=stage.process_id,
                statistics=ProcessStatistics(
                    total_lots=len(lot_rows),
                    total_sheets=process_sheets,
                    completed_sheets=process_completed,
                    overall_percentage=ratio_percent(process_completed, process_sheets),
                    total_quantity=process_quantity,
                ),
                lots=lot_rows,
            )
        )

    return ProcessPercentages(
        project_id=project_id,
        total_processes=len(pipeline),
        overall_project_percentage=ratio_percent(project_completed, project_sheets),
        overall_project_quantity=project_quantity,
        processes=entries,
    )


def page_project_ids(
    project_ids: Sequence[int], page: int, page_size: int, starred_project_id: Optional[int] = None
) -> list[int]:
    """Slice a project listing, pinning the starred project to the top of page 1."""
    remaining = list(project_ids)
    selected: list[int] = []
    if starred_project_id is not None and starred_project_id in remaining:
        if page == 1:
            selected.append(starred_project_id)
        remaining.remove(starred_project_id)
    start = (max(page, 1) - 1) * page_size
    selected.extend(remaining[start:start + page_size])
    return selected


class CompletionAggregator:
    """Fetch project snapshots and roll transactions up into percentages."""

    def __init__(
        self,
        reader: StoreReader,
        resolver: PipelineResolver,
        constants: ProcessConstants,
        default_page_size: int = 5,
    ):
        self.reader = reader
        self.resolver = resolver
        self.constants = constants
        self.default_page_size = default_page_size

    async def _snapshot(self, project_id: int):
        return await asyncio.gather(
            self.resolver.resolve(project_id),
            self.reader.get_quantity_sheets(project_id=project_id, status=1),
            self.reader.get_transactions(project_id=project_id),
            self.reader.get_dispatches(project_id=project_id),
        )

    async def project_completion(
        self,
        project_id: int,
        scope: CatchScope = CatchScope.INCLUDE_STOPPED,
        project: Optional[ProjectModel] = None,
    ) -> ProjectCompletion:
        if project is None:
            project = await self.reader.get_project(project_id)
        pipeline, sheets, transactions, dispatches = await self._snapshot(project_id)
        completion = compute_project_completion(
            project_id,
            sheets,
            pipeline,
            transactions,
            dispatches,
            self.constants,
            scope=scope,
            project_name=project.name if project else "",
        )
        logger.debug(
            "Project %s completion %s%% over %s units",
            project_id,
            completion.completion_percentage,
            completion.project_total_quantity,
        )
        return completion

    async def visible_projects(self, user_id: int) -> list[ProjectModel]:
        """Projects a user may see, newest first."""
        user = await self.reader.get_user(user_id)
        if user is None:
            logger.warning("Completion listing requested for unknown user %s", user_id)
            return []
        if user.role_id < ALL_PROJECTS_ROLE_CEILING:
            return await self.reader.get_projects(active_only=True)

        entries, ongoing = await asyncio.gather(
            self.reader.get_project_processes(),
            self.reader.get_project_ids_with_active_catches(),
        )
        assigned = {entry.project_id for entry in entries if user_id in entry.user_ids}
        project_ids = assigned & ongoing
        if not project_ids:
            return []
        return await self.reader.get_projects(project_ids=project_ids)

    async def all_project_completion(
        self,
        user_id: int,
        page: int = 1,
        page_size: Optional[int] = None,
        starred_project_id: Optional[int] = None,
    ) -> list[ProjectCompletionSummary]:
        projects = await self.visible_projects(user_id)
        by_id = {project.project_id: project for project in projects}
        selected = page_project_ids(
            [project.project_id for project in projects],
            page,
            page_size or self.default_page_size,
            starred_project_id,
        )

        summaries = []
        for project_id in selected:
            completion = await self.project_completion(project_id, project=by_id[project_id])
            summaries.append(
                ProjectCompletionSummary(
                    project_id=project_id,
                    project_name=completion.project_name,
                    completion_percentage=completion.completion_percentage,
                    project_total_quantity=completion.project_total_quantity,
                )
            )
        return summaries

    async def combined_percentages(self, project_id: int) -> CombinedPercentages:
        pipeline, sheets, transactions, dispatches = await self._snapshot(project_id)
        return compute_combined_percentages(
            project_id, sheets, pipeline, transactions, dispatches, self.constants
        )

    async def process_percentages(self, project_id: int) -> ProcessPercentages:
        pipeline, sheets, transactions, _ = await self._snapshot(project_id)
        return compute_process_percentages(project_id, sheets, pipeline, transactions)

    async def process_lot_percentages(self, project_id: int) -> ProcessPercentages:
        pipeline, sheets, transactions, _ = await self._snapshot(project_id)
        return compute_process_lot_percentages(project_id, sheets, pipeline, transactions)
