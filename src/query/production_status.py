"""Lot-level production status: under production, pending work, dispatch summary."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import date
from typing import Optional, Union

from src.exceptions import ValidationFailure
from src.models.production import (
    CatchQuantity,
    DispatchSummary,
    GroupOption,
    LotOption,
    LotSummary,
    PendingProcessRow,
    ProjectOption,
    UnderProductionLot,
)
from src.query.dates import exam_date_range
from src.query.numbers import ZERO
from src.store.models import DispatchModel, ProjectModel, QuantitySheetModel
from src.store.reader import StoreReader

logger = logging.getLogger(__name__)

LotKey = tuple[int, str]


def group_by_lot(sheets: list[QuantitySheetModel]) -> dict[LotKey, list[QuantitySheetModel]]:
    """Group catches by (project_id, lot_no), keeping first-seen order."""
    groups: dict[LotKey, list[QuantitySheetModel]] = {}
    for sheet in sheets:
        if sheet.lot_no is None:
            continue
        groups.setdefault((sheet.project_id, sheet.lot_no), []).append(sheet)
    return groups


def summarize_lot(sheets: list[QuantitySheetModel]) -> LotSummary:
    exam_from, exam_to = exam_date_range(s.exam_date for s in sheets)
    return LotSummary(
        total_catches=len(sheets),
        total_quantity=sum((s.quantity for s in sheets), ZERO),
        exam_from=exam_from,
        exam_to=exam_to,
    )


def is_under_production(dispatch: Optional[DispatchModel]) -> bool:
    """No dispatch yet, or a scheduled one that has not gone out."""
    if dispatch is None:
        return True
    return not dispatch.status and dispatch.dispatch_date is not None


def derive_under_production(
    projects: list[ProjectModel],
    sheets: list[QuantitySheetModel],
    dispatches: list[DispatchModel],
) -> list[UnderProductionLot]:
    by_project = {project.project_id: project for project in projects}
    dispatch_by_key = {(d.project_id, d.lot_no): d for d in dispatches}

    rows = []
    for key, lot_sheets in group_by_lot([s for s in sheets if s.status == 1]).items():
        project = by_project.get(key[0])
        if project is None or not is_under_production(dispatch_by_key.get(key)):
            continue
        summary = summarize_lot(lot_sheets)
        rows.append(
            UnderProductionLot(
                project_id=project.project_id,
                name=project.name,
                group_id=project.group_id,
                type_id=project.type_id,
                lot_no=key[1],
                from_date=summary.exam_from,
                to_date=summary.exam_to,
                total_catch_no=summary.total_catches,
                total_quantity=summary.total_quantity,
            )
        )
    return rows


class ProductionStatusDeriver:
    """Which lots are still in production and what is left to do on them."""

    def __init__(self, reader: StoreReader, min_project_id: int = 88, exam_date_floor: str = ""):
        self.reader = reader
        self.min_project_id = min_project_id
        self.exam_date_floor = exam_date_floor

    async def under_production(self) -> list[UnderProductionLot]:
        projects, sheets, dispatches = await asyncio.gather(
            self.reader.get_projects(min_project_id=self.min_project_id),
            self.reader.get_quantity_sheets(status=1),
            self.reader.get_dispatches(),
        )
        rows = derive_under_production(projects, sheets, dispatches)
        logger.debug("%s lots under production", len(rows))
        return rows

    async def pending_process_report(
        self,
        group_id: Optional[int],
        lot_no: Optional[str],
        project_id: Optional[int] = None,
        process_id: Optional[int] = None,
    ) -> list[PendingProcessRow]:
        """Unfinished transactions per (project, lot, process) within a group."""
        if not group_id or not lot_no:
            raise ValidationFailure("groupId and lotNo are required.")

        transactions = await self.reader.get_transactions(exclude_status=2, process_id=process_id)
        sheet_ids = {t.quantitysheet_id for t in transactions}
        if not sheet_ids:
            return []

        sheets, dispatches = await asyncio.gather(
            self.reader.get_quantity_sheets(
                status=1, sheet_ids=sheet_ids, project_id=project_id, lot_no=lot_no
            ),
            self.reader.get_dispatches(project_id=project_id),
        )
        dispatched = {
            (d.project_id, d.lot_no.lower()) for d in dispatches if d.lot_no
        }
        pending = {
            s.quantity_sheet_id: s
            for s in sheets
            if s.lot_no and (s.project_id, s.lot_no.lower()) not in dispatched
        }
        if not pending:
            return []

        projects = await self.reader.get_projects(
            project_ids={s.project_id for s in pending.values()}, group_id=group_id
        )
        by_project = {project.project_id: project for project in projects}

        groups: dict[tuple, list] = defaultdict(list)
        for t in transactions:
            sheet = pending.get(t.quantitysheet_id)
            if sheet is None or sheet.project_id not in by_project:
                continue
            project = by_project[sheet.project_id]
            key = (sheet.project_id, sheet.lot_no, t.process_id, project.group_id, project.type_id)
            groups[key].append((sheet, t))

        rows = []
        for (pid, lot, proc, gid, type_id), members in groups.items():
            latest = max(t.transaction_id for _, t in members)
            events = await self.reader.get_event_logs(transaction_ids=[latest])
            rows.append(
                PendingProcessRow(
                    project_id=pid,
                    lot_no=lot,
                    process_id=proc,
                    group_id=gid,
                    type_id=type_id,
                    total_catch_count=len(members),
                    total_quantity=sum((s.quantity for s, _ in members), ZERO),
                    last_logged_at=max((e.logged_at for e in events), default=None),
                    catch_details=(
                        [CatchQuantity(catch_no=s.catch_no, quantity=s.quantity) for s, _ in members]
                        if process_id is not None
                        else None
                    ),
                )
            )
        return rows

    async def lots_with_status(
        self, group_id: Optional[int] = None, project_id: Optional[int] = None
    ) -> Union[list[GroupOption], list[ProjectOption], list[LotOption]]:
        """Undispatched lots with upcoming exams, listed as groups, projects or lots."""
        projects, sheets, dispatches = await asyncio.gather(
            self.reader.get_projects(),
            self.reader.get_quantity_sheets(status=1),
            self.reader.get_dispatches(),
        )
        by_project = {project.project_id: project for project in projects}
        dispatched = {(d.project_id, d.lot_no) for d in dispatches}
        # ExamDate is compared as text against the ISO floor
        upcoming = [s for s in sheets if (s.exam_date or "") >= self.exam_date_floor]
        keys = [key for key in group_by_lot(upcoming) if key not in dispatched]
        project_ids = list(dict.fromkeys(pid for pid, _ in keys if pid in by_project))

        if group_id is None and project_id is None:
            seen: dict[Optional[int], GroupOption] = {}
            for pid in project_ids:
                project = by_project[pid]
                seen.setdefault(project.group_id, GroupOption(group_id=project.group_id, name=project.name))
            return list(seen.values())

        if project_id is None:
            return [
                ProjectOption(project_id=pid, name=by_project[pid].name)
                for pid in project_ids
                if by_project[pid].group_id == group_id
            ]

        if group_id is not None:
            project = by_project.get(project_id)
            if project is None or project.group_id != group_id:
                return []
        lots = dict.fromkeys(lot for pid, lot in keys if pid == project_id)
        return [LotOption(lot_no=lot) for lot in lots]

    async def dispatch_summary_today(self, today: Optional[date] = None) -> list[DispatchSummary]:
        dispatches = await self.reader.get_dispatches(dispatched_on=today or date.today())
        if not dispatches:
            return []

        sheets = await self.reader.get_quantity_sheets(
            project_ids={d.project_id for d in dispatches}
        )
        lots = group_by_lot(sheets)
        return [
            DispatchSummary(
                dispatch_id=d.dispatch_id,
                project_id=d.project_id,
                lot_no=d.lot_no,
                box_count=d.box_count,
                dispatch_date=d.dispatch_date,
                quantity_sheet_summary=summarize_lot(lots.get((d.project_id, d.lot_no), [])),
            )
            for d in dispatches
        ]
