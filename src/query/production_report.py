"""Production reports driven by the transaction audit trail.

A catch counts as produced on the day a "Status updated" event moved its
transaction to completed (2). Reports differ in how they slice those
transactions: by lot, by process, by project or by group.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections import defaultdict
from datetime import datetime, time, timedelta
from typing import Iterable, Optional

from src.exceptions import ValidationFailure
from src.models.production import (
    DailyProductionRow,
    DailyProductionSummary,
    GroupProductionRow,
    ProcessProductionRow,
    ProductionSplit,
    ProjectProductionRow,
    QuickCompletion,
    QuickCompletionPage,
)
from src.process_config import ProcessConstants
from src.query.dates import DateWindow, exam_date_range, parse_filter_date
from src.query.numbers import ZERO
from src.store.models import EventLogModel, ProjectModel, QuantitySheetModel, TransactionModel
from src.store.reader import StoreReader

logger = logging.getLogger(__name__)

STATUS_EVENT = "Status updated"
TRANSACTION_CATEGORY = "Transaction"


def split_by_type(
    transactions: Iterable[TransactionModel],
    projects: dict[int, ProjectModel],
    sheets: dict[int, QuantitySheetModel],
    constants: ProcessConstants,
) -> tuple[ProductionSplit, list[int], list[int]]:
    """Distinct completed catches and their quantity, booklet vs paper."""
    booklet: dict[int, None] = {}
    paper: dict[int, None] = {}
    for t in transactions:
        project = projects.get(t.project_id)
        if project is None:
            continue
        if project.type_id == constants.booklet_type:
            booklet.setdefault(t.quantitysheet_id)
        elif project.type_id == constants.paper_type:
            paper.setdefault(t.quantitysheet_id)

    def quantity(sheet_ids):
        return sum((sheets[sid].quantity for sid in sheet_ids if sid in sheets), ZERO)

    split = ProductionSplit(
        completed_catches_in_booklet=len(booklet),
        completed_quantity_in_booklet=quantity(booklet),
        completed_catches_in_paper=len(paper),
        completed_quantity_in_paper=quantity(paper),
    )
    return split, list(booklet), list(paper)


def build_daily_rows(
    transactions: list[TransactionModel],
    projects: dict[int, ProjectModel],
    sheets: dict[int, QuantitySheetModel],
    group_names: dict[int, str],
) -> list[DailyProductionRow]:
    groups: dict[tuple, list[QuantitySheetModel]] = {}
    for t in transactions:
        project = projects.get(t.project_id)
        sheet = sheets.get(t.quantitysheet_id)
        if project is None or sheet is None:
            continue
        key = (t.project_id, project.type_id, project.group_id, t.lot_no)
        groups.setdefault(key, []).append(sheet)

    rows = []
    for (project_id, type_id, group_id, lot_no), members in groups.items():
        from_date, to_date = exam_date_range(s.exam_date for s in members)
        rows.append(
            DailyProductionRow(
                project_id=project_id,
                project_name=projects[project_id].name,
                type_id=type_id,
                group_id=group_id,
                group_name=group_names.get(group_id, "Unknown"),
                lot_no=lot_no,
                total_catches=len(members),
                total_quantity=sum((s.quantity for s in members), ZERO),
                from_date=from_date,
                to_date=to_date,
            )
        )
    return rows


def pair_quick_completions(
    events: list[EventLogModel], threshold_minutes: int
) -> list[tuple[EventLogModel, EventLogModel]]:
    """Pairs of status events on the same transaction logged under the threshold apart."""
    by_transaction: dict[int, list[EventLogModel]] = defaultdict(list)
    for event in events:
        if event.transaction_id is not None:
            by_transaction[event.transaction_id].append(event)

    limit = timedelta(minutes=threshold_minutes)
    pairs = []
    for transaction_id in sorted(by_transaction):
        ordered = sorted(by_transaction[transaction_id], key=lambda e: (e.logged_at, e.event_id))
        for i, first in enumerate(ordered):
            for second in ordered[i + 1:]:
                if second.logged_at - first.logged_at < limit:
                    pairs.append((first, second))
    return pairs


class ProductionReportBuilder:
    """Event-log driven production reports."""

    def __init__(
        self,
        reader: StoreReader,
        constants: ProcessConstants,
        date_format: str = "%d-%m-%Y",
        quick_completion_minutes: int = 5,
    ):
        self.reader = reader
        self.constants = constants
        self.date_format = date_format
        self.quick_completion_minutes = quick_completion_minutes

    def window(self, date_value=None, start_date=None, end_date=None) -> DateWindow:
        return DateWindow.from_query(date_value, start_date, end_date, self.date_format)

    async def _completed_transactions(
        self, events: list[EventLogModel], process_id: Optional[int] = None, project_id: Optional[int] = None
    ) -> list[TransactionModel]:
        transaction_ids = {e.transaction_id for e in events if e.transaction_id is not None}
        if not transaction_ids:
            return []
        return await self.reader.get_transactions(
            transaction_ids=transaction_ids, process_id=process_id, project_id=project_id
        )

    async def _lookups(
        self, transactions: list[TransactionModel], group_id: Optional[int] = None
    ) -> tuple[dict[int, ProjectModel], dict[int, QuantitySheetModel]]:
        projects, sheets = await asyncio.gather(
            self.reader.get_projects(
                project_ids={t.project_id for t in transactions}, group_id=group_id
            ),
            self.reader.get_quantity_sheets(sheet_ids={t.quantitysheet_id for t in transactions}),
        )
        return (
            {p.project_id: p for p in projects},
            {s.quantity_sheet_id: s for s in sheets},
        )

    # =========================================================================
    # Daily production
    # =========================================================================

    async def daily_production_report(self, window: DateWindow) -> list[DailyProductionRow]:
        events = await self.reader.get_event_logs(
            event=STATUS_EVENT, new_value="2", start_date=window.start, end_date=window.end
        )
        transactions = await self._completed_transactions(events)
        if not transactions:
            return []

        projects, sheets = await self._lookups(transactions)
        groups = await self.reader.get_groups({p.group_id for p in projects.values() if p.group_id is not None})
        rows = build_daily_rows(
            transactions, projects, sheets, {g.group_id: g.name for g in groups}
        )
        logger.debug("Daily production window %s..%s: %s rows", window.start, window.end, len(rows))
        return rows

    async def daily_production_summary(self, window: DateWindow) -> DailyProductionSummary:
        rows = await self.daily_production_report(window)
        return DailyProductionSummary(
            total_groups=len({row.group_id for row in rows}),
            total_lots=len(rows),
            total_projects=len({row.project_id for row in rows}),
            total_catches=sum(row.total_catches for row in rows),
            total_quantity=sum((row.total_quantity for row in rows), ZERO),
        )

    # =========================================================================
    # Process production
    # =========================================================================

    async def _process_completion_events(self, window: DateWindow) -> list[EventLogModel]:
        return await self.reader.get_event_logs(
            category=TRANSACTION_CATEGORY,
            event=STATUS_EVENT,
            old_value="1",
            new_value="2",
            start_date=window.start,
            end_date=window.end,
        )

    async def process_production_report(self, window: DateWindow) -> list[ProcessProductionRow]:
        transactions = await self._completed_transactions(await self._process_completion_events(window))
        projects, sheets = await self._lookups(transactions) if transactions else ({}, {})

        rows = []
        for process_id in dict.fromkeys(t.process_id for t in transactions):
            split, _, _ = split_by_type(
                (t for t in transactions if t.process_id == process_id), projects, sheets, self.constants
            )
            rows.append(ProcessProductionRow(process_id=process_id, **split.model_dump()))
        totals = {
            field: sum(getattr(row, field) for row in rows) for field in ProductionSplit.model_fields
        }
        rows.append(ProcessProductionRow(process_id="Total", **totals))
        return sorted(rows, key=lambda row: str(row.process_id))

    async def process_production_project_wise(
        self, window: DateWindow, process_id: Optional[int]
    ) -> list[ProjectProductionRow]:
        if not process_id or process_id <= 0:
            raise ValidationFailure("processId is required and must be greater than 0.")

        transactions = await self._completed_transactions(
            await self._process_completion_events(window), process_id=process_id
        )
        if not transactions:
            return []
        projects, sheets = await self._lookups(transactions)

        rows = []
        for project_id in sorted({t.project_id for t in transactions}):
            split, _, _ = split_by_type(
                (t for t in transactions if t.project_id == project_id), projects, sheets, self.constants
            )
            rows.append(ProjectProductionRow(project_id=project_id, **split.model_dump()))
        return rows

    async def process_production_group_wise(
        self,
        window: DateWindow,
        process_id: Optional[int] = None,
        group_id: Optional[int] = None,
        project_id: Optional[int] = None,
    ) -> list[GroupProductionRow]:
        transactions = await self._completed_transactions(
            await self._process_completion_events(window),
            process_id=process_id if process_id and process_id > 0 else None,
            project_id=project_id if project_id and project_id > 0 else None,
        )
        if not transactions:
            return []
        projects, sheets = await self._lookups(
            transactions, group_id=group_id if group_id and group_id > 0 else None
        )
        transactions = [t for t in transactions if t.project_id in projects]
        if not transactions:
            return []

        rows = []
        if group_id is not None or project_id is not None:
            for pid in dict.fromkeys(t.project_id for t in transactions):
                members = [t for t in transactions if t.project_id == pid]
                split, booklet, paper = split_by_type(members, projects, sheets, self.constants)
                rows.append(
                    GroupProductionRow(
                        project_id=pid,
                        group_id=projects[pid].group_id,
                        booklet_catch_list=booklet,
                        paper_catch_list=paper,
                        lot_nos=list(dict.fromkeys(t.lot_no for t in members)),
                        **split.model_dump(),
                    )
                )
        else:
            for gid in dict.fromkeys(p.group_id for p in projects.values()):
                members = [t for t in transactions if projects[t.project_id].group_id == gid]
                split, _, _ = split_by_type(members, projects, sheets, self.constants)
                rows.append(GroupProductionRow(group_id=gid, **split.model_dump()))
        return sorted(rows, key=lambda row: (row.group_id is None, row.group_id or 0))

    # =========================================================================
    # Quick completion
    # =========================================================================

    async def quick_completion(
        self,
        date_value: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        page: int = 1,
        page_size: int = 10,
    ) -> QuickCompletionPage:
        """Transactions whose status changed twice within a few minutes."""
        if date_value:
            first_day = parse_filter_date(date_value, "date", self.date_format)
            last_day = first_day
        elif start_date and end_date:
            first_day = parse_filter_date(start_date, "startDate", self.date_format)
            last_day = parse_filter_date(end_date, "endDate", self.date_format)
        else:
            raise ValidationFailure("Please provide either 'date' or both 'startDate' and 'endDate'.")

        events = await self.reader.get_event_logs(
            event=STATUS_EVENT,
            logged_from=datetime.combine(first_day, time.min),
            logged_before=datetime.combine(last_day + timedelta(days=1), time.min),
        )
        pairs = pair_quick_completions(events, self.quick_completion_minutes)

        page = max(page, 1)
        page_size = max(page_size, 1)
        selected = pairs[(page - 1) * page_size:page * page_size]
        items = await self._enrich_pairs(selected)
        return QuickCompletionPage(
            start_date=first_day,
            end_date=last_day,
            page=page,
            page_size=page_size,
            total_items=len(pairs),
            total_pages=math.ceil(len(pairs) / page_size),
            items=items,
        )

    async def _enrich_pairs(
        self, pairs: list[tuple[EventLogModel, EventLogModel]]
    ) -> list[QuickCompletion]:
        if not pairs:
            return []
        transactions = await self.reader.get_transactions(
            transaction_ids={first.transaction_id for first, _ in pairs}
        )
        by_id = {t.transaction_id: t for t in transactions}
        projects, sheets = await self._lookups(transactions) if transactions else ({}, {})

        items = []
        for first, second in pairs:
            t = by_id.get(first.transaction_id)
            sheet = sheets.get(t.quantitysheet_id) if t else None
            project = projects.get(t.project_id) if t else None
            items.append(
                QuickCompletion(
                    transaction_id=first.transaction_id,
                    project_id=t.project_id if t else None,
                    group_id=project.group_id if project else None,
                    quantity_sheet_id=t.quantitysheet_id if t else None,
                    catch_no=sheet.catch_no if sheet else None,
                    quantity=sheet.quantity if sheet else None,
                    first_event_id=first.event_id,
                    second_event_id=second.event_id,
                    first_logged_at=first.logged_at,
                    second_logged_at=second.logged_at,
                    first_triggered_by=first.event_triggered_by,
                    second_triggered_by=second.event_triggered_by,
                    minutes_between=int((second.logged_at - first.logged_at).total_seconds() // 60),
                )
            )
        return items
