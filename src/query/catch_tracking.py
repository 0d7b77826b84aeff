"""Catch-level tracking: where each catch is and who worked on it."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from src.models.production import (
    CatchStatusRow,
    ProcessTransactionDetail,
    ProcessWiseEntry,
    TeamDetail,
)
from src.process_config import ProcessConstants
from src.query.pipeline import PipelineResolver
from src.store.models import (
    DispatchModel,
    EventLogModel,
    QuantitySheetModel,
    TeamModel,
    TransactionModel,
    UserModel,
)
from src.store.reader import StoreReader

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "Not Available"


def catch_status(transactions: list[TransactionModel], constants: ProcessConstants) -> str:
    """Pending until work starts, Completed once the catch-completion process is done."""
    if not transactions:
        return "Pending"
    marker = next((t for t in transactions if t.process_id == constants.catch_completion), None)
    if marker is not None and marker.status == 2:
        return "Completed"
    if any(t.process_id != constants.catch_completion for t in transactions):
        return "Running"
    return "Pending"


def dispatch_date_label(dispatch: Optional[DispatchModel]) -> str:
    if dispatch is None or dispatch.updated_at is None:
        return NOT_AVAILABLE
    return dispatch.updated_at.strftime("%Y-%m-%d")


def team_details(
    transactions: list[TransactionModel],
    teams: dict[int, TeamModel],
    users: dict[int, UserModel],
) -> list[TeamDetail]:
    details = []
    for team_id in dict.fromkeys(tid for t in transactions for tid in t.team_ids):
        team = teams.get(team_id)
        if team is None:
            continue
        details.append(
            TeamDetail(
                team_name=team.team_name,
                user_names=[users[uid].user_name for uid in team.user_ids if uid in users],
            )
        )
    return details


def status_window(events: list[EventLogModel]) -> tuple:
    """First and last "Status updated" timestamps."""
    stamps = sorted(e.logged_at for e in events if e.event.lower() == "status updated")
    if not stamps:
        return None, None
    return stamps[0], stamps[-1]


class CatchTracker:
    """Per-catch status and per-process history."""

    def __init__(self, reader: StoreReader, resolver: PipelineResolver, constants: ProcessConstants):
        self.reader = reader
        self.resolver = resolver
        self.constants = constants

    async def catch_status_report(self, project_id: int, lot_no: str) -> list[CatchStatusRow]:
        sheets = await self.reader.get_quantity_sheets(project_id=project_id, lot_no=lot_no)
        if not sheets:
            return []

        processes, transactions, dispatches, zones, machines, teams, users = await asyncio.gather(
            self.reader.get_processes(),
            self.reader.get_transactions(project_id=project_id),
            self.reader.get_dispatches(project_id=project_id, lot_no=lot_no),
            self.reader.get_zones(),
            self.reader.get_machines(),
            self.reader.get_teams(),
            self.reader.get_users(),
        )
        process_names = {p.process_id: p.name for p in processes}
        by_sheet: dict[int, list[TransactionModel]] = {}
        for t in transactions:
            by_sheet.setdefault(t.quantitysheet_id, []).append(t)
        dispatch = dispatches[0] if dispatches else None

        rows = []
        for sheet in sheets:
            related = by_sheet.get(sheet.quantity_sheet_id, [])
            latest = max(related, key=lambda t: t.transaction_id, default=None)
            zone_ids = dict.fromkeys(t.zone_id for t in related if t.zone_id is not None)
            machine_ids = dict.fromkeys(t.machine_id for t in related if t.machine_id is not None)
            rows.append(
                CatchStatusRow(
                    quantity_sheet_id=sheet.quantity_sheet_id,
                    catch_no=sheet.catch_no,
                    lot_no=sheet.lot_no,
                    paper=sheet.paper,
                    course=sheet.course,
                    subject=sheet.subject,
                    exam_date=sheet.exam_date,
                    exam_time=sheet.exam_time,
                    quantity=sheet.quantity,
                    catch_status=catch_status(related, self.constants),
                    current_process_name=process_names.get(latest.process_id) if latest else None,
                    process_names=[process_names[pid] for pid in sheet.process_ids if pid in process_names],
                    dispatch_date=dispatch_date_label(dispatch),
                    zone_descriptions=[
                        zones[zid].zone_description
                        for zid in zone_ids
                        if zid in zones and zones[zid].zone_description is not None
                    ],
                    team_details=team_details(related, teams, users),
                    machine_names=[machines[mid].machine_name for mid in machine_ids if mid in machines],
                )
            )
        return rows

    async def process_wise(self, project_id: int, catch_no: str) -> list[ProcessWiseEntry]:
        """History of one catch grouped by the pipeline stages it has reached."""
        sheets = await self.reader.get_quantity_sheets(project_id=project_id, catch_no=catch_no)
        if not sheets:
            logger.debug("No catch %s in project %s", catch_no, project_id)
            return []
        sheet: QuantitySheetModel = sheets[0]

        pipeline, transactions = await asyncio.gather(
            self.resolver.resolve(project_id),
            self.reader.get_transactions(sheet_ids=[sheet.quantity_sheet_id]),
        )
        if not transactions:
            return []

        events, users, zones, machines = await asyncio.gather(
            self.reader.get_event_logs(transaction_ids=[t.transaction_id for t in transactions]),
            self.reader.get_users(),
            self.reader.get_zones(),
            self.reader.get_machines(),
        )
        events_by_transaction: dict[int, list[EventLogModel]] = {}
        for event in events:
            events_by_transaction.setdefault(event.transaction_id, []).append(event)

        entries = []
        for stage in pipeline:
            stage_transactions = [t for t in transactions if t.process_id == stage.process_id]
            if not stage_transactions:
                continue
            details = []
            for t in stage_transactions:
                trail = events_by_transaction.get(t.transaction_id, [])
                supervisor = users.get(trail[0].event_triggered_by) if trail else None
                start, end = status_window(trail)
                zone = zones.get(t.zone_id) if t.zone_id is not None else None
                machine = machines.get(t.machine_id) if t.machine_id is not None else None
                details.append(
                    ProcessTransactionDetail(
                        transaction_id=t.transaction_id,
                        status=t.status,
                        interim_quantity=t.interim_quantity,
                        zone_no=zone.zone_no if zone else None,
                        team_members=[users[uid].full_name for uid in t.team_ids if uid in users],
                        supervisor=supervisor.full_name if supervisor else None,
                        machine_name=machine.machine_name if machine else None,
                        start_time=start,
                        end_time=end,
                    )
                )
            entries.append(
                ProcessWiseEntry(
                    process_id=stage.process_id,
                    process_name=stage.process_name,
                    sequence=stage.sequence,
                    transactions=details,
                )
            )
        return entries
