"""Bulk reads from the domain store.

Every aggregation engine fetches its inputs through StoreReader and then
computes in memory. Reads never raise for missing rows: absent records
come back as None or an empty list.
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional

from src.database.connection import Database
from src.store.models import (
    DispatchModel,
    EventLogModel,
    GroupModel,
    MachineModel,
    ProcessModel,
    ProjectModel,
    ProjectProcessModel,
    QuantitySheetModel,
    TeamModel,
    TransactionModel,
    UserModel,
    ZoneModel,
)

logger = logging.getLogger(__name__)

_SHEET_COLUMNS = """
    quantity_sheet_id, project_id, lot_no, catch_no, course, subject, paper,
    exam_date, exam_time, quantity, process_ids, percentage_catch, status, stop_catch
"""
_TRANSACTION_COLUMNS = """
    transaction_id, quantitysheet_id, project_id, lot_no, process_id, status,
    interim_quantity, remarks, voice_recording, zone_id, machine_id, team_ids, alarm_id
"""
_DISPATCH_COLUMNS = """
    dispatch_id, project_id, process_id, lot_no, box_count, messenger_name,
    messenger_mobile, dispatch_mode, vehicle_no, driver_name, driver_mobile,
    status, dispatch_date, created_at, updated_at
"""
_EVENT_COLUMNS = """
    event_id, transaction_id, category, event, old_value, new_value,
    logged_at, event_triggered_by
"""


class _Filter:
    """Accumulates WHERE clauses and their parameters."""

    def __init__(self):
        self.clauses: list[str] = []
        self.params: list = []

    def equals(self, column: str, value) -> "_Filter":
        if value is not None:
            self.clauses.append(f"{column} = ?")
            self.params.append(value)
        return self

    def within(self, column: str, values: Optional[Iterable]) -> "_Filter":
        if values is None:
            return self
        values = list(values)
        if not values:
            # Empty IN list matches nothing
            self.clauses.append("0")
            return self
        placeholders = ",".join(["?"] * len(values))
        self.clauses.append(f"{column} IN ({placeholders})")
        self.params.extend(values)
        return self

    def raw(self, clause: str, *params) -> "_Filter":
        self.clauses.append(clause)
        self.params.extend(params)
        return self

    def sql(self) -> str:
        if not self.clauses:
            return ""
        return "WHERE " + " AND ".join(self.clauses)


class StoreReader:
    """Read domain entities from SQLite."""

    def __init__(self, db: Database):
        self.db = db

    # =========================================================================
    # Projects and pipelines
    # =========================================================================

    async def get_project(self, project_id: int) -> Optional[ProjectModel]:
        projects = await self.get_projects(project_ids=[project_id])
        return projects[0] if projects else None

    async def get_projects(
        self,
        project_ids: Optional[Iterable[int]] = None,
        group_id: Optional[int] = None,
        min_project_id: Optional[int] = None,
        active_only: bool = False,
    ) -> list[ProjectModel]:
        where = _Filter().within("project_id", project_ids).equals("group_id", group_id)
        if min_project_id is not None:
            where.raw("project_id >= ?", min_project_id)
        if active_only:
            where.raw("status = 1")
        rows = await self.db.execute_read(
            f"""
            SELECT project_id, name, group_id, type_id, no_of_series, series_name, status
            FROM projects
            {where.sql()}
            ORDER BY project_id DESC
            """,
            where.params,
        )
        return [self._row_to_project(row) for row in rows]

    async def get_groups(self, group_ids: Optional[Iterable[int]] = None) -> list[GroupModel]:
        where = _Filter().within("group_id", group_ids)
        rows = await self.db.execute_read(
            f"SELECT group_id, name, status FROM groups {where.sql()} ORDER BY group_id",
            where.params,
        )
        return [GroupModel(group_id=row[0], name=row[1], status=bool(row[2])) for row in rows]

    async def get_processes(self) -> list[ProcessModel]:
        rows = await self.db.execute_read(
            "SELECT process_id, name, status FROM processes ORDER BY process_id"
        )
        return [ProcessModel(process_id=row[0], name=row[1], status=bool(row[2])) for row in rows]

    async def get_process(self, process_id: int) -> Optional[ProcessModel]:
        rows = await self.db.execute_read(
            "SELECT process_id, name, status FROM processes WHERE process_id = ?",
            [process_id],
        )
        if not rows:
            return None
        return ProcessModel(process_id=rows[0][0], name=rows[0][1], status=bool(rows[0][2]))

    async def get_project_processes(
        self, project_id: Optional[int] = None
    ) -> list[ProjectProcessModel]:
        """Pipeline entries ordered by sequence (all projects when project_id is None)."""
        where = _Filter().equals("project_id", project_id)
        rows = await self.db.execute_read(
            f"""
            SELECT project_id, process_id, sequence, weightage, process_type,
                   range_start, user_ids
            FROM project_processes
            {where.sql()}
            ORDER BY project_id, sequence
            """,
            where.params,
        )
        return [self._row_to_project_process(row) for row in rows]

    # =========================================================================
    # Catches, transactions, dispatches
    # =========================================================================

    async def get_quantity_sheet(self, quantity_sheet_id: int) -> Optional[QuantitySheetModel]:
        sheets = await self.get_quantity_sheets(sheet_ids=[quantity_sheet_id])
        return sheets[0] if sheets else None

    async def get_quantity_sheets(
        self,
        project_id: Optional[int] = None,
        lot_no: Optional[str] = None,
        status: Optional[int] = None,
        stop_catch: Optional[int] = None,
        catch_no: Optional[str] = None,
        sheet_ids: Optional[Iterable[int]] = None,
        project_ids: Optional[Iterable[int]] = None,
    ) -> list[QuantitySheetModel]:
        where = (
            _Filter()
            .equals("project_id", project_id)
            .equals("lot_no", lot_no)
            .equals("status", status)
            .equals("stop_catch", stop_catch)
            .equals("catch_no", catch_no)
            .within("quantity_sheet_id", sheet_ids)
            .within("project_id", project_ids)
        )
        rows = await self.db.execute_read(
            f"""
            SELECT {_SHEET_COLUMNS}
            FROM quantity_sheets
            {where.sql()}
            ORDER BY quantity_sheet_id
            """,
            where.params,
        )
        return [self._row_to_sheet(row) for row in rows]

    async def get_project_ids_with_active_catches(self) -> set[int]:
        rows = await self.db.execute_read(
            "SELECT DISTINCT project_id FROM quantity_sheets WHERE status = 1"
        )
        return {row[0] for row in rows}

    async def get_transaction(self, transaction_id: int) -> Optional[TransactionModel]:
        transactions = await self.get_transactions(transaction_ids=[transaction_id])
        return transactions[0] if transactions else None

    async def find_transaction(
        self, quantitysheet_id: int, lot_no: Optional[str], process_id: int
    ) -> Optional[TransactionModel]:
        """Current transaction for a (catch, lot, process) key."""
        rows = await self.db.execute_read(
            f"""
            SELECT {_TRANSACTION_COLUMNS}
            FROM transactions
            WHERE quantitysheet_id = ? AND lot_no IS ? AND process_id = ?
            ORDER BY transaction_id DESC
            LIMIT 1
            """,
            [quantitysheet_id, lot_no, process_id],
        )
        return self._row_to_transaction(rows[0]) if rows else None

    async def get_transactions(
        self,
        project_id: Optional[int] = None,
        lot_no: Optional[str] = None,
        process_id: Optional[int] = None,
        status: Optional[int] = None,
        exclude_status: Optional[int] = None,
        transaction_ids: Optional[Iterable[int]] = None,
        sheet_ids: Optional[Iterable[int]] = None,
    ) -> list[TransactionModel]:
        where = (
            _Filter()
            .equals("project_id", project_id)
            .equals("lot_no", lot_no)
            .equals("process_id", process_id)
            .equals("status", status)
            .within("transaction_id", transaction_ids)
            .within("quantitysheet_id", sheet_ids)
        )
        if exclude_status is not None:
            where.raw("status != ?", exclude_status)
        rows = await self.db.execute_read(
            f"""
            SELECT {_TRANSACTION_COLUMNS}
            FROM transactions
            {where.sql()}
            ORDER BY transaction_id
            """,
            where.params,
        )
        return [self._row_to_transaction(row) for row in rows]

    async def get_dispatch(self, dispatch_id: int) -> Optional[DispatchModel]:
        rows = await self.db.execute_read(
            f"SELECT {_DISPATCH_COLUMNS} FROM dispatches WHERE dispatch_id = ?",
            [dispatch_id],
        )
        return self._row_to_dispatch(rows[0]) if rows else None

    async def get_dispatches(
        self,
        project_id: Optional[int] = None,
        lot_no: Optional[str] = None,
        dispatched_on: Optional[date] = None,
    ) -> list[DispatchModel]:
        where = _Filter().equals("project_id", project_id).equals("lot_no", lot_no)
        if dispatched_on is not None:
            where.raw("date(dispatch_date) = ?", dispatched_on.isoformat())
        rows = await self.db.execute_read(
            f"""
            SELECT {_DISPATCH_COLUMNS}
            FROM dispatches
            {where.sql()}
            ORDER BY dispatch_id
            """,
            where.params,
        )
        return [self._row_to_dispatch(row) for row in rows]

    # =========================================================================
    # Audit trail
    # =========================================================================

    async def get_event_logs(
        self,
        transaction_ids: Optional[Iterable[int]] = None,
        category: Optional[str] = None,
        event: Optional[str] = None,
        old_value: Optional[str] = None,
        new_value: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        logged_from: Optional[datetime] = None,
        logged_before: Optional[datetime] = None,
    ) -> list[EventLogModel]:
        """Event rows ordered by time; event names compare case-insensitively."""
        where = (
            _Filter()
            .within("transaction_id", transaction_ids)
            .equals("category", category)
            .equals("old_value", old_value)
            .equals("new_value", new_value)
        )
        if event is not None:
            where.raw("lower(event) = lower(?)", event)
        if start_date is not None:
            where.raw("date(logged_at) >= ?", start_date.isoformat())
        if end_date is not None:
            where.raw("date(logged_at) <= ?", end_date.isoformat())
        if logged_from is not None:
            where.raw("logged_at >= ?", logged_from.isoformat(sep=" "))
        if logged_before is not None:
            where.raw("logged_at < ?", logged_before.isoformat(sep=" "))
        rows = await self.db.execute_read(
            f"""
            SELECT {_EVENT_COLUMNS}
            FROM event_logs
            {where.sql()}
            ORDER BY logged_at, event_id
            """,
            where.params,
        )
        return [self._row_to_event(row) for row in rows]

    # =========================================================================
    # Lookups (id -> record)
    # =========================================================================

    async def get_zones(self) -> dict[int, ZoneModel]:
        rows = await self.db.execute_read("SELECT zone_id, zone_no, zone_description FROM zones")
        return {
            row[0]: ZoneModel(zone_id=row[0], zone_no=row[1], zone_description=row[2])
            for row in rows
        }

    async def get_machines(self) -> dict[int, MachineModel]:
        rows = await self.db.execute_read("SELECT machine_id, machine_name FROM machines")
        return {row[0]: MachineModel(machine_id=row[0], machine_name=row[1]) for row in rows}

    async def get_teams(self) -> dict[int, TeamModel]:
        rows = await self.db.execute_read("SELECT team_id, team_name, user_ids FROM teams")
        return {
            row[0]: TeamModel(team_id=row[0], team_name=row[1], user_ids=self._parse_ids(row[2]))
            for row in rows
        }

    async def get_users(self) -> dict[int, UserModel]:
        rows = await self.db.execute_read(
            "SELECT user_id, user_name, first_name, last_name, role_id FROM users"
        )
        return {row[0]: self._row_to_user(row) for row in rows}

    async def get_user(self, user_id: int) -> Optional[UserModel]:
        rows = await self.db.execute_read(
            "SELECT user_id, user_name, first_name, last_name, role_id FROM users WHERE user_id = ?",
            [user_id],
        )
        return self._row_to_user(rows[0]) if rows else None

    # =========================================================================
    # Row converters
    # =========================================================================

    @staticmethod
    def _parse_ids(value) -> list[int]:
        """Decode a JSON id array column, tolerating NULL and bad payloads."""
        if not value:
            return []
        try:
            decoded = json.loads(value)
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed id list: %r", value)
            return []
        if not isinstance(decoded, list):
            return []
        return [int(item) for item in decoded if str(item).lstrip("-").isdigit()]

    @staticmethod
    def _parse_timestamp(value) -> Optional[datetime]:
        """Parse SQLite timestamp string to datetime."""
        if not value:
            return None
        if isinstance(value, datetime):
            return value
        try:
            return datetime.fromisoformat(str(value))
        except (ValueError, TypeError):
            return None

    def _row_to_project(self, row: tuple) -> ProjectModel:
        return ProjectModel(
            project_id=row[0],
            name=row[1],
            group_id=row[2],
            type_id=row[3],
            no_of_series=row[4],
            series_name=row[5],
            status=bool(row[6]),
        )

    def _row_to_project_process(self, row: tuple) -> ProjectProcessModel:
        return ProjectProcessModel(
            project_id=row[0],
            process_id=row[1],
            sequence=row[2],
            weightage=Decimal(str(row[3] or 0)),
            process_type=row[4] or "Dependent",
            range_start=row[5],
            user_ids=self._parse_ids(row[6]),
        )

    def _row_to_sheet(self, row: tuple) -> QuantitySheetModel:
        """Convert database row to QuantitySheetModel.

        Row columns:
        0: quantity_sheet_id, 1: project_id, 2: lot_no, 3: catch_no, 4: course,
        5: subject, 6: paper, 7: exam_date, 8: exam_time, 9: quantity,
        10: process_ids, 11: percentage_catch, 12: status, 13: stop_catch
        """
        return QuantitySheetModel(
            quantity_sheet_id=row[0],
            project_id=row[1],
            lot_no=row[2],
            catch_no=row[3],
            course=row[4],
            subject=row[5],
            paper=row[6],
            exam_date=row[7],
            exam_time=row[8],
            quantity=Decimal(str(row[9] or 0)),
            process_ids=self._parse_ids(row[10]),
            percentage_catch=Decimal(str(row[11] or 0)),
            status=row[12] or 0,
            stop_catch=row[13] or 0,
        )

    def _row_to_transaction(self, row: tuple) -> TransactionModel:
        return TransactionModel(
            transaction_id=row[0],
            quantitysheet_id=row[1],
            project_id=row[2],
            lot_no=row[3],
            process_id=row[4],
            status=row[5] or 0,
            interim_quantity=row[6] or 0,
            remarks=row[7],
            voice_recording=row[8],
            zone_id=row[9],
            machine_id=row[10],
            team_ids=self._parse_ids(row[11]),
            alarm_id=row[12],
        )

    def _row_to_dispatch(self, row: tuple) -> DispatchModel:
        return DispatchModel(
            dispatch_id=row[0],
            project_id=row[1],
            process_id=row[2],
            lot_no=row[3],
            box_count=row[4] or 0,
            messenger_name=row[5],
            messenger_mobile=row[6],
            dispatch_mode=row[7],
            vehicle_no=row[8],
            driver_name=row[9],
            driver_mobile=row[10],
            status=bool(row[11]),
            dispatch_date=self._parse_timestamp(row[12]),
            created_at=self._parse_timestamp(row[13]),
            updated_at=self._parse_timestamp(row[14]),
        )

    def _row_to_event(self, row: tuple) -> EventLogModel:
        return EventLogModel(
            event_id=row[0],
            transaction_id=row[1],
            category=row[2],
            event=row[3],
            old_value=row[4],
            new_value=row[5],
            logged_at=self._parse_timestamp(row[6]) or datetime.min,
            event_triggered_by=row[7] or 0,
        )

    def _row_to_user(self, row: tuple) -> UserModel:
        return UserModel(
            user_id=row[0],
            user_name=row[1],
            first_name=row[2],
            last_name=row[3],
            role_id=row[4],
        )
