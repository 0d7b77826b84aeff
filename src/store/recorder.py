"""Write path for transactions and dispatches, with the audit trail.

Each write runs inside one database transaction and appends EventLog rows
describing what changed. Upserts are keyed find-or-create operations held
under a per-key asyncio.Lock so concurrent requests for the same key are
serialized within the process; the database itself runs one write
transaction at a time.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional

from src.database.connection import Database
from src.exceptions import NotFoundError, ValidationFailure
from src.models.records import DispatchRequest, RecordResult, TransactionRequest
from src.process_config import ProcessConstants
from src.store.models import DispatchModel, TransactionModel
from src.store.reader import StoreReader

logger = logging.getLogger(__name__)

TRANSACTION_CATEGORY = "Transaction"
DISPATCH_CATEGORY = "Dispatch"


@dataclass(frozen=True)
class FieldChange:
    """One audited field transition; old is None when the field was unset."""

    field: str
    old: Optional[str]
    new: Optional[str]

    @property
    def event(self) -> str:
        return f"{self.field} added" if self.old is None else f"{self.field} updated"


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, list):
        return ",".join(str(item) for item in value)
    return str(value)


def _audited_values(values: TransactionRequest | TransactionModel) -> dict[str, Optional[str]]:
    return {
        "InterimQuantity": _text(values.interim_quantity),
        "Remarks": _text(values.remarks),
        "VoiceRecording": _text(values.voice_recording),
        "ZoneId": _text(values.zone_id),
        "MachineId": _text(values.machine_id),
        "Status": _text(values.status),
        "AlarmId": _text(values.alarm_id),
        "TeamId": _text(values.team_ids),
    }


def diff_transaction(
    existing: TransactionModel, request: TransactionRequest
) -> list[FieldChange]:
    """Changes the request makes to an existing row; fields cleared to None are not logged."""
    old_values = _audited_values(existing)
    new_values = _audited_values(request)
    changes = []
    for name, new in new_values.items():
        old = old_values[name]
        if new is None or old == new:
            continue
        changes.append(FieldChange(field=name, old=old, new=new))
    return changes


def audit_timestamp() -> str:
    return datetime.now().replace(microsecond=0).isoformat(sep=" ")


def triggered_by_from_subject(subject: Optional[str]) -> int:
    """Numeric user id from a token subject, 0 when it is not numeric."""
    try:
        return int(subject) if subject is not None else 0
    except ValueError:
        return 0


class _KeyedLocks:
    """asyncio locks per key, dropped once no task holds or awaits them."""

    def __init__(self):
        self._locks: dict[tuple, asyncio.Lock] = {}
        self._users: dict[tuple, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: tuple):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    @asynccontextmanager
    async def hold_all(self, keys: Iterable[tuple]):
        """Acquire several keys in the given order; callers pass them sorted."""
        async with AsyncExitStack() as stack:
            for key in dict.fromkeys(keys):
                await stack.enter_async_context(self.hold(key))
            yield


class TransactionRecorder:
    """Create or update transactions for a catch, or for all its series siblings."""

    def __init__(self, db: Database, reader: StoreReader, constants: ProcessConstants):
        self.db = db
        self.reader = reader
        self.constants = constants
        self._locks = _KeyedLocks()

    async def record(self, request: TransactionRequest, triggered_by: int = 0) -> RecordResult:
        process = await self.reader.get_process(request.process_id)
        if process is None:
            raise ValidationFailure("Invalid ProcessId.")

        if self.constants.records_single_catch(process.name):
            sheet_ids = [request.quantitysheet_id]
        else:
            sheet = await self.reader.get_quantity_sheet(request.quantitysheet_id)
            if sheet is None:
                raise ValidationFailure("QuantitySheet not found.")
            siblings = await self.reader.get_quantity_sheets(
                project_id=request.project_id, lot_no=request.lot_no, catch_no=sheet.catch_no
            )
            if not siblings:
                raise ValidationFailure("No matching QuantitySheets found.")
            sheet_ids = [s.quantity_sheet_id for s in siblings]

        sheet_ids = sorted(set(sheet_ids))
        keys = [(sheet_id, request.lot_no, request.process_id) for sheet_id in sheet_ids]
        result = RecordResult(message="Transactions created/updated successfully.")
        async with self._locks.hold_all(keys):
            async with self.db.transaction():
                for key in keys:
                    transaction_id, created = await self._upsert(key, request, triggered_by)
                    result.transaction_ids.append(transaction_id)
                    if created:
                        result.created += 1
                    else:
                        result.updated += 1

        logger.info(
            "Recorded process %s for %s catch(es) in project %s lot %s (%s new, %s updated)",
            request.process_id,
            len(sheet_ids),
            request.project_id,
            request.lot_no,
            result.created,
            result.updated,
        )
        return result

    async def _upsert(
        self, key: tuple, request: TransactionRequest, triggered_by: int
    ) -> tuple[int, bool]:
        """Find-or-create one row; the caller holds the key lock and the transaction."""
        existing = await self.reader.find_transaction(*key)
        if existing is None:
            transaction_id = await self._insert(key[0], request, triggered_by)
            return transaction_id, True

        changes = diff_transaction(existing, request)
        await self.db.execute_write_no_commit(
            """
            UPDATE transactions
            SET interim_quantity = ?, remarks = ?, voice_recording = ?, zone_id = ?,
                machine_id = ?, status = ?, alarm_id = ?, team_ids = ?
            WHERE transaction_id = ?
            """,
            [
                request.interim_quantity,
                request.remarks,
                request.voice_recording,
                request.zone_id,
                request.machine_id,
                request.status,
                request.alarm_id,
                json.dumps(request.team_ids),
                existing.transaction_id,
            ],
        )
        await self._log_changes(existing.transaction_id, changes, triggered_by)
        return existing.transaction_id, False

    async def _insert(self, sheet_id: int, request: TransactionRequest, triggered_by: int) -> int:
        transaction_id = await self.db.execute_insert_no_commit(
            """
            INSERT INTO transactions (
                quantitysheet_id, project_id, lot_no, process_id, status, interim_quantity,
                remarks, voice_recording, zone_id, machine_id, team_ids, alarm_id
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                sheet_id,
                request.project_id,
                request.lot_no,
                request.process_id,
                request.status,
                request.interim_quantity,
                request.remarks,
                request.voice_recording,
                request.zone_id,
                request.machine_id,
                json.dumps(request.team_ids),
                request.alarm_id,
            ],
        )
        summary = (
            f"TeamId: {_text(request.team_ids)}, ZoneId: {request.zone_id}, "
            f"MachineId: {request.machine_id}"
        )
        await self._log(transaction_id, "Transaction created", None, summary, triggered_by)
        return transaction_id

    async def update_status(self, transaction_id: int, status: int, triggered_by: int = 0) -> TransactionModel:
        if status not in (0, 1, 2):
            raise ValidationFailure("Status must be 0, 1 or 2.")
        existing = await self.reader.get_transaction(transaction_id)
        if existing is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")

        async with self._locks.hold((existing.quantitysheet_id, existing.lot_no, existing.process_id)):
            async with self.db.transaction():
                await self.db.execute_write_no_commit(
                    "UPDATE transactions SET status = ? WHERE transaction_id = ?",
                    [status, transaction_id],
                )
                if existing.status != status:
                    await self._log(
                        transaction_id, "Status updated", str(existing.status), str(status), triggered_by
                    )
        return existing.model_copy(update={"status": status})

    async def _log_changes(
        self, transaction_id: int, changes: list[FieldChange], triggered_by: int
    ) -> None:
        if not changes:
            return
        logged_at = audit_timestamp()
        await self.db.executemany_no_commit(
            """
            INSERT INTO event_logs (
                transaction_id, category, event, old_value, new_value, logged_at, event_triggered_by
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (transaction_id, TRANSACTION_CATEGORY, c.event, c.old, c.new, logged_at, triggered_by)
                for c in changes
            ],
        )

    async def _log(
        self,
        transaction_id: int,
        event: str,
        old_value: Optional[str],
        new_value: Optional[str],
        triggered_by: int,
    ) -> None:
        await self.db.execute_write_no_commit(
            """
            INSERT INTO event_logs (
                transaction_id, category, event, old_value, new_value, logged_at, event_triggered_by
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            [transaction_id, TRANSACTION_CATEGORY, event, old_value, new_value, audit_timestamp(), triggered_by],
        )


class DispatchRecorder:
    """Replace-on-write dispatch rows: at most one per (project, lot)."""

    def __init__(self, db: Database, reader: StoreReader):
        self.db = db
        self.reader = reader
        self._locks = _KeyedLocks()

    async def create(self, request: DispatchRequest, triggered_by: int = 0) -> DispatchModel:
        key = (request.project_id, request.lot_no)
        now = audit_timestamp()
        async with self._locks.hold(key):
            async with self.db.transaction():
                await self.db.execute_write_no_commit(
                    "DELETE FROM dispatches WHERE project_id = ? AND lot_no = ?",
                    [request.project_id, request.lot_no],
                )
                dispatch_id = await self.db.execute_insert_no_commit(
                    """
                    INSERT INTO dispatches (
                        project_id, process_id, lot_no, box_count, messenger_name,
                        messenger_mobile, dispatch_mode, vehicle_no, driver_name,
                        driver_mobile, status, dispatch_date, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        request.project_id,
                        request.process_id,
                        request.lot_no,
                        request.box_count,
                        request.messenger_name,
                        request.messenger_mobile,
                        request.dispatch_mode,
                        request.vehicle_no,
                        request.driver_name,
                        request.driver_mobile,
                        int(request.status),
                        request.dispatch_date.isoformat(sep=" ") if request.dispatch_date else None,
                        now,
                        now,
                    ],
                )
                await self._log("Created a new dispatch", dispatch_id, triggered_by)

        logger.info(
            "Dispatch %s recorded for project %s lot %s", dispatch_id, request.project_id, request.lot_no
        )
        dispatch = await self.reader.get_dispatch(dispatch_id)
        if dispatch is None:
            raise NotFoundError(f"Dispatch {dispatch_id} not found")
        return dispatch

    async def delete(self, dispatch_id: int, triggered_by: int = 0) -> None:
        dispatch = await self.reader.get_dispatch(dispatch_id)
        if dispatch is None:
            raise NotFoundError(f"Dispatch {dispatch_id} not found")

        async with self._locks.hold((dispatch.project_id, dispatch.lot_no)):
            async with self.db.transaction():
                await self.db.execute_write_no_commit(
                    "DELETE FROM dispatches WHERE dispatch_id = ?", [dispatch_id]
                )
                await self._log(f"Deleted dispatch with ID {dispatch_id}", dispatch_id, triggered_by)

    async def _log(self, event: str, dispatch_id: int, triggered_by: int) -> None:
        await self.db.execute_write_no_commit(
            """
            INSERT INTO event_logs (category, event, new_value, logged_at, event_triggered_by)
            VALUES (?, ?, ?, ?, ?)
            """,
            [DISPATCH_CATEGORY, event, str(dispatch_id), audit_timestamp(), triggered_by],
        )
