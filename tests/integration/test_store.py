"""Integration tests for StoreReader and the write recorders."""

import asyncio
from decimal import Decimal

import pytest

from src.exceptions import DatabaseError, NotFoundError, ValidationFailure
from src.models.records import DispatchRequest, TransactionRequest
from src.process_config import ProcessConstants
from src.query.completion import CompletionAggregator
from src.query.pipeline import PipelineResolver
from src.query.production_status import ProductionStatusDeriver
from src.store.recorder import DispatchRecorder, TransactionRecorder


class TestStoreReader:
    """Tests for StoreReader against the seeded store."""

    @pytest.mark.asyncio
    async def test_quantity_sheet_decoding(self, store_reader):
        sheet = await store_reader.get_quantity_sheet(101)

        assert sheet.process_ids == [1, 2, 3]
        assert sheet.quantity == Decimal("10")
        assert sheet.percentage_catch == Decimal("100")

    @pytest.mark.asyncio
    async def test_quantity_sheet_filters(self, store_reader):
        siblings = await store_reader.get_quantity_sheets(project_id=92, lot_no="L1", catch_no="C7")
        assert [s.quantity_sheet_id for s in siblings] == [201, 202]

        assert await store_reader.get_quantity_sheets(sheet_ids=[]) == []

    @pytest.mark.asyncio
    async def test_projects_newest_first(self, store_reader):
        projects = await store_reader.get_projects(min_project_id=88)
        assert [p.project_id for p in projects] == [92, 91]

    @pytest.mark.asyncio
    async def test_project_processes_carry_user_ids(self, store_reader):
        entries = await store_reader.get_project_processes(91)
        assert entries[0].user_ids == [7]

    @pytest.mark.asyncio
    async def test_missing_rows_are_none(self, store_reader):
        assert await store_reader.get_project(404) is None
        assert await store_reader.get_transaction(404) is None
        assert await store_reader.get_dispatch(404) is None

    @pytest.mark.asyncio
    async def test_lookups(self, store_reader):
        users = await store_reader.get_users()
        teams = await store_reader.get_teams()

        assert users[7].full_name == "Ravi Kumar"
        assert teams[9].user_ids == [7]


class TestTransactionRecorder:
    """Tests for TransactionRecorder upserts and audit rows."""

    @pytest.fixture
    def recorder(self, seeded_database, store_reader):
        return TransactionRecorder(seeded_database, store_reader, ProcessConstants())

    @pytest.mark.asyncio
    async def test_fan_out_to_series_siblings(self, recorder, store_reader):
        request = TransactionRequest(
            quantitysheet_id=201, project_id=92, lot_no="L1", process_id=5, status=1, zone_id=3
        )

        result = await recorder.record(request, triggered_by=7)

        assert result.created == 2
        assert len(result.transaction_ids) == 2
        rows = await store_reader.get_transactions(project_id=92)
        assert sorted(t.quantitysheet_id for t in rows) == [201, 202]
        events = await store_reader.get_event_logs(transaction_ids=result.transaction_ids)
        assert [e.event for e in events] == ["Transaction created", "Transaction created"]
        assert events[0].event_triggered_by == 7

    @pytest.mark.asyncio
    async def test_single_catch_process_is_not_fanned_out(self, recorder, store_reader):
        request = TransactionRequest(quantitysheet_id=201, project_id=92, lot_no="L1", process_id=1)

        result = await recorder.record(request)

        assert result.created == 1
        assert len(await store_reader.get_transactions(project_id=92)) == 1

    @pytest.mark.asyncio
    async def test_second_write_updates_and_logs_changes(self, recorder, store_reader):
        request = TransactionRequest(quantitysheet_id=201, project_id=92, lot_no="L1", process_id=1, status=1)
        first = await recorder.record(request)

        second = await recorder.record(request.model_copy(update={"status": 2, "remarks": "plates ok"}))

        assert second.updated == 1
        assert second.transaction_ids == first.transaction_ids
        events = await store_reader.get_event_logs(transaction_ids=first.transaction_ids)
        assert {e.event for e in events} == {"Transaction created", "Status updated", "Remarks added"}
        status_event = next(e for e in events if e.event == "Status updated")
        assert (status_event.old_value, status_event.new_value) == ("1", "2")

    @pytest.mark.asyncio
    async def test_invalid_process(self, recorder):
        request = TransactionRequest(quantitysheet_id=201, project_id=92, lot_no="L1", process_id=99)
        with pytest.raises(ValidationFailure, match="Invalid ProcessId."):
            await recorder.record(request)

    @pytest.mark.asyncio
    async def test_missing_sheet(self, recorder):
        request = TransactionRequest(quantitysheet_id=999, project_id=92, lot_no="L1", process_id=5)
        with pytest.raises(ValidationFailure, match="QuantitySheet not found."):
            await recorder.record(request)

    @pytest.mark.asyncio
    async def test_update_status(self, recorder, store_reader):
        updated = await recorder.update_status(1, 1, triggered_by=1)

        assert updated.status == 1
        assert (await store_reader.get_transaction(1)).status == 1
        events = await store_reader.get_event_logs(transaction_ids=[1], event="status UPDATED")
        assert [(e.old_value, e.new_value) for e in events] == [("2", "1")]

    @pytest.mark.asyncio
    async def test_update_status_unknown_transaction(self, recorder):
        with pytest.raises(NotFoundError):
            await recorder.update_status(404, 2)


class TestDispatchRecorder:
    """Tests for DispatchRecorder replace-on-write."""

    @pytest.fixture
    def recorder(self, seeded_database, store_reader):
        return DispatchRecorder(seeded_database, store_reader)

    @pytest.mark.asyncio
    async def test_upsert_keeps_one_row_per_lot(self, recorder, store_reader):
        await recorder.create(DispatchRequest(project_id=5, lot_no="L1", box_count=2))
        latest = await recorder.create(DispatchRequest(project_id=5, lot_no="L1", box_count=6, status=True))

        rows = await store_reader.get_dispatches(project_id=5, lot_no="L1")
        assert len(rows) == 1
        assert rows[0].dispatch_id == latest.dispatch_id
        assert rows[0].box_count == 6
        assert rows[0].status is True

    @pytest.mark.asyncio
    async def test_create_logs_event(self, recorder, store_reader):
        dispatch = await recorder.create(DispatchRequest(project_id=5, lot_no="L1"), triggered_by=7)

        events = await store_reader.get_event_logs(category="Dispatch")
        assert events[0].event == "Created a new dispatch"
        assert events[0].new_value == str(dispatch.dispatch_id)

    @pytest.mark.asyncio
    async def test_delete(self, recorder, store_reader):
        dispatch = await recorder.create(DispatchRequest(project_id=5, lot_no="L1"))

        await recorder.delete(dispatch.dispatch_id)

        assert await store_reader.get_dispatches(project_id=5) == []
        with pytest.raises(NotFoundError):
            await recorder.delete(dispatch.dispatch_id)


class TestEndToEnd:
    """Engines over the seeded store."""

    @pytest.mark.asyncio
    async def test_project_completion(self, store_reader):
        constants = ProcessConstants()
        aggregator = CompletionAggregator(store_reader, PipelineResolver(store_reader, constants), constants)

        completion = await aggregator.project_completion(91)

        assert completion.project_name == "Annual Exams"
        assert completion.completion_percentage == Decimal("70.00")

    @pytest.mark.asyncio
    async def test_operator_listing(self, store_reader):
        constants = ProcessConstants()
        aggregator = CompletionAggregator(store_reader, PipelineResolver(store_reader, constants), constants)

        rows = await aggregator.all_project_completion(user_id=7)

        assert [r.project_id for r in rows] == [91]

    @pytest.mark.asyncio
    async def test_dispatch_removes_lot_from_under_production(self, seeded_database, store_reader):
        deriver = ProductionStatusDeriver(store_reader, min_project_id=0)
        before = await deriver.under_production()
        assert [(r.project_id, r.lot_no) for r in before].count((5, "L1")) == 1

        await DispatchRecorder(seeded_database, store_reader).create(
            DispatchRequest(project_id=5, lot_no="L1", status=True)
        )

        after = await deriver.under_production()
        assert (5, "L1") not in [(r.project_id, r.lot_no) for r in after]


class TestConcurrentWrites:
    """Writes from concurrent requests stay isolated from each other."""

    @pytest.fixture
    def transactions(self, seeded_database, store_reader):
        return TransactionRecorder(seeded_database, store_reader, ProcessConstants())

    @pytest.fixture
    def dispatches(self, seeded_database, store_reader):
        return DispatchRecorder(seeded_database, store_reader)

    @pytest.mark.asyncio
    async def test_failed_dispatch_keeps_concurrent_transaction(self, transactions, dispatches, store_reader):
        async def failing_dispatch():
            for _ in range(9):
                await asyncio.sleep(0)
            # Bypasses request validation so the insert itself fails
            return await dispatches.create(
                DispatchRequest.model_construct(project_id=91, lot_no="L1", box_count=2**64)
            )

        results = await asyncio.gather(
            transactions.record(
                TransactionRequest(quantitysheet_id=201, project_id=92, lot_no="L1", process_id=1, status=1)
            ),
            failing_dispatch(),
            return_exceptions=True,
        )

        assert results[0].created == 1
        assert isinstance(results[1], OverflowError)
        rows = await store_reader.get_transactions(project_id=92)
        assert [(t.quantitysheet_id, t.status) for t in rows] == [(201, 1)]
        assert await store_reader.get_dispatches(project_id=91) == []

    @pytest.mark.asyncio
    async def test_same_key_upserts_end_as_one_row(self, transactions, store_reader):
        request = TransactionRequest(quantitysheet_id=201, project_id=92, lot_no="L1", process_id=1, status=1)

        results = await asyncio.gather(
            transactions.record(request),
            transactions.record(request.model_copy(update={"status": 2})),
        )

        assert sorted((r.created, r.updated) for r in results) == [(0, 1), (1, 0)]
        rows = await store_reader.get_transactions(project_id=92)
        assert len(rows) == 1
        assert len(transactions._locks) == 0

    @pytest.mark.asyncio
    async def test_failing_sibling_rolls_back_whole_fan_out(
        self, transactions, seeded_database, store_reader, monkeypatch
    ):
        insert = seeded_database.execute_insert_no_commit

        async def insert_failing_on_second_sibling(query, params=None):
            if "INSERT INTO transactions" in query and params[0] == 202:
                raise DatabaseError("disk I/O error")
            return await insert(query, params)

        monkeypatch.setattr(seeded_database, "execute_insert_no_commit", insert_failing_on_second_sibling)

        with pytest.raises(DatabaseError):
            await transactions.record(
                TransactionRequest(quantitysheet_id=201, project_id=92, lot_no="L1", process_id=5)
            )

        assert await store_reader.get_transactions(project_id=92) == []
        assert await store_reader.get_event_logs(category="Transaction") == []
