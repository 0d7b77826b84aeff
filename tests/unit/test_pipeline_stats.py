"""Tests for src/query/pipeline_stats.py"""

from decimal import Decimal

import pytest

from src.process_config import ProcessConstants
from src.query.pipeline import PipelineResolver
from src.query.pipeline_stats import (
    PipelineStatisticsEngine,
    compute_entry_totals,
    compute_process_train,
    filter_status_details,
)
from src.store.models import ProjectProcessModel
from tests.fixtures.sample_data import (
    BINDING,
    CTP,
    CUTTING,
    DIGITAL,
    NUMBERING,
    OFFSET,
    PACKING,
    project,
    sheet,
    stage,
    transaction,
)

CONSTANTS = ProcessConstants()


def _assert_remaining_identity(stages):
    for row in stages:
        expected = row.initial_total_quantity - row.wip_total_quantity - row.completed_total_quantity
        if expected >= 0:
            assert row.remaining_quantity == expected, row.process_id


def _assert_nothing_negative(stages):
    for row in stages:
        for name, value in row.model_dump().items():
            if isinstance(value, (int, Decimal)) and name not in ("process_id", "process_sequence"):
                assert value >= 0, (row.process_id, name)


@pytest.fixture
def booklet_lot():
    """Four catches of 100 through CTP -> Offset -> Cutting -> Binding -> Packing."""
    pipeline = [
        stage(CTP, 1),
        stage(OFFSET, 2),
        stage(CUTTING, 3),
        stage(BINDING, 4),
        stage(PACKING, 5),
    ]
    processes = [CTP, OFFSET, CUTTING, BINDING, PACKING]
    sheets = {i: sheet(i, quantity=100, processes=processes) for i in range(1, 5)}
    transactions = [transaction(i, i, CTP) for i in range(1, 5)]
    transactions += [transaction(10 + i, i, OFFSET) for i in range(1, 4)]
    transactions.append(transaction(14, 4, OFFSET, status=1))
    transactions += [transaction(20 + i, i, CUTTING) for i in range(1, 3)]
    transactions.append(transaction(31, 1, BINDING))
    return pipeline, sheets, transactions


class TestProcessTrain:
    """Tests for compute_process_train stage adjustment."""

    def test_booklet_pipeline(self, booklet_lot):
        pipeline, sheets, transactions = booklet_lot
        rows = compute_process_train(
            pipeline, project(type_id=1, no_of_series=2), transactions, sheets, CONSTANTS
        )
        ctp, offset, cutting, binding, packing = rows

        assert ctp.initial_total_quantity == Decimal("400")
        assert ctp.completed_count == 4
        assert ctp.remaining_quantity == Decimal("0")

        assert offset.initial_total_quantity == Decimal("400")
        assert offset.wip_count == 1
        assert offset.completed_count == 3
        assert offset.total_catch_no == 4

        # Cutting always chains from offset printing
        assert cutting.initial_total_quantity == Decimal("300")
        assert cutting.remaining_quantity == Decimal("100")
        assert cutting.remaining_catch_no == 1

        # First stage after the cut: quartered cut output, own figures per series
        assert binding.initial_total_quantity == Decimal("50.00")
        assert binding.completed_total_quantity == Decimal("50.00")
        assert binding.completed_count == 0
        assert binding.total_catch_no == 0

        assert packing.initial_total_quantity == Decimal("50.00")
        assert packing.remaining_quantity == Decimal("50.00")

        _assert_remaining_identity(rows)
        _assert_nothing_negative(rows)

    def test_paper_pipeline_sums_after_cut_without_division(self, booklet_lot):
        pipeline, sheets, transactions = booklet_lot
        rows = compute_process_train(
            pipeline, project(type_id=2, no_of_series=2), transactions, sheets, CONSTANTS
        )
        binding = rows[3]

        assert binding.initial_total_quantity == Decimal("200")
        assert binding.completed_total_quantity == Decimal("100")
        assert binding.total_catch_no == 3
        assert binding.remaining_catch_no == 2
        _assert_remaining_identity(rows)

    def test_no_cutting_stage_chains_plainly(self):
        pipeline = [stage(CTP, 1), stage(BINDING, 2)]
        sheets = {1: sheet(1, quantity=40), 2: sheet(2, quantity=60)}
        transactions = [
            transaction(1, 1, CTP),
            transaction(2, 2, CTP),
            transaction(3, 1, BINDING, status=1),
        ]

        rows = compute_process_train(pipeline, project(type_id=1), transactions, sheets, CONSTANTS)

        binding = rows[1]
        assert binding.initial_total_quantity == Decimal("100")
        assert binding.wip_total_quantity == Decimal("40")
        assert binding.remaining_quantity == Decimal("60")
        assert binding.remaining_catch_no == 1

    def test_negative_figures_are_floored(self):
        pipeline = [stage(CTP, 1), stage(BINDING, 2)]
        sheets = {1: sheet(1, quantity=100), 2: sheet(2, quantity=100)}
        transactions = [
            transaction(1, 1, CTP),
            transaction(2, 1, BINDING),
            transaction(3, 2, BINDING),
        ]

        rows = compute_process_train(pipeline, project(type_id=2), transactions, sheets, CONSTANTS)

        binding = rows[1]
        assert binding.remaining_quantity == Decimal("0")
        assert binding.remaining_catch_no == 0
        _assert_nothing_negative(rows)

    def test_independent_stage_chains_from_range_start(self):
        pipeline = [
            stage(CTP, 1),
            stage(OFFSET, 2),
            stage(NUMBERING, 3, process_type="Independent", range_start=1),
        ]
        sheets = {1: sheet(1, quantity=100), 2: sheet(2, quantity=100)}
        transactions = [transaction(1, 1, CTP), transaction(2, 2, CTP), transaction(3, 1, OFFSET)]

        rows = compute_process_train(pipeline, project(type_id=2), transactions, sheets, CONSTANTS)

        numbering = rows[2]
        assert numbering.initial_total_quantity == Decimal("200")
        assert numbering.total_catch_no == 2

    def test_digital_stage_starts_from_entry_totals(self):
        pipeline = [stage(CTP, 1), stage(DIGITAL, 2)]
        sheets = {
            1: sheet(1, quantity=30, processes=[CTP, DIGITAL]),
            2: sheet(2, quantity=70, processes=[CTP]),
        }
        transactions = [transaction(1, 1, CTP), transaction(2, 2, CTP)]

        rows = compute_process_train(pipeline, project(type_id=2), transactions, sheets, CONSTANTS)

        digital = rows[1]
        assert digital.initial_total_quantity == Decimal("30")
        assert digital.total_catch_no == 1
        assert digital.remaining_quantity == Decimal("30")

    def test_series_division_rounds_only_on_output(self):
        pipeline = [stage(CTP, 1), stage(CUTTING, 2), stage(BINDING, 3), stage(PACKING, 4)]
        sheets = {i: sheet(i, quantity=10) for i in (1, 2)}
        transactions = [
            transaction(1, 1, BINDING),
            transaction(2, 2, BINDING),
            transaction(3, 1, PACKING, status=1),
            transaction(4, 2, PACKING),
        ]

        rows = compute_process_train(
            pipeline, project(type_id=1, no_of_series=3), transactions, sheets, CONSTANTS
        )
        packing = rows[3]

        # 20/3 - 10/3 - 10/3 is zero before rounding, 0.01 if each part were rounded first
        assert packing.initial_total_quantity == Decimal("6.67")
        assert packing.wip_total_quantity == Decimal("3.33")
        assert packing.completed_total_quantity == Decimal("3.33")
        assert packing.remaining_quantity == Decimal("0.00")

    def test_empty_pipeline(self):
        assert compute_process_train([], project(), [], {}, CONSTANTS) == []

    def test_stage_without_transactions_reports_zeros(self):
        rows = compute_process_train([stage(CTP, 1)], project(), [], {}, CONSTANTS)

        assert rows[0].wip_count == 0
        assert rows[0].initial_total_quantity == Decimal("0")


class TestEntryTotals:
    """Tests for compute_entry_totals."""

    def test_only_completed_first_stage_rows_count(self):
        pipeline = [stage(CTP, 1), stage(DIGITAL, 2)]
        sheets = {
            1: sheet(1, quantity=10, processes=[CTP, DIGITAL]),
            2: sheet(2, quantity=20, processes=[CTP]),
        }
        transactions = [
            transaction(1, 1, CTP),
            transaction(2, 2, CTP, status=1),
            transaction(3, 1, DIGITAL),
        ]

        totals = compute_entry_totals(pipeline, transactions, sheets, CONSTANTS)

        assert totals.ctp_quantity == Decimal("10")
        assert totals.ctp_count == 1
        assert totals.digital_quantity == Decimal("10")
        assert totals.digital_count == 1


class TestStatusDetails:
    """Tests for filter_status_details."""

    def test_pending_includes_catches_without_transaction(self):
        sheets = [sheet(1, processes=[CTP]), sheet(2, processes=[CTP]), sheet(3, processes=[BINDING])]
        transactions = [transaction(1, 1, CTP, status=2)]

        rows = filter_status_details(sheets, transactions, CTP, status=0)

        assert [row.quantity_sheet_id for row in rows] == [2]
        assert rows[0].status == 0

    def test_completed_filter(self):
        sheets = [sheet(1, processes=[CTP]), sheet(2, processes=[CTP])]
        transactions = [transaction(1, 1, CTP, status=2), transaction(2, 2, CTP, status=1)]

        rows = filter_status_details(sheets, transactions, CTP, status=2)

        assert [row.quantity_sheet_id for row in rows] == [1]


class TestPipelineStatisticsEngine:
    """Tests for the engine's store access."""

    @pytest.mark.asyncio
    async def test_unknown_project_returns_empty(self, mock_reader):
        engine = PipelineStatisticsEngine(
            mock_reader, PipelineResolver(mock_reader, CONSTANTS), CONSTANTS
        )

        assert await engine.process_train(404, "L1") == []
        mock_reader.get_transactions.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_process_train_reads_lot(self, mock_reader):
        mock_reader.get_project.return_value = project(type_id=2)
        mock_reader.get_project_processes.return_value = [
            ProjectProcessModel(project_id=90, process_id=CTP, sequence=1)
        ]
        mock_reader.get_transactions.return_value = [transaction(1, 1, CTP)]
        mock_reader.get_quantity_sheets.return_value = [sheet(1, quantity=25)]
        engine = PipelineStatisticsEngine(
            mock_reader, PipelineResolver(mock_reader, CONSTANTS), CONSTANTS
        )

        rows = await engine.process_train(90, "L1")

        assert rows[0].completed_total_quantity == Decimal("25")
        mock_reader.get_transactions.assert_awaited_once_with(project_id=90, lot_no="L1")
