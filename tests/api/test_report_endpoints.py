"""Tests for /api/reports/* endpoints."""

from datetime import date
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from fastapi import FastAPI

from src.api.middleware.rate_limit import setup_rate_limiting
from src.api.routers.reports import router as reports_router
from src.exceptions import ValidationFailure
from src.models.production import DailyProductionSummary
from src.query.dates import DateWindow


@pytest.fixture
def mock_reports():
    reports = MagicMock()
    reports.window = MagicMock(side_effect=DateWindow.from_query)
    reports.daily_production_report = AsyncMock(return_value=[])
    reports.daily_production_summary = AsyncMock(
        return_value=DailyProductionSummary(total_groups=1, total_lots=2, total_catches=3)
    )
    reports.process_production_report = AsyncMock(return_value=[])
    reports.quick_completion = AsyncMock()
    return reports


@pytest.fixture
def mock_status():
    deriver = MagicMock()
    deriver.under_production = AsyncMock(return_value=[])
    deriver.pending_process_report = AsyncMock(return_value=[])
    deriver.lots_with_status = AsyncMock(return_value=[])
    return deriver


@pytest.fixture
def app_with_reports(mock_reports, mock_status):
    app = FastAPI()
    setup_rate_limiting(app)
    app.state.production_reports = mock_reports
    app.state.production_status = mock_status
    app.state.catch_tracker = MagicMock(
        catch_status_report=AsyncMock(return_value=[]),
        process_wise=AsyncMock(return_value=[]),
    )
    app.include_router(reports_router)
    return app


def _client(app):
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


class TestDateWindowParameters:
    """Date query parameters shared by the event-log reports."""

    @pytest.mark.asyncio
    async def test_single_date(self, app_with_reports, mock_reports, auth_headers):
        async with _client(app_with_reports) as client:
            response = await client.get(
                "/api/reports/daily-production-report", params={"date": "05-07-2025"}, headers=auth_headers
            )

        assert response.status_code == 200
        window = mock_reports.daily_production_report.call_args.args[0]
        assert window == DateWindow(start=date(2025, 7, 5), end=date(2025, 7, 5))

    @pytest.mark.asyncio
    async def test_range_wins_over_single_date(self, app_with_reports, mock_reports, auth_headers):
        async with _client(app_with_reports) as client:
            await client.get(
                "/api/reports/daily-production-summary",
                params={"date": "05-07-2025", "startDate": "01-07-2025", "endDate": "03-07-2025"},
                headers=auth_headers,
            )

        window = mock_reports.daily_production_summary.call_args.args[0]
        assert (window.start, window.end) == (date(2025, 7, 1), date(2025, 7, 3))

    @pytest.mark.asyncio
    async def test_no_dates_is_open_window(self, app_with_reports, mock_reports, auth_headers):
        async with _client(app_with_reports) as client:
            response = await client.get("/api/reports/process-production-report", headers=auth_headers)

        assert response.status_code == 200
        assert mock_reports.process_production_report.call_args.args[0].is_open

    @pytest.mark.asyncio
    async def test_malformed_date_is_400(self, app_with_reports, mock_reports, auth_headers):
        async with _client(app_with_reports) as client:
            response = await client.get(
                "/api/reports/daily-production-report", params={"date": "2025-07-05"}, headers=auth_headers
            )

        assert response.status_code == 400
        assert "dd-MM-yyyy" in response.json()["detail"]
        mock_reports.daily_production_report.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_summary_body(self, app_with_reports, auth_headers):
        async with _client(app_with_reports) as client:
            response = await client.get("/api/reports/daily-production-summary", headers=auth_headers)

        body = response.json()
        assert (body["total_groups"], body["total_lots"], body["total_catches"]) == (1, 2, 3)


class TestStatusReports:
    """Tests for the production status endpoints."""

    @pytest.mark.asyncio
    async def test_pending_process_report_arguments(self, app_with_reports, mock_status, auth_headers):
        async with _client(app_with_reports) as client:
            response = await client.get(
                "/api/reports/pending-process-report",
                params={"groupId": 1, "lotNo": "L1", "processId": 5},
                headers=auth_headers,
            )

        assert response.status_code == 200
        mock_status.pending_process_report.assert_awaited_once_with(1, "L1", None, 5)

    @pytest.mark.asyncio
    async def test_pending_process_report_missing_filters(self, app_with_reports, mock_status, auth_headers):
        mock_status.pending_process_report.side_effect = ValidationFailure("groupId and lotNo are required.")

        async with _client(app_with_reports) as client:
            response = await client.get("/api/reports/pending-process-report", headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["detail"] == "groupId and lotNo are required."

    @pytest.mark.asyncio
    async def test_quick_completion_page_size_capped(self, app_with_reports, auth_headers):
        async with _client(app_with_reports) as client:
            response = await client.get(
                "/api/reports/quick-completion", params={"pageSize": 500}, headers=auth_headers
            )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_catch_status_path(self, app_with_reports, auth_headers):
        async with _client(app_with_reports) as client:
            response = await client.get("/api/reports/catch-status/91/L1", headers=auth_headers)

        assert response.status_code == 200
        app_with_reports.state.catch_tracker.catch_status_report.assert_awaited_once_with(91, "L1")

    @pytest.mark.asyncio
    async def test_oversized_project_id_is_422(self, app_with_reports, auth_headers):
        async with _client(app_with_reports) as client:
            response = await client.get(f"/api/reports/catch-status/{2**64}/L1", headers=auth_headers)

        assert response.status_code == 422
        app_with_reports.state.catch_tracker.catch_status_report.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reports_require_auth(self, app_with_reports):
        async with _client(app_with_reports) as client:
            response = await client.get("/api/reports/under-production")

        assert response.status_code == 401
