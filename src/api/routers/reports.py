"""Production status and production report endpoints."""

import logging
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request

from src.api.middleware.rate_limit import REPORT_LIMIT, limiter
from src.api.routers.auth import get_current_user_id
from src.exceptions import ValidationFailure
from src.models.errors import ErrorResponse
from src.models.production import (
    CatchStatusRow,
    DailyProductionRow,
    DailyProductionSummary,
    GroupOption,
    GroupProductionRow,
    LotOption,
    PendingProcessRow,
    ProcessProductionRow,
    ProcessWiseEntry,
    ProjectOption,
    ProjectProductionRow,
    QuickCompletionPage,
    UnderProductionLot,
)
from src.models.records import MAX_SQL_INT
from src.query.dates import DateWindow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reports", tags=["reports"])

_BAD_REQUEST = {400: {"model": ErrorResponse}}


def _window(
    request: Request,
    date: Optional[str] = Query(None, description="Single day, dd-MM-yyyy"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
) -> DateWindow:
    try:
        return request.app.state.production_reports.window(date, start_date, end_date)
    except ValidationFailure as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/under-production", response_model=List[UnderProductionLot])
@limiter.limit(REPORT_LIMIT)
async def under_production(request: Request, current_user: int = Depends(get_current_user_id)):
    """Lots with active catches that have not been dispatched."""
    return await request.app.state.production_status.under_production()


@router.get(
    "/pending-process-report",
    response_model=List[PendingProcessRow],
    responses=_BAD_REQUEST,
)
@limiter.limit(REPORT_LIMIT)
async def pending_process_report(
    request: Request,
    group_id: Optional[int] = Query(None, alias="groupId", ge=1, le=MAX_SQL_INT),
    lot_no: Optional[str] = Query(None, alias="lotNo"),
    project_id: Optional[int] = Query(None, alias="projectId", ge=1, le=MAX_SQL_INT),
    process_id: Optional[int] = Query(None, alias="processId", ge=1, le=MAX_SQL_INT),
    current_user: int = Depends(get_current_user_id),
):
    deriver = request.app.state.production_status
    try:
        return await deriver.pending_process_report(group_id, lot_no, project_id, process_id)
    except ValidationFailure as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get(
    "/project-lotno-with-status",
    response_model=Union[List[GroupOption], List[ProjectOption], List[LotOption]],
)
@limiter.limit(REPORT_LIMIT)
async def project_lotno_with_status(
    request: Request,
    group_id: Optional[int] = Query(None, alias="groupId", ge=1, le=MAX_SQL_INT),
    project_id: Optional[int] = Query(None, alias="projectId", ge=1, le=MAX_SQL_INT),
    current_user: int = Depends(get_current_user_id),
):
    """Undispatched lots with upcoming exams, drilled down group -> project -> lot."""
    return await request.app.state.production_status.lots_with_status(group_id, project_id)


@router.get(
    "/daily-production-report",
    response_model=List[DailyProductionRow],
    responses=_BAD_REQUEST,
)
@limiter.limit(REPORT_LIMIT)
async def daily_production_report(
    request: Request,
    window: DateWindow = Depends(_window),
    current_user: int = Depends(get_current_user_id),
):
    return await request.app.state.production_reports.daily_production_report(window)


@router.get(
    "/daily-production-summary",
    response_model=DailyProductionSummary,
    responses=_BAD_REQUEST,
)
@limiter.limit(REPORT_LIMIT)
async def daily_production_summary(
    request: Request,
    window: DateWindow = Depends(_window),
    current_user: int = Depends(get_current_user_id),
):
    return await request.app.state.production_reports.daily_production_summary(window)


@router.get(
    "/process-production-report",
    response_model=List[ProcessProductionRow],
    responses=_BAD_REQUEST,
)
@limiter.limit(REPORT_LIMIT)
async def process_production_report(
    request: Request,
    window: DateWindow = Depends(_window),
    current_user: int = Depends(get_current_user_id),
):
    """Catches moved from WIP to completed per process, plus a Total row."""
    return await request.app.state.production_reports.process_production_report(window)


@router.get(
    "/process-production-report/project-wise",
    response_model=List[ProjectProductionRow],
    responses=_BAD_REQUEST,
)
@limiter.limit(REPORT_LIMIT)
async def process_production_project_wise(
    request: Request,
    window: DateWindow = Depends(_window),
    process_id: Optional[int] = Query(None, alias="processId", ge=1, le=MAX_SQL_INT),
    current_user: int = Depends(get_current_user_id),
):
    try:
        return await request.app.state.production_reports.process_production_project_wise(window, process_id)
    except ValidationFailure as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get(
    "/process-production-report/group-wise",
    response_model=List[GroupProductionRow],
    responses=_BAD_REQUEST,
)
@limiter.limit(REPORT_LIMIT)
async def process_production_group_wise(
    request: Request,
    window: DateWindow = Depends(_window),
    process_id: Optional[int] = Query(None, alias="processId", ge=1, le=MAX_SQL_INT),
    group_id: Optional[int] = Query(None, alias="groupId", ge=1, le=MAX_SQL_INT),
    project_id: Optional[int] = Query(None, alias="projectId", ge=1, le=MAX_SQL_INT),
    current_user: int = Depends(get_current_user_id),
):
    return await request.app.state.production_reports.process_production_group_wise(
        window, process_id=process_id, group_id=group_id, project_id=project_id
    )


@router.get("/quick-completion", response_model=QuickCompletionPage, responses=_BAD_REQUEST)
@limiter.limit(REPORT_LIMIT)
async def quick_completion(
    request: Request,
    date: Optional[str] = Query(None),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, alias="pageSize", ge=1, le=100),
    current_user: int = Depends(get_current_user_id),
):
    """Status changes on the same transaction logged within minutes of each other."""
    try:
        return await request.app.state.production_reports.quick_completion(
            date, start_date, end_date, page=page, page_size=page_size
        )
    except ValidationFailure as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/catch-status/{project_id}/{lot_no}", response_model=List[CatchStatusRow])
@limiter.limit(REPORT_LIMIT)
async def catch_status(
    request: Request,
    project_id: int = Path(..., ge=1, le=MAX_SQL_INT),
    lot_no: str = Path(...),
    current_user: int = Depends(get_current_user_id),
):
    return await request.app.state.catch_tracker.catch_status_report(project_id, lot_no)


@router.get("/process-wise/{project_id}/{catch_no}", response_model=List[ProcessWiseEntry])
@limiter.limit(REPORT_LIMIT)
async def process_wise(
    request: Request,
    project_id: int = Path(..., ge=1, le=MAX_SQL_INT),
    catch_no: str = Path(...),
    current_user: int = Depends(get_current_user_id),
):
    return await request.app.state.catch_tracker.process_wise(project_id, catch_no)
