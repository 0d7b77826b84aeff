"""Dispatch endpoints."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Path, Request, Response

from src.api.middleware.rate_limit import REPORT_LIMIT, WRITE_LIMIT, limiter
from src.api.routers.auth import get_current_user_id
from src.exceptions import NotFoundError
from src.models.errors import ErrorResponse
from src.models.production import DispatchSummary
from src.models.records import MAX_SQL_INT, DispatchRequest
from src.store.models import DispatchModel

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/dispatch", tags=["dispatch"])


@router.post("/", response_model=DispatchModel, status_code=201)
@limiter.limit(WRITE_LIMIT)
async def create_dispatch(
    request: Request,
    body: DispatchRequest,
    user_id: int = Depends(get_current_user_id),
):
    """Record the dispatch of a lot, replacing any earlier record for it."""
    return await request.app.state.dispatch_recorder.create(body, triggered_by=user_id)


@router.get("/project/{project_id}", response_model=List[DispatchModel])
@limiter.limit(REPORT_LIMIT)
async def get_project_dispatches(
    request: Request,
    project_id: int = Path(..., ge=1, le=MAX_SQL_INT),
    current_user: int = Depends(get_current_user_id),
):
    return await request.app.state.reader.get_dispatches(project_id=project_id)


@router.get("/summary-today", response_model=List[DispatchSummary])
@limiter.limit(REPORT_LIMIT)
async def dispatch_summary_today(request: Request, current_user: int = Depends(get_current_user_id)):
    """Today's dispatches with the catch count, quantity and exam dates of each lot."""
    return await request.app.state.production_status.dispatch_summary_today()


@router.delete(
    "/{dispatch_id}",
    status_code=204,
    responses={404: {"model": ErrorResponse}},
)
@limiter.limit(WRITE_LIMIT)
async def delete_dispatch(
    request: Request,
    dispatch_id: int = Path(..., ge=1, le=MAX_SQL_INT),
    user_id: int = Depends(get_current_user_id),
):
    try:
        await request.app.state.dispatch_recorder.delete(dispatch_id, triggered_by=user_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)
