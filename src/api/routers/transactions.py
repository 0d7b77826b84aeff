"""Transaction writes and completion/pipeline statistics endpoints."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request

from src.api.middleware.rate_limit import REPORT_LIMIT, WRITE_LIMIT, limiter
from src.api.routers.auth import get_current_user_id
from src.exceptions import CatchTrackError, NotFoundError, ValidationFailure
from src.models.errors import ErrorResponse
from src.models.pipeline import ProcessTrainStage, StatusDetailRow
from src.models.progress import CombinedPercentages, ProcessPercentages, ProjectCompletionSummary
from src.models.records import MAX_SQL_INT, RecordResult, TransactionRequest, TransactionStatusUpdate
from src.store.models import TransactionModel

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/transactions", tags=["transactions"])


@router.post(
    "/",
    response_model=RecordResult,
    responses={400: {"model": ErrorResponse}},
)
@limiter.limit(WRITE_LIMIT)
async def record_transaction(
    request: Request,
    body: TransactionRequest,
    user_id: int = Depends(get_current_user_id),
):
    """Create or update the transaction for a catch and its series siblings."""
    recorder = request.app.state.transaction_recorder
    try:
        return await recorder.record(body, triggered_by=user_id)
    except ValidationFailure as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except CatchTrackError as exc:
        logger.exception("Failed to record transaction for catch %s", body.quantitysheet_id)
        raise HTTPException(status_code=500, detail="Internal server error") from exc


@router.put(
    "/{transaction_id}/status",
    response_model=TransactionModel,
    responses={404: {"model": ErrorResponse}},
)
@limiter.limit(WRITE_LIMIT)
async def update_transaction_status(
    request: Request,
    body: TransactionStatusUpdate,
    transaction_id: int = Path(..., ge=1, le=MAX_SQL_INT),
    user_id: int = Depends(get_current_user_id),
):
    recorder = request.app.state.transaction_recorder
    try:
        return await recorder.update_status(transaction_id, body.status, triggered_by=user_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValidationFailure as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/all-project-completion-percentages", response_model=List[ProjectCompletionSummary])
@limiter.limit(REPORT_LIMIT)
async def all_project_completion_percentages(
    request: Request,
    user_id: int = Query(..., alias="userId", ge=1, le=MAX_SQL_INT),
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, alias="pageSize", ge=1, le=100),
    starred_project_id: Optional[int] = Query(None, alias="starredProjectId", ge=1, le=MAX_SQL_INT),
    current_user: int = Depends(get_current_user_id),
):
    """Weighted completion of every project the user can see, one page at a time.

    The starred project is pinned to the top of the first page.
    """
    aggregator = request.app.state.completion
    return await aggregator.all_project_completion(
        user_id, page=page, page_size=page_size, starred_project_id=starred_project_id
    )


@router.get("/combined-percentages", response_model=CombinedPercentages)
@limiter.limit(REPORT_LIMIT)
async def combined_percentages(
    request: Request,
    project_id: int = Query(..., alias="projectId", ge=1, le=MAX_SQL_INT),
    current_user: int = Depends(get_current_user_id),
):
    return await request.app.state.completion.combined_percentages(project_id)


@router.get("/process-percentages", response_model=ProcessPercentages)
@limiter.limit(REPORT_LIMIT)
async def process_percentages(
    request: Request,
    project_id: int = Query(..., alias="projectId", ge=1, le=MAX_SQL_INT),
    current_user: int = Depends(get_current_user_id),
):
    return await request.app.state.completion.process_percentages(project_id)


@router.get("/process-lot-percentages", response_model=ProcessPercentages)
@limiter.limit(REPORT_LIMIT)
async def process_lot_percentages(
    request: Request,
    project_id: int = Query(..., alias="projectId", ge=1, le=MAX_SQL_INT),
    current_user: int = Depends(get_current_user_id),
):
    return await request.app.state.completion.process_lot_percentages(project_id)


@router.get("/process-train", response_model=List[ProcessTrainStage])
@limiter.limit(REPORT_LIMIT)
async def process_train(
    request: Request,
    project_id: int = Query(..., alias="projectId", ge=1, le=MAX_SQL_INT),
    lot_no: str = Query(..., alias="lotNo", min_length=1),
    current_user: int = Depends(get_current_user_id),
):
    """WIP, completed and remaining figures for every stage of a lot."""
    return await request.app.state.pipeline_stats.process_train(project_id, lot_no)


@router.get("/status-details", response_model=List[StatusDetailRow])
@limiter.limit(REPORT_LIMIT)
async def status_details(
    request: Request,
    project_id: int = Query(..., alias="projectId", ge=1, le=MAX_SQL_INT),
    lot_no: str = Query(..., alias="lotNo", min_length=1),
    process_id: int = Query(..., alias="processId", ge=1, le=MAX_SQL_INT),
    status: int = Query(0, ge=0, le=2),
    current_user: int = Depends(get_current_user_id),
):
    return await request.app.state.pipeline_stats.status_details(
        project_id, lot_no, process_id, status
    )
