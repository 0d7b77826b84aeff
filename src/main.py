"""FastAPI application entrypoint for CatchTrack."""

import logging
import os
from contextlib import asynccontextmanager

from src.logging_config import setup_logging

# Configure logging before anything else
setup_logging(log_level=os.getenv("CATCHTRACK_LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)

from fastapi import FastAPI, HTTPException
from starlette.requests import Request
from starlette.responses import JSONResponse

from src.api.middleware.rate_limit import setup_rate_limiting
from src.exceptions import CatchTrackError, NotFoundError, ValidationFailure
from src.models.errors import ErrorResponse
from src.api.routers import auth, dispatch, reports, transactions
from src.config import get_config
from src.database.connection import Database
from src.query import (
    CatchTracker,
    CompletionAggregator,
    PipelineResolver,
    PipelineStatisticsEngine,
    ProductionReportBuilder,
    ProductionStatusDeriver,
)
from src.store.reader import StoreReader
from src.store.recorder import DispatchRecorder, TransactionRecorder


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = get_config()
    logging.getLogger().setLevel(config.database.log_level)
    config.db_path.parent.mkdir(parents=True, exist_ok=True)

    db = Database(config.db_path)
    await db.connect()
    logger.info("Connected to %s", config.db_path)

    constants = config.processes
    reports_cfg = config.reports
    reader = StoreReader(db)
    resolver = PipelineResolver(reader, constants)

    app.state.config = config
    app.state.db = db
    app.state.reader = reader
    app.state.completion = CompletionAggregator(
        reader, resolver, constants, default_page_size=reports_cfg.default_page_size
    )
    app.state.pipeline_stats = PipelineStatisticsEngine(reader, resolver, constants)
    app.state.production_status = ProductionStatusDeriver(
        reader,
        min_project_id=reports_cfg.under_production_min_project_id,
        exam_date_floor=reports_cfg.lot_status_exam_date_floor,
    )
    app.state.production_reports = ProductionReportBuilder(
        reader,
        constants,
        date_format=reports_cfg.filter_date_format,
        quick_completion_minutes=reports_cfg.quick_completion_minutes,
    )
    app.state.catch_tracker = CatchTracker(reader, resolver, constants)
    app.state.transaction_recorder = TransactionRecorder(db, reader, constants)
    app.state.dispatch_recorder = DispatchRecorder(db, reader)

    yield

    await db.close()


app = FastAPI(title="CatchTrack", lifespan=lifespan)
setup_rate_limiting(app)

cors_origins = os.getenv("CORS_ALLOWED_ORIGINS", "")
if cors_origins:
    from fastapi.middleware.cors import CORSMiddleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in cors_origins.split(",")],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.middleware("http")
async def add_api_version_header(request: Request, call_next):
    response = await call_next(request)
    if request.url.path.startswith("/api/"):
        response.headers["X-API-Version"] = "1"
    return response


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Enrich all HTTPException responses with a consistent error_code field."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse.for_status(exc.status_code, exc.detail).model_dump(),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(ValidationFailure)
async def validation_failure_handler(request: Request, exc: ValidationFailure):
    return JSONResponse(
        status_code=400,
        content=ErrorResponse.for_status(400, str(exc)).model_dump(),
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(
        status_code=404,
        content=ErrorResponse.for_status(404, str(exc)).model_dump(),
    )


@app.exception_handler(CatchTrackError)
async def catchtrack_error_handler(request: Request, exc: CatchTrackError):
    logger.error("Application error: %s", exc)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse.for_status(500, "Internal server error").model_dump(),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse.for_status(500, "Internal server error").model_dump(),
    )


app.include_router(auth.router)
app.include_router(transactions.router)
app.include_router(reports.router)
app.include_router(dispatch.router)


@app.get("/health")
async def health():
    return {"status": "healthy"}
