"""Pydantic models for CatchTrack responses and requests."""

from src.models.pipeline import ProcessTrainStage, StatusDetailRow
from src.models.progress import (
    CatchCompletion,
    CombinedPercentages,
    ProcessPercentages,
    ProjectCompletion,
    ProjectCompletionSummary,
)
from src.models.records import (
    DispatchRequest,
    RecordResult,
    TransactionRequest,
    TransactionStatusUpdate,
)

__all__ = [
    "ProcessTrainStage",
    "StatusDetailRow",
    "CatchCompletion",
    "CombinedPercentages",
    "ProcessPercentages",
    "ProjectCompletion",
    "ProjectCompletionSummary",
    "DispatchRequest",
    "RecordResult",
    "TransactionRequest",
    "TransactionStatusUpdate",
]
