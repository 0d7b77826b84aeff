"""Aggregation engines over the domain store."""
from src.query.catch_tracking import CatchTracker
from src.query.completion import CatchScope, CompletionAggregator
from src.query.pipeline import PipelineResolver, PipelineStage
from src.query.pipeline_stats import PipelineStatisticsEngine
from src.query.production_report import ProductionReportBuilder
from src.query.production_status import ProductionStatusDeriver

__all__ = [
    "CatchScope",
    "CatchTracker",
    "CompletionAggregator",
    "PipelineResolver",
    "PipelineStage",
    "PipelineStatisticsEngine",
    "ProductionReportBuilder",
    "ProductionStatusDeriver",
]
