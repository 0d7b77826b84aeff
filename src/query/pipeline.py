"""Pipeline resolution: a project's ordered process stages."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Sequence

from src.process_config import ProcessConstants
from src.store.models import ProjectProcessModel
from src.store.reader import StoreReader

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineStage:
    """One process in a project's pipeline."""

    process_id: int
    sequence: int
    weightage: Decimal
    process_type: str
    range_start: Optional[int] = None
    process_name: str = ""


class PipelineResolver:
    """Resolve and navigate ordered process pipelines."""

    def __init__(self, reader: StoreReader, constants: ProcessConstants):
        self.reader = reader
        self.constants = constants

    async def resolve(self, project_id: int) -> list[PipelineStage]:
        """Stages for a project sorted by sequence; empty when none are configured."""
        entries = await self.reader.get_project_processes(project_id)
        if not entries:
            logger.debug("Project %s has no pipeline entries", project_id)
            return []
        names = {process.process_id: process.name for process in await self.reader.get_processes()}
        return self.build(entries, names)

    @staticmethod
    def build(
        entries: Sequence[ProjectProcessModel], process_names: Optional[dict[int, str]] = None
    ) -> list[PipelineStage]:
        process_names = process_names or {}
        stages = [
            PipelineStage(
                process_id=entry.process_id,
                sequence=entry.sequence,
                weightage=entry.weightage,
                process_type=entry.process_type,
                range_start=entry.range_start,
                process_name=process_names.get(entry.process_id, ""),
            )
            for entry in entries
        ]
        return sorted(stages, key=lambda stage: stage.sequence)

    @staticmethod
    def find_by_process(
        pipeline: Sequence[PipelineStage], process_id: int
    ) -> Optional[PipelineStage]:
        return next((stage for stage in pipeline if stage.process_id == process_id), None)

    @staticmethod
    def find_by_sequence(
        pipeline: Sequence[PipelineStage], sequence: Optional[int]
    ) -> Optional[PipelineStage]:
        if sequence is None:
            return None
        return next((stage for stage in pipeline if stage.sequence == sequence), None)

    @classmethod
    def find_by_sequence_offset(
        cls, pipeline: Sequence[PipelineStage], process_id: int, offset: int
    ) -> Optional[PipelineStage]:
        """Stage whose sequence equals sequence(process_id) + offset."""
        anchor = cls.find_by_process(pipeline, process_id)
        if anchor is None:
            return None
        return cls.find_by_sequence(pipeline, anchor.sequence + offset)

    def cutting_stage(self, pipeline: Sequence[PipelineStage]) -> Optional[PipelineStage]:
        return self.find_by_process(pipeline, self.constants.cutting)

    def is_independent(self, stage: PipelineStage) -> bool:
        return stage.process_type == self.constants.independent_process_type

    @staticmethod
    def weight_map(pipeline: Sequence[PipelineStage]) -> dict[int, Decimal]:
        return {stage.process_id: stage.weightage for stage in pipeline}
