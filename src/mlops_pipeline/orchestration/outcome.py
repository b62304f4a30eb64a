#!/usr/bin/env python3
"""Aggregate result of one pipeline run."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from mlops_pipeline.stages.base import StageResult, StageStatus


class PipelineStatus(Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


def format_duration(seconds: float) -> str:
    """Human readable duration in the CI style: '1 hr 4 min', '3 min 12 sec', '45 sec'."""
    seconds = int(round(max(seconds, 0)))
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)

    if hours:
        return f"{hours} hr {minutes} min"
    if minutes:
        return f"{minutes} min {secs} sec"
    return f"{secs} sec"


@dataclass
class PipelineOutcome:
    status: PipelineStatus
    stage_results: List[StageResult]
    started_at: datetime
    finished_at: datetime
    post_actions: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    notifications: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_results(cls, stage_results: List[StageResult], started_at: datetime,
                     finished_at: Optional[datetime] = None,
                     post_actions: Optional[Dict[str, Dict[str, Any]]] = None) -> 'PipelineOutcome':
        failed = any(result.is_failed for result in stage_results)
        return cls(
            status=PipelineStatus.FAILURE if failed else PipelineStatus.SUCCESS,
            stage_results=list(stage_results),
            started_at=started_at,
            finished_at=finished_at or datetime.now(),
            post_actions=post_actions or {},
        )

    @property
    def succeeded(self) -> bool:
        return self.status is PipelineStatus.SUCCESS

    @property
    def failed_stage(self) -> Optional[StageResult]:
        return next((result for result in self.stage_results if result.is_failed), None)

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def duration_string(self) -> str:
        return format_duration(self.duration_seconds)

    def result_for(self, stage_name: str) -> Optional[StageResult]:
        return next((result for result in self.stage_results if result.name == stage_name), None)

    def statuses(self) -> Dict[str, StageStatus]:
        return {result.name: result.status for result in self.stage_results}

    def to_dict(self) -> Dict[str, Any]:
        failed_stage = self.failed_stage
        return {
            'status': self.status.value,
            'started_at': self.started_at.isoformat(),
            'finished_at': self.finished_at.isoformat(),
            'duration': self.duration_string,
            'failed_stage': failed_stage.name if failed_stage else None,
            'stages': [result.to_dict() for result in self.stage_results],
            'post_actions': self.post_actions,
            'notifications': self.notifications,
        }
