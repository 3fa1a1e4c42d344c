"""Data models for pipeline runs."""

import logging
import threading
from collections.abc import Callable, Iterator
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from ..codec import decode, encode

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    """Orchestrator states, in execution order."""

    NOT_STARTED = "not_started"
    STAGE1_RUNNING = "stage1_running"
    STAGE1_DONE = "stage1_done"
    STAGE23_RUNNING = "stage23_running"
    STAGE23_DONE = "stage23_done"
    STAGE4_RUNNING = "stage4_running"
    STAGE4_DONE = "stage4_done"
    ARTIFACTS_READY = "artifacts_ready"
    FAILED = "failed"

    @property
    def is_running(self) -> bool:
        return self.value.endswith("_running")


class StageStatus(str, Enum):
    """Status carried by a log entry."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class QualityStatus(str, Enum):
    """How much of the output came from the models rather than defaults."""

    FULL = "full"
    DEGRADED = "degraded"
    PLACEHOLDER = "placeholder"


class PipelineLog(BaseModel):
    """One progress event. Entries are never edited after emission."""

    stage: int = Field(ge=1, le=4)
    stage_name: str
    role: str
    model: str
    status: StageStatus
    message: str
    output: str | None = None
    error: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    emitted_at: datetime

    model_config = {"frozen": True}


ProgressCallback = Callable[[PipelineLog], None]


class PipelineLogBook:
    """Append-only log shared by concurrently running stages.

    ``append`` stamps the entry, stores it and notifies the observer under one
    lock, so entries from two producers are never lost or reordered and the
    observer sees them in the same order as the log. An observer that raises
    is logged and does not interrupt the run.
    """

    def __init__(self, observer: ProgressCallback | None = None):
        self._entries: list[PipelineLog] = []
        self._observer = observer
        self._lock = threading.RLock()

    def append(self, **fields: Any) -> PipelineLog:
        with self._lock:
            now = datetime.now(UTC)
            if self._entries and now < self._entries[-1].emitted_at:
                now = self._entries[-1].emitted_at
            status = StageStatus(fields["status"])
            entry = PipelineLog(
                **fields,
                started_at=now if status == StageStatus.PROCESSING else None,
                completed_at=now if status in (StageStatus.COMPLETED, StageStatus.ERROR) else None,
                emitted_at=now,
            )
            self._entries.append(entry)
            if self._observer is not None:
                try:
                    self._observer(entry)
                except Exception:
                    logger.exception(f"Progress observer failed on stage {entry.stage} {entry.status.value} entry")
            return entry

    @property
    def entries(self) -> list[PipelineLog]:
        with self._lock:
            return list(self._entries)

    def __iter__(self) -> Iterator[PipelineLog]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self._entries)


class QualityReport(BaseModel):
    """Observable signal of how degraded a successful run is."""

    status: QualityStatus = QualityStatus.FULL
    degraded_stages: list[int] = Field(default_factory=list)
    missing_categories: list[str] = Field(default_factory=list)

    @classmethod
    def from_stages(cls, degraded_stages: list[int], missing_categories: list[str]) -> "QualityReport":
        degraded = sorted(set(degraded_stages))
        if not degraded:
            status = QualityStatus.FULL
        elif 1 in degraded or {2, 3, 4} <= set(degraded):
            status = QualityStatus.PLACEHOLDER
        else:
            status = QualityStatus.DEGRADED
        return cls(status=status, degraded_stages=degraded, missing_categories=missing_categories)

    @property
    def is_degraded(self) -> bool:
        return self.status != QualityStatus.FULL


class DecisionIntelligenceOutput(BaseModel):
    """Aggregate result of one pipeline run."""

    run_id: str
    timestamp: datetime
    pipeline_logs: list[PipelineLog]

    context_analysis: dict[str, Any]
    research_dossier: dict[str, Any]
    validation_analysis: dict[str, Any]

    solution_approaches: list[dict[str, Any]]
    recommended_approach_id: str | None = None

    visual_assets: dict[str, Any] = Field(default_factory=dict)

    executive_summary: str
    key_insights: list[str] = Field(default_factory=list)
    next_steps: list[str] = Field(default_factory=list)

    quality: QualityReport = Field(default_factory=QualityReport)

    @property
    def recommended_approach(self) -> dict[str, Any] | None:
        for solution in self.solution_approaches:
            if solution.get("id") == self.recommended_approach_id:
                return solution
        return None

    def to_storage_record(self) -> dict[str, Any]:
        """JSON-ready record for a persistence collaborator.

        Raw model output snapshots in the log are encoded with the transport
        codec; use :func:`decode_log_output` to read them back.
        """
        data = self.model_dump(mode="json")
        for entry in data["pipeline_logs"]:
            if entry.get("output") is not None:
                entry["output"] = encode(entry["output"])
        return data


def decode_log_output(stored_entry: dict[str, Any]) -> str | None:
    """Recover the plain output snapshot from a stored log entry."""
    output = stored_entry.get("output")
    return decode(output) if output is not None else None
