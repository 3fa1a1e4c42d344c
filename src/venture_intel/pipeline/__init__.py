"""Four-stage decision pipeline with progress reporting."""

from .machine import DecisionPipeline, run_decision_pipeline
from .models import DecisionIntelligenceOutput, PipelineLog, PipelineState, QualityReport, QualityStatus, StageStatus

__all__ = [
    "DecisionIntelligenceOutput",
    "DecisionPipeline",
    "PipelineLog",
    "PipelineState",
    "QualityReport",
    "QualityStatus",
    "StageStatus",
    "run_decision_pipeline",
]
