"""Research-backed decision intelligence for venture descriptions."""

from .config import settings
from .exceptions import (
    CapabilityUnavailableError,
    ConfigurationError,
    LLMProviderError,
    StageOneFailure,
    StageTimeoutError,
    VentureIntelError,
)
from .invoker import ChatMessage, ModelInvoker, Role, RoleBinding
from .pipeline import DecisionIntelligenceOutput, DecisionPipeline, run_decision_pipeline

__all__ = [
    "settings",
    "ChatMessage",
    "ModelInvoker",
    "Role",
    "RoleBinding",
    "DecisionIntelligenceOutput",
    "DecisionPipeline",
    "run_decision_pipeline",
    "VentureIntelError",
    "ConfigurationError",
    "LLMProviderError",
    "CapabilityUnavailableError",
    "StageTimeoutError",
    "StageOneFailure",
]
