"""Decision pipeline state machine: four model roles, one fan-out/fan-in barrier."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from ..exceptions import CapabilityUnavailableError, StageOneFailure
from ..extraction import extract_structured
from ..invoker import ChatMessage, Role, RoleInvoker
from ..normalization import SOLUTION_CATEGORIES, Shape, normalize
from ..observability import bind_run_context, clear_run_context, get_run_logger
from ..visuals import build_visual_assets
from .models import DecisionIntelligenceOutput, PipelineLogBook, PipelineState, ProgressCallback, QualityReport, StageStatus
from .prompts import (
    COMPARATOR_SYSTEM_PROMPT,
    CONTEXT_ANALYZER_SYSTEM_PROMPT,
    RESEARCH_ENGINE_SYSTEM_PROMPT,
    get_context_prompt,
    get_fallback_competitor_prompt,
    get_fallback_research_prompt,
    get_solution_prompt,
    get_solution_system_prompt,
)
from .synthesis import choose_recommended, extract_key_insights, generate_executive_summary, generate_next_steps


@dataclass(frozen=True)
class StageSpec:
    ordinal: int
    name: str
    role: Role
    shape: Shape
    system_prompt: str | None
    processing_message: str


CONTEXT_STAGE = StageSpec(
    1, "Context Analyzer", Role.CONTEXT_ANALYZER, Shape.CONTEXT, CONTEXT_ANALYZER_SYSTEM_PROMPT,
    "Analyzing the venture and generating research strategy...",
)
RESEARCH_STAGE = StageSpec(
    2, "Research Engine", Role.RESEARCH_ENGINE, Shape.RESEARCH_DOSSIER, RESEARCH_ENGINE_SYSTEM_PROMPT,
    "Researching market data, proven methods and case studies...",
)
COMPARATOR_STAGE = StageSpec(
    3, "Competitor Analyst", Role.COMPARATOR, Shape.VALIDATION, COMPARATOR_SYSTEM_PROMPT,
    "Analyzing competitors and auditing claims...",
)
SOLUTION_STAGE = StageSpec(
    4, "Solution Architect", Role.SOLUTION_ARCHITECT, Shape.SOLUTION_LIST, None,
    "Architecting solution approaches...",
)


@dataclass
class StageResult:
    value: Any
    raw: str | None
    degraded: bool


class DecisionPipeline:
    """Turns one venture description into a DecisionIntelligenceOutput.

    Stage 1 analyzes the venture and writes the instructions for stages 2 and 3,
    which run concurrently. Stage 4 waits for both and designs the solutions.

    Failure handling is deliberately asymmetric. If the stage 1 call fails the
    run fails with ``StageOneFailure``. Stages 2-4 never fail the run: a call
    error, timeout or unparseable answer degrades that stage to the default
    shape and is recorded in ``output.quality``. ``CapabilityUnavailableError``
    is fatal at every stage.

    A pipeline instance runs once; build a new one per venture.
    """

    def __init__(
        self,
        invoker: RoleInvoker,
        on_progress: ProgressCallback | None = None,
        expected_categories: list[str] | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.invoker = invoker
        self.expected_categories = list(expected_categories or SOLUTION_CATEGORIES)
        self.clock = clock or (lambda: datetime.now(UTC))
        self.logs = PipelineLogBook(on_progress)
        self.state = PipelineState.NOT_STARTED
        self.run_id = uuid4().hex[:8]
        self._degraded: list[int] = []
        self._log = get_run_logger(__name__)

    def _transition(self, state: PipelineState) -> None:
        self._log.debug("pipeline_state", previous=self.state.value, state=state.value)
        self.state = state

    def _emit(self, stage: StageSpec, status: StageStatus, message: str, output: str | None = None, error: str | None = None) -> None:
        self.logs.append(
            stage=stage.ordinal,
            stage_name=stage.name,
            role=stage.role.value,
            model=self.invoker.describe(stage.role),
            status=status,
            message=message,
            output=output,
            error=error,
        )

    async def run(self, venture: Any) -> DecisionIntelligenceOutput:
        """Execute all four stages and derive the output aggregate."""
        if self.state != PipelineState.NOT_STARTED:
            raise RuntimeError(f"Pipeline {self.run_id} already started (state: {self.state.value})")

        bind_run_context(self.run_id)
        timestamp = self.clock()
        try:
            self._log.info("pipeline_started")
            context = await self._run_context_stage(venture)

            prompts = context["generated_prompts"]
            research_prompt = prompts["research_prompt"] or get_fallback_research_prompt(venture)
            competitor_prompt = prompts["competitor_prompt"] or get_fallback_competitor_prompt(venture)

            self._transition(PipelineState.STAGE23_RUNNING)
            research, validation = await self._fan_out(research_prompt, competitor_prompt)
            self._transition(PipelineState.STAGE23_DONE)

            self._transition(PipelineState.STAGE4_RUNNING)
            solutions = await self._run_solution_stage(research, validation)
            self._transition(PipelineState.STAGE4_DONE)

            output = self._assemble(timestamp, context, research, validation, solutions)
            self._transition(PipelineState.ARTIFACTS_READY)
            self._log.info("pipeline_completed", quality=output.quality.status.value, degraded_stages=output.quality.degraded_stages)
            return output
        except BaseException:
            if self.state.is_running:
                self._transition(PipelineState.FAILED)
            raise
        finally:
            clear_run_context()

    async def _run_context_stage(self, venture: Any) -> dict[str, Any]:
        stage = CONTEXT_STAGE
        self._transition(PipelineState.STAGE1_RUNNING)
        self._emit(stage, StageStatus.PROCESSING, stage.processing_message)

        messages = [ChatMessage("system", stage.system_prompt), ChatMessage("user", get_context_prompt(venture))]
        try:
            raw = await self.invoker.invoke(stage.role, messages)
        except CapabilityUnavailableError as e:
            self._log.error("context_stage_unavailable", error=str(e))
            self._emit(stage, StageStatus.ERROR, f"Pipeline failed: {e}", error=str(e))
            raise
        except Exception as e:
            self._log.error("context_stage_failed", error=str(e))
            self._emit(stage, StageStatus.ERROR, f"Pipeline failed: {e}", error=str(e))
            raise StageOneFailure(f"Context analysis failed: {e}") from e

        result = self._shape(stage, raw)
        prompts = result.value["generated_prompts"]
        generated = sum(1 for key in ("research_prompt", "competitor_prompt") if prompts[key])
        self._emit(stage, StageStatus.COMPLETED, self._completion_message(result, f"Identified context and generated {generated} instructions."), output=raw)
        self._transition(PipelineState.STAGE1_DONE)
        return result.value

    async def _fan_out(self, research_prompt: str, competitor_prompt: str) -> tuple[dict[str, Any], dict[str, Any]]:
        """Dispatch stages 2 and 3 together and wait for both."""
        self._emit(RESEARCH_STAGE, StageStatus.PROCESSING, RESEARCH_STAGE.processing_message)
        self._emit(COMPARATOR_STAGE, StageStatus.PROCESSING, COMPARATOR_STAGE.processing_message)
        outcomes = await asyncio.gather(
            self._run_soft_stage(RESEARCH_STAGE, research_prompt),
            self._run_soft_stage(COMPARATOR_STAGE, competitor_prompt),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        research, validation = outcomes
        return research.value, validation.value

    async def _run_solution_stage(self, research: dict[str, Any], validation: dict[str, Any]) -> list[dict[str, Any]]:
        self._emit(SOLUTION_STAGE, StageStatus.PROCESSING, SOLUTION_STAGE.processing_message)
        result = await self._run_soft_stage(
            SOLUTION_STAGE,
            get_solution_prompt(research, validation, self.expected_categories),
            system_prompt=get_solution_system_prompt(self.expected_categories),
        )
        return result.value

    async def _run_soft_stage(self, stage: StageSpec, prompt: str, system_prompt: str | None = None) -> StageResult:
        """Run one stage whose failures degrade to defaults instead of failing the run."""
        messages = [ChatMessage("system", system_prompt or stage.system_prompt), ChatMessage("user", prompt)]
        try:
            raw = await self.invoker.invoke(stage.role, messages)
        except CapabilityUnavailableError as e:
            self._emit(stage, StageStatus.ERROR, f"Backend unavailable: {e}", error=str(e))
            raise
        except Exception as e:
            self._log.warning("stage_degraded", stage=stage.ordinal, error=str(e))
            self._degraded.append(stage.ordinal)
            self._emit(stage, StageStatus.ERROR, f"{stage.name} failed, continuing with defaults: {e}", error=str(e))
            return StageResult(normalize(stage.shape, None), raw=None, degraded=True)

        result = self._shape(stage, raw)
        self._emit(stage, StageStatus.COMPLETED, self._completion_message(result, self._summarize(stage, result.value)), output=raw)
        return result

    def _shape(self, stage: StageSpec, raw: str) -> StageResult:
        """Extract then normalize one raw response."""
        extracted = extract_structured(raw)
        degraded = not extracted
        if degraded:
            self._log.warning("stage_unparseable", stage=stage.ordinal, preview=raw[:200])
            self._degraded.append(stage.ordinal)
        return StageResult(normalize(stage.shape, extracted), raw=raw, degraded=degraded)

    @staticmethod
    def _completion_message(result: StageResult, message: str) -> str:
        if result.degraded:
            return f"{message} No structured output was recovered; using defaults."
        return message

    @staticmethod
    def _summarize(stage: StageSpec, value: Any) -> str:
        match stage.shape:
            case Shape.RESEARCH_DOSSIER:
                return f"Found {len(value['proven_methods'])} proven methods across {len(value['all_sources'])} sources."
            case Shape.VALIDATION:
                score = value["credibility_assessment"]["overall_score"]
                return f"Credibility score {score:g}/100 with {len(value['contradictions'])} contradictions."
            case Shape.SOLUTION_LIST:
                return f"Finalized {len(value)} solution approaches."
        return f"{stage.name} complete."

    def _assemble(
        self,
        timestamp: datetime,
        context: dict[str, Any],
        research: dict[str, Any],
        validation: dict[str, Any],
        solutions: list[dict[str, Any]],
    ) -> DecisionIntelligenceOutput:
        recommended = choose_recommended(solutions)
        covered = {solution["category"] for solution in solutions}
        missing = [category for category in self.expected_categories if category not in covered]

        return DecisionIntelligenceOutput(
            run_id=self.run_id,
            timestamp=timestamp,
            pipeline_logs=self.logs.entries,
            context_analysis=context,
            research_dossier=research,
            validation_analysis=validation,
            solution_approaches=solutions,
            recommended_approach_id=recommended["id"] if recommended else None,
            visual_assets=build_visual_assets(solutions, recommended, self.clock()),
            executive_summary=generate_executive_summary(context, research, validation, solutions),
            key_insights=extract_key_insights(research, validation),
            next_steps=generate_next_steps(recommended),
            quality=QualityReport.from_stages(self._degraded, missing),
        )


async def run_decision_pipeline(
    venture: Any,
    invoker: RoleInvoker | None = None,
    on_progress: ProgressCallback | None = None,
) -> DecisionIntelligenceOutput:
    """Run the pipeline once with configured defaults."""
    from ..config import settings
    from ..invoker import get_default_invoker

    pipeline = DecisionPipeline(
        invoker or get_default_invoker(),
        on_progress=on_progress,
        expected_categories=list(settings.pipeline.expected_categories),
    )
    return await pipeline.run(venture)
