"""Tests for the decision pipeline state machine."""

import asyncio
from datetime import UTC, datetime

import pytest
from conftest import ScriptedInvoker, reply

from venture_intel.exceptions import CapabilityUnavailableError, StageOneFailure, StageTimeoutError
from venture_intel.invoker import Role
from venture_intel.normalization import Shape, default_for
from venture_intel.pipeline import DecisionPipeline, PipelineState, QualityStatus, StageStatus
from venture_intel.pipeline.models import decode_log_output

VENTURE = {"description": "Meal delivery for rural clinics", "industry": "Healthcare food service"}
FIXED_NOW = datetime(2026, 1, 15, 9, 0, tzinfo=UTC)


def make_pipeline(invoker, entries=None, **kwargs):
    observer = entries.append if entries is not None else None
    return DecisionPipeline(invoker, on_progress=observer, clock=lambda: FIXED_NOW, **kwargs)


def entry_index(entries, stage, status):
    return next(i for i, e in enumerate(entries) if e.stage == stage and e.status == status)


class TestHappyPath:
    """Full run with well-formed model output."""

    @pytest.mark.anyio
    async def test_full_run_produces_complete_output(self, happy_handlers):
        invoker = ScriptedInvoker(happy_handlers)
        pipeline = make_pipeline(invoker)

        output = await pipeline.run(VENTURE)

        assert pipeline.state == PipelineState.ARTIFACTS_READY
        assert output.context_analysis["user_situation"]["stage"] == "prototype"
        assert output.research_dossier["market_analysis"]["market_size"] == "$2.1B"
        assert output.validation_analysis["credibility_assessment"]["overall_score"] == 68
        assert [s["id"] for s in output.solution_approaches] == ["cap", "human", "tech"]
        assert output.quality.status == QualityStatus.FULL
        assert output.quality.degraded_stages == []
        assert output.quality.missing_categories == []

    @pytest.mark.anyio
    async def test_recommends_best_scoring_solution(self, happy_handlers):
        output = await make_pipeline(ScriptedInvoker(happy_handlers)).run(VENTURE)

        assert output.recommended_approach_id == "tech"
        assert output.recommended_approach["name"] == "Routing Platform"
        assert output.next_steps[:3] == [
            "Start with MVP: Routing app",
            "Allocate budget: $8,000",
            "Key milestone: Pilot clinic live",
        ]
        assert "mermaid_code" in output.visual_assets
        assert output.visual_assets["roadmap_timeline"]["solution_id"] == "tech"

    @pytest.mark.anyio
    async def test_stage1_instructions_become_stage_prompts(self, happy_handlers):
        invoker = ScriptedInvoker(happy_handlers)
        await make_pipeline(invoker).run(VENTURE)

        assert invoker.messages[Role.RESEARCH_ENGINE][-1].content == "Research meal supply models for rural clinics."
        assert invoker.messages[Role.COMPARATOR][-1].content == "Find competitors supplying meals to rural clinics."
        assert "Hub and spoke" in invoker.messages[Role.SOLUTION_ARCHITECT][-1].content

    @pytest.mark.anyio
    async def test_log_sequence(self, happy_handlers):
        entries = []
        output = await make_pipeline(ScriptedInvoker(happy_handlers), entries).run(VENTURE)

        assert [(e.stage, e.status) for e in entries[:4]] == [
            (1, StageStatus.PROCESSING),
            (1, StageStatus.COMPLETED),
            (2, StageStatus.PROCESSING),
            (3, StageStatus.PROCESSING),
        ]
        assert [(e.stage, e.status) for e in entries[-2:]] == [(4, StageStatus.PROCESSING), (4, StageStatus.COMPLETED)]
        assert len(entries) == 8
        assert output.pipeline_logs == entries

        emitted = [e.emitted_at for e in entries]
        assert emitted == sorted(emitted)
        assert all(e.started_at is not None for e in entries if e.status == StageStatus.PROCESSING)
        assert all(e.completed_at is not None for e in entries if e.status == StageStatus.COMPLETED)
        assert {e.model for e in entries if e.stage == 4} == {"fake/solution_architect"}

    @pytest.mark.anyio
    async def test_missing_categories_reported(self, happy_handlers):
        happy_handlers[Role.SOLUTION_ARCHITECT] = reply('[{"name": "Only tech", "category": "technology_driven"}]')
        output = await make_pipeline(ScriptedInvoker(happy_handlers)).run(VENTURE)

        assert len(output.solution_approaches) == 1
        assert output.quality.missing_categories == ["capital_driven", "human_expertise_driven"]
        assert output.quality.status == QualityStatus.FULL

    @pytest.mark.anyio
    async def test_pipeline_runs_once(self, happy_handlers):
        pipeline = make_pipeline(ScriptedInvoker(happy_handlers))
        await pipeline.run(VENTURE)

        with pytest.raises(RuntimeError, match="already started"):
            await pipeline.run(VENTURE)

    @pytest.mark.anyio
    async def test_failing_observer_does_not_abort_run(self, happy_handlers):
        def observer(entry):
            raise ValueError("ui went away")

        pipeline = DecisionPipeline(ScriptedInvoker(happy_handlers), on_progress=observer)
        output = await pipeline.run(VENTURE)

        assert len(output.pipeline_logs) == 8

    @pytest.mark.anyio
    async def test_storage_record_encodes_snapshots(self, happy_handlers):
        from conftest import RESEARCH_RESPONSE

        output = await make_pipeline(ScriptedInvoker(happy_handlers)).run(VENTURE)
        record = output.to_storage_record()

        stored = next(e for e in record["pipeline_logs"] if e["stage"] == 2 and e["status"] == "completed")
        assert stored["output"] != RESEARCH_RESPONSE
        assert decode_log_output(stored) == RESEARCH_RESPONSE
        processing = next(e for e in record["pipeline_logs"] if e["status"] == "processing")
        assert decode_log_output(processing) is None


class TestFanOutFanIn:
    """Stages 2 and 3 run concurrently; stage 4 waits for both."""

    @pytest.mark.anyio
    async def test_stage3_finishing_first_still_waits_for_stage2(self, happy_handlers):
        from conftest import RESEARCH_RESPONSE

        release_research = asyncio.Event()

        async def slow_research(messages):
            await release_research.wait()
            return RESEARCH_RESPONSE

        async def fast_comparator(messages):
            await asyncio.sleep(0)
            return '{"credibility_assessment": {"overall_score": 71}}'

        happy_handlers[Role.RESEARCH_ENGINE] = slow_research
        happy_handlers[Role.COMPARATOR] = fast_comparator
        invoker = ScriptedInvoker(happy_handlers)
        entries = []

        stage4_called_when_stage3_done = []

        def observer(entry):
            entries.append(entry)
            if entry.stage == 3 and entry.status == StageStatus.COMPLETED:
                stage4_called_when_stage3_done.append(invoker.called(Role.SOLUTION_ARCHITECT))
                release_research.set()

        pipeline = DecisionPipeline(invoker, on_progress=observer)
        output = await pipeline.run(VENTURE)

        assert stage4_called_when_stage3_done == [False]
        assert invoker.index("start", Role.COMPARATOR) < invoker.index("end", Role.RESEARCH_ENGINE)
        assert invoker.index("end", Role.COMPARATOR) < invoker.index("end", Role.RESEARCH_ENGINE)
        assert invoker.index("end", Role.RESEARCH_ENGINE) < invoker.index("start", Role.SOLUTION_ARCHITECT)
        assert entry_index(entries, 3, StageStatus.COMPLETED) < entry_index(entries, 2, StageStatus.COMPLETED)
        assert entry_index(entries, 2, StageStatus.COMPLETED) < entry_index(entries, 4, StageStatus.PROCESSING)
        assert output.validation_analysis["credibility_assessment"]["overall_score"] == 71

    @pytest.mark.anyio
    async def test_stage2_finishing_first_still_waits_for_stage3(self, happy_handlers):
        from conftest import VALIDATION_RESPONSE

        release_comparator = asyncio.Event()

        async def slow_comparator(messages):
            await release_comparator.wait()
            return VALIDATION_RESPONSE

        happy_handlers[Role.COMPARATOR] = slow_comparator
        invoker = ScriptedInvoker(happy_handlers)

        stage4_called_when_stage2_done = []

        def observer(entry):
            if entry.stage == 2 and entry.status == StageStatus.COMPLETED:
                stage4_called_when_stage2_done.append(invoker.called(Role.SOLUTION_ARCHITECT))
                release_comparator.set()

        await DecisionPipeline(invoker, on_progress=observer).run(VENTURE)

        assert stage4_called_when_stage2_done == [False]
        assert invoker.index("start", Role.RESEARCH_ENGINE) < invoker.index("end", Role.COMPARATOR)
        assert invoker.index("end", Role.COMPARATOR) < invoker.index("start", Role.SOLUTION_ARCHITECT)

    @pytest.mark.anyio
    async def test_both_stages_dispatched_before_either_returns(self, happy_handlers):
        from conftest import RESEARCH_RESPONSE, VALIDATION_RESPONSE

        started = {Role.RESEARCH_ENGINE: asyncio.Event(), Role.COMPARATOR: asyncio.Event()}

        def waiting_for(other: Role, me: Role, response: str):
            async def handler(messages):
                started[me].set()
                await asyncio.wait_for(started[other].wait(), timeout=5)
                return response

            return handler

        happy_handlers[Role.RESEARCH_ENGINE] = waiting_for(Role.COMPARATOR, Role.RESEARCH_ENGINE, RESEARCH_RESPONSE)
        happy_handlers[Role.COMPARATOR] = waiting_for(Role.RESEARCH_ENGINE, Role.COMPARATOR, VALIDATION_RESPONSE)

        output = await make_pipeline(ScriptedInvoker(happy_handlers)).run(VENTURE)

        assert output.quality.status == QualityStatus.FULL


class TestStageOneFailure:
    """Stage 1 call failures abort the run."""

    @pytest.mark.anyio
    async def test_stage1_error_fails_pipeline_with_single_error_entry(self, happy_handlers):
        happy_handlers[Role.CONTEXT_ANALYZER] = reply(RuntimeError("backend exploded"))
        invoker = ScriptedInvoker(happy_handlers)
        entries = []
        pipeline = make_pipeline(invoker, entries)

        with pytest.raises(StageOneFailure, match="backend exploded") as exc_info:
            await pipeline.run(VENTURE)

        errors = [e for e in entries if e.status == StageStatus.ERROR]
        assert len(errors) == 1
        assert errors[0].stage == 1
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert pipeline.state == PipelineState.FAILED
        assert not invoker.called(Role.RESEARCH_ENGINE)
        assert not invoker.called(Role.SOLUTION_ARCHITECT)

    @pytest.mark.anyio
    async def test_stage1_timeout_is_stage_one_failure(self, happy_handlers):
        happy_handlers[Role.CONTEXT_ANALYZER] = reply(StageTimeoutError("context_analyzer", 1.0))

        with pytest.raises(StageOneFailure) as exc_info:
            await make_pipeline(ScriptedInvoker(happy_handlers)).run(VENTURE)

        assert isinstance(exc_info.value.__cause__, StageTimeoutError)

    @pytest.mark.anyio
    async def test_capability_unavailable_propagates_unchanged(self, happy_handlers):
        happy_handlers[Role.CONTEXT_ANALYZER] = reply(CapabilityUnavailableError("no backend"))
        entries = []

        with pytest.raises(CapabilityUnavailableError):
            await make_pipeline(ScriptedInvoker(happy_handlers), entries).run(VENTURE)

        assert [e.status for e in entries] == [StageStatus.PROCESSING, StageStatus.ERROR]

    @pytest.mark.anyio
    async def test_capability_unavailable_in_fan_out_is_fatal(self, happy_handlers):
        happy_handlers[Role.COMPARATOR] = reply(CapabilityUnavailableError("gemini missing"))
        invoker = ScriptedInvoker(happy_handlers)
        pipeline = make_pipeline(invoker)

        with pytest.raises(CapabilityUnavailableError):
            await pipeline.run(VENTURE)

        assert invoker.called(Role.RESEARCH_ENGINE)
        assert not invoker.called(Role.SOLUTION_ARCHITECT)
        assert pipeline.state == PipelineState.FAILED

    @pytest.mark.anyio
    async def test_unparseable_stage1_output_uses_fallback_instructions(self, happy_handlers):
        happy_handlers[Role.CONTEXT_ANALYZER] = reply("Sorry, I can't do JSON today.")
        invoker = ScriptedInvoker(happy_handlers)

        output = await make_pipeline(invoker).run(VENTURE)

        assert "Meal delivery for rural clinics" in invoker.messages[Role.RESEARCH_ENGINE][-1].content
        assert "Meal delivery for rural clinics" in invoker.messages[Role.COMPARATOR][-1].content
        assert output.context_analysis == default_for(Shape.CONTEXT)
        assert output.quality.status == QualityStatus.PLACEHOLDER
        assert output.quality.degraded_stages == [1]


class TestSoftDegradation:
    """Stages 2-4 degrade to defaults instead of failing."""

    @pytest.mark.anyio
    async def test_unparseable_stage2_degrades_and_stage4_still_runs(self, happy_handlers):
        happy_handlers[Role.RESEARCH_ENGINE] = reply("I cannot help with that.")
        invoker = ScriptedInvoker(happy_handlers)
        entries = []

        output = await make_pipeline(invoker, entries).run(VENTURE)

        assert output.research_dossier == default_for(Shape.RESEARCH_DOSSIER)
        assert invoker.called(Role.SOLUTION_ARCHITECT)
        assert '"market_size": "Unknown"' in invoker.messages[Role.SOLUTION_ARCHITECT][-1].content
        assert output.quality.status == QualityStatus.DEGRADED
        assert output.quality.degraded_stages == [2]
        stage2_done = entries[entry_index(entries, 2, StageStatus.COMPLETED)]
        assert "using defaults" in stage2_done.message
        assert not any(e.status == StageStatus.ERROR for e in entries)

    @pytest.mark.anyio
    async def test_stage3_call_error_degrades(self, happy_handlers):
        happy_handlers[Role.COMPARATOR] = reply(StageTimeoutError("comparator", 30))
        entries = []

        output = await make_pipeline(ScriptedInvoker(happy_handlers), entries).run(VENTURE)

        assert output.validation_analysis["credibility_assessment"]["overall_score"] == 50
        errors = [e for e in entries if e.status == StageStatus.ERROR]
        assert [e.stage for e in errors] == [3]
        assert output.quality.degraded_stages == [3]

    @pytest.mark.anyio
    async def test_stage4_garbage_yields_empty_solution_list(self, happy_handlers):
        happy_handlers[Role.SOLUTION_ARCHITECT] = reply("Here are some thoughts, no data.")

        output = await make_pipeline(ScriptedInvoker(happy_handlers)).run(VENTURE)

        assert output.solution_approaches == []
        assert output.recommended_approach_id is None
        assert output.next_steps == ["Review solution approaches", "Select preferred strategy", "Begin execution planning"]
        assert "mermaid_code" not in output.visual_assets
        assert output.quality.missing_categories == ["capital_driven", "human_expertise_driven", "technology_driven"]

    @pytest.mark.anyio
    async def test_all_garbage_still_completes_as_placeholder(self):
        handlers = {role: reply("I cannot help with that.") for role in Role}
        pipeline = make_pipeline(ScriptedInvoker(handlers))

        output = await pipeline.run(VENTURE)

        assert pipeline.state == PipelineState.ARTIFACTS_READY
        assert output.quality.status == QualityStatus.PLACEHOLDER
        assert output.quality.degraded_stages == [1, 2, 3, 4]
        assert output.executive_summary


class TestExtremeModelValues:
    """Out-of-range numbers and durations in model output never fail the run."""

    @pytest.mark.anyio
    async def test_oversized_credibility_score_defaults(self, happy_handlers):
        happy_handlers[Role.COMPARATOR] = reply('{"credibility_assessment": {"overall_score": 1' + "0" * 400 + "}}")
        pipeline = make_pipeline(ScriptedInvoker(happy_handlers))

        output = await pipeline.run(VENTURE)

        assert pipeline.state == PipelineState.ARTIFACTS_READY
        assert output.validation_analysis["credibility_assessment"]["overall_score"] == 50

    @pytest.mark.anyio
    async def test_stage4_extreme_values_still_produce_output(self, happy_handlers):
        happy_handlers[Role.SOLUTION_ARCHITECT] = reply(
            '[{"id": "wild", "name": "Wild", "capital_required": {"min": -1, "max": 1e400},'
            ' "resource_requirements": {"team_size": 1' + "0" * 400 + "},"
            ' "phases": [{"name": "Forever", "duration": "100000 years", "estimated_cost": -1},'
            ' {"name": "Ages", "duration": "Month 1-99999"}]}]'
        )
        pipeline = make_pipeline(ScriptedInvoker(happy_handlers))

        output = await pipeline.run(VENTURE)

        assert pipeline.state == PipelineState.ARTIFACTS_READY
        solution = output.solution_approaches[0]
        assert solution["capital_required"]["min"] == 0
        assert solution["capital_required"]["max"] == 0
        assert solution["resource_requirements"]["team_size"] == 1
        assert solution["phases"][0]["estimated_cost"] == 0
        timeline = output.visual_assets["roadmap_timeline"]
        assert [phase["months"] for phase in timeline["phases"]] == [3, 3]
        assert "Forever :active" in output.visual_assets["mermaid_code"]


class TestSolutionPrompts:
    @pytest.mark.anyio
    async def test_architect_prompts_list_only_configured_categories(self, happy_handlers):
        invoker = ScriptedInvoker(happy_handlers)

        await make_pipeline(invoker, expected_categories=["technology_driven"]).run(VENTURE)

        system, user = invoker.messages[Role.SOLUTION_ARCHITECT]
        assert "- technology_driven:" in system.content
        assert "capital_driven" not in system.content
        assert "human_expertise_driven" not in system.content
        assert "categories: technology_driven" in user.content
