"""Deterministic visual artifacts derived from normalized solutions.

Everything here is a pure function of already-normalized solution records and,
for timelines, an explicit ``now``. Chart descriptors are plain dicts in the
``{labels, datasets}`` layout that Chart.js consumes.
"""

import calendar
import logging
import math
import re
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_PHASE_MONTHS = 3
MAX_PHASE_MONTHS = 120

COMPARISON_AXES = [
    "Speed to Market",
    "Capital Efficiency",
    "Risk Level",
    "Scalability",
    "Proven Success Rate",
]

_FILL_COLORS = ["rgba(0, 255, 136, 0.6)", "rgba(255, 215, 0, 0.6)", "rgba(255, 68, 68, 0.6)"]
_BORDER_COLORS = ["rgba(0, 255, 136, 1)", "rgba(255, 215, 0, 1)", "rgba(255, 68, 68, 1)"]

_DURATION = re.compile(r"(\d+(?:\.\d+)?)(?:\s*(?:-|–|to)\s*(\d+(?:\.\d+)?))?\s*([a-z]*)", re.IGNORECASE)


class TimelineMilestone(BaseModel):
    name: str
    at: datetime


class TimelinePhase(BaseModel):
    index: int
    name: str
    months: int
    start: datetime
    end: datetime
    milestones: list[TimelineMilestone] = Field(default_factory=list)


class RoadmapTimeline(BaseModel):
    solution_id: str | None = None
    title: str
    start: datetime
    end: datetime
    phases: list[TimelinePhase] = Field(default_factory=list)

    @property
    def total_months(self) -> int:
        return sum(phase.months for phase in self.phases)


class ComparisonScores(BaseModel):
    """Five 0-100 scores; higher is better on every axis."""

    speed: int
    capital_efficiency: int
    risk: int
    scalability: int
    proven_success: int

    def as_list(self) -> list[int]:
        return [self.speed, self.capital_efficiency, self.risk, self.scalability, self.proven_success]

    @property
    def mean(self) -> float:
        return sum(self.as_list()) / len(COMPARISON_AXES)


def parse_duration_months(duration: Any) -> int:
    """Parse a phase duration such as "Month 1-2", "3 months" or "6 weeks" into months.

    A range is read as inclusive ordinals ("Month 1-2" spans 2 months). Weeks
    round up to whole months, years count as 12. Anything unparseable, and any
    span longer than ``MAX_PHASE_MONTHS``, yields ``DEFAULT_PHASE_MONTHS``.
    """
    if not isinstance(duration, str):
        return DEFAULT_PHASE_MONTHS
    match = _DURATION.search(duration)
    if not match:
        return DEFAULT_PHASE_MONTHS

    first = float(match.group(1))
    last = float(match.group(2)) if match.group(2) else None
    unit = match.group(3).lower()
    if not unit:
        unit = "year" if "year" in duration.lower() else "week" if "week" in duration.lower() else "month"

    if last is not None:
        count = last - first + 1 if last >= first else first
    else:
        count = first

    if unit.startswith(("week", "wk")):
        count /= 4
    elif unit.startswith(("year", "yr")):
        count *= 12
    if not 0 < count <= MAX_PHASE_MONTHS:
        return DEFAULT_PHASE_MONTHS
    return math.ceil(count)


def add_months(moment: datetime, months: int) -> datetime:
    """Shift ``moment`` by whole calendar months, clamping the day to the month end."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def build_roadmap_timeline(solution: dict[str, Any], now: datetime) -> RoadmapTimeline:
    """Lay the solution's phases end to end starting at ``now``.

    Milestones are spread evenly inside their phase, truncated to whole months.
    Phases that would end past the last representable date are left out.
    """
    cursor = now
    phases = []
    for index, phase in enumerate(solution.get("phases") or []):
        months = parse_duration_months(phase.get("duration"))
        milestone_names = phase.get("milestones") or []
        try:
            end = add_months(cursor, months)
            milestones = [
                TimelineMilestone(name=name, at=add_months(cursor, int(months / (len(milestone_names) + 1) * (position + 1))))
                for position, name in enumerate(milestone_names)
            ]
        except (ValueError, OverflowError):
            logger.warning(f"Roadmap truncated at phase {index + 1}: dates beyond {cursor:%Y-%m-%d} are out of range")
            break
        phases.append(
            TimelinePhase(
                index=index,
                name=phase.get("name") or f"Phase {index + 1}",
                months=months,
                start=cursor,
                end=end,
                milestones=milestones,
            )
        )
        cursor = end

    return RoadmapTimeline(
        solution_id=solution.get("id"),
        title=f"{solution.get('name') or 'Solution'} Roadmap",
        start=now,
        end=cursor,
        phases=phases,
    )


def _gantt_label(value: str) -> str:
    # ':' and '#' break Mermaid gantt task lines
    return re.sub(r"[:#;\n]", " ", value).strip() or "Untitled"


def render_mermaid_gantt(timeline: RoadmapTimeline) -> str:
    """Render a timeline as Mermaid gantt source."""
    lines = [
        "gantt",
        f"    title {_gantt_label(timeline.title)}",
        "    dateFormat YYYY-MM-DD",
        "    axisFormat %b %Y",
        "",
    ]
    for phase in timeline.phases:
        name = _gantt_label(phase.name)
        lines.append(f"    section {name}")
        lines.append(f"    {name} :active, p{phase.index}, {phase.start:%Y-%m-%d}, {phase.end:%Y-%m-%d}")
        for position, milestone in enumerate(phase.milestones):
            lines.append(f"    {_gantt_label(milestone.name)} :milestone, m{phase.index}-{position}, {milestone.at:%Y-%m-%d}, 0d")
        lines.append("")
    return "\n".join(lines)


# --- Scores ---


def _speed_score(time_to_market: dict[str, Any]) -> int:
    average = (time_to_market.get("min_months", 0) + time_to_market.get("max_months", 0)) / 2
    if average <= 3:
        return 100
    if average <= 6:
        return 80
    if average <= 12:
        return 60
    if average <= 18:
        return 40
    return 20


def _capital_score(capital: dict[str, Any]) -> int:
    average = (capital.get("min", 0) + capital.get("max", 0)) / 2
    if average <= 10_000:
        return 100
    if average <= 50_000:
        return 80
    if average <= 100_000:
        return 60
    if average <= 200_000:
        return 40
    return 20


def _risk_score(risk_level: str) -> int:
    return {"low": 100, "medium": 60, "high": 30}.get(risk_level, 50)


def _scalability_score(category: str) -> int:
    # Human expertise scales linearly at best
    return {"technology_driven": 95, "capital_driven": 80}.get(category, 50)


def _proven_score(examples: list) -> int:
    count = len(examples)
    if count >= 5:
        return 100
    if count >= 3:
        return 80
    if count >= 1:
        return 60
    return 30


def score_solution(solution: dict[str, Any]) -> ComparisonScores:
    """Score a normalized solution on the five comparison axes."""
    return ComparisonScores(
        speed=_speed_score(solution.get("time_to_market") or {}),
        capital_efficiency=_capital_score(solution.get("capital_required") or {}),
        risk=_risk_score(solution.get("risk_level", "")),
        scalability=_scalability_score(solution.get("category", "")),
        proven_success=_proven_score(solution.get("proven_examples") or []),
    )


# --- Chart descriptors ---


def build_comparison_chart(solutions: list[dict[str, Any]]) -> dict[str, Any]:
    """Radar chart data comparing every solution on the five axes."""
    datasets = [
        {
            "label": solution.get("name") or "Unnamed Solution",
            "data": score_solution(solution).as_list(),
            "backgroundColor": _FILL_COLORS[index % len(_FILL_COLORS)],
            "borderColor": _BORDER_COLORS[index % len(_BORDER_COLORS)],
            "borderWidth": 2,
        }
        for index, solution in enumerate(solutions)
    ]
    return {"labels": list(COMPARISON_AXES), "datasets": datasets}


def _range_chart(solutions: list[dict[str, Any]], field: str, bounds: list[tuple[str, str, int]]) -> dict[str, Any]:
    return {
        "labels": [solution.get("name") for solution in solutions],
        "datasets": [
            {
                "label": label,
                "data": [(solution.get(field) or {}).get(key, 0) for solution in solutions],
                "backgroundColor": _FILL_COLORS[color],
                "borderColor": _BORDER_COLORS[color],
                "borderWidth": 1,
            }
            for label, key, color in bounds
        ],
    }


def build_capital_comparison(solutions: list[dict[str, Any]]) -> dict[str, Any]:
    return _range_chart(
        solutions,
        "capital_required",
        [("Minimum Capital Required ($)", "min", 0), ("Maximum Capital Required ($)", "max", 1)],
    )


def build_timeline_comparison(solutions: list[dict[str, Any]]) -> dict[str, Any]:
    return _range_chart(
        solutions,
        "time_to_market",
        [("Minimum Time (months)", "min_months", 0), ("Maximum Time (months)", "max_months", 2)],
    )


def build_phase_breakdown(phases: list[dict[str, Any]]) -> dict[str, Any]:
    """Bar chart data of estimated cost per phase."""
    return {
        "labels": [phase.get("name") or "Unknown" for phase in phases],
        "datasets": [
            {
                "label": "Estimated Cost ($)",
                "data": [phase.get("estimated_cost") or 0 for phase in phases],
                "backgroundColor": _FILL_COLORS[0],
                "borderColor": _BORDER_COLORS[0],
                "borderWidth": 1,
            }
        ],
    }


def build_visual_assets(solutions: list[dict[str, Any]], recommended: dict[str, Any] | None, now: datetime) -> dict[str, Any]:
    """Assemble every visual descriptor for the output aggregate."""
    assets: dict[str, Any] = {
        "comparison_chart_data": build_comparison_chart(solutions),
        "capital_comparison_data": build_capital_comparison(solutions),
        "timeline_comparison_data": build_timeline_comparison(solutions),
        "scores": {solution["id"]: score_solution(solution).model_dump() for solution in solutions},
    }
    if recommended is not None:
        timeline = build_roadmap_timeline(recommended, now)
        assets["roadmap_timeline"] = timeline.model_dump(mode="json")
        assets["mermaid_code"] = render_mermaid_gantt(timeline)
        assets["phase_breakdown_data"] = build_phase_breakdown(recommended.get("phases") or [])
    return assets
