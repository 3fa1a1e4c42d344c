"""Coerce loosely shaped model output into the canonical stage shapes.

Each shape is declared as a tree of coercers. A coercer takes any value and
returns a value of the declared type, using the field default when the input
is missing or of the wrong type. Record coercers copy the candidate mapping
first, so fields the shape does not declare survive normalization.
"""

import logging
import math
import re
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any
from uuid import uuid4

logger = logging.getLogger(__name__)

Coercer = Callable[[Any], Any]


class Shape(str, Enum):
    """Canonical output shapes, one per pipeline stage."""

    CONTEXT = "context"
    RESEARCH_DOSSIER = "research-dossier"
    VALIDATION = "validation"
    SOLUTION_LIST = "solution-list"


SOLUTION_CATEGORIES = ("capital_driven", "human_expertise_driven", "technology_driven")

_CATEGORY_KEYWORDS = {
    "capital_driven": ("capital", "funding", "money", "invest"),
    "human_expertise_driven": ("human", "expert", "team", "people", "talent"),
    "technology_driven": ("tech", "automation", "ai", "software", "digital"),
}

UNKNOWN = "Unknown"

# --- Coercers ---


def text(default: str = UNKNOWN) -> Coercer:
    def coerce(value: Any) -> str:
        if isinstance(value, str):
            return value if value.strip() else default
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return default

    return coerce


_NUMBER_NOISE = re.compile(r"[\s,$€£]")
_SUFFIXES = {"k": 1_000, "m": 1_000_000, "b": 1_000_000_000}


def _parse_number(value: str) -> float | None:
    cleaned = _NUMBER_NOISE.sub("", value).lower()
    multiplier = 1
    if cleaned and cleaned[-1] in _SUFFIXES:
        multiplier = _SUFFIXES[cleaned[-1]]
        cleaned = cleaned[:-1]
    try:
        number = float(cleaned) * multiplier
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def number(default: float = 0, *, integer: bool = False, low: float | None = None, high: float | None = None) -> Coercer:
    def coerce(value: Any) -> int | float:
        if isinstance(value, bool):
            result = None
        elif isinstance(value, (int, float)):
            try:
                result = float(value)
            except OverflowError:
                result = None
        elif isinstance(value, str):
            result = _parse_number(value)
        else:
            result = None

        if result is None or not math.isfinite(result):
            return default
        if low is not None:
            result = max(float(low), result)
        if high is not None:
            result = min(float(high), result)
        if integer:
            return int(round(result))
        return int(result) if result.is_integer() else result

    return coerce


def _slug(value: str) -> str:
    return re.sub(r"[\s\-]+", "_", value.strip().lower())


def choice(options: tuple[str, ...], default: str) -> Coercer:
    def coerce(value: Any) -> str:
        if isinstance(value, str) and _slug(value) in options:
            return _slug(value)
        return default

    return coerce


def string_list() -> Coercer:
    """Coerce to a list of strings; a bare string becomes a one-element list."""

    def coerce(value: Any) -> list[str]:
        if isinstance(value, str):
            return [value] if value.strip() else []
        if not isinstance(value, (list, tuple)):
            return []
        items = []
        for item in value:
            if isinstance(item, str):
                items.append(item)
            elif isinstance(item, (int, float)) and not isinstance(item, bool):
                items.append(str(item))
            elif isinstance(item, Mapping):
                label = next((item[k] for k in ("text", "name", "title", "description") if isinstance(item.get(k), str)), None)
                if label:
                    items.append(label)
        return items

    return coerce


def record(fields: Mapping[str, Coercer], aliases: Mapping[str, str] | None = None) -> Coercer:
    """Coerce to a dict with every declared field present.

    ``aliases`` maps an alternative key the model may use onto the declared
    field name; it is consulted only when the declared field is absent.
    """

    def coerce(value: Any) -> dict[str, Any]:
        result = dict(value) if isinstance(value, Mapping) else {}
        for alias, target in (aliases or {}).items():
            if target not in result and alias in result:
                result[target] = result[alias]
        for name, field in fields.items():
            result[name] = field(result.get(name))
        return result

    return coerce


def record_list(item: Coercer, from_string: Callable[[str], Any] | None = None) -> Coercer:
    """Coerce to a list of records; non-mapping items are dropped unless ``from_string`` lifts them."""

    def coerce(value: Any) -> list[dict[str, Any]]:
        if isinstance(value, Mapping):
            value = [value]
        if not isinstance(value, (list, tuple)):
            return []
        items = []
        for entry in value:
            if isinstance(entry, Mapping):
                items.append(item(entry))
            elif from_string is not None and isinstance(entry, str) and entry.strip():
                items.append(item(from_string(entry)))
        return items

    return coerce


# --- Shapes ---


def _source_from_string(value: str) -> dict[str, str]:
    value = value.strip()
    if value.startswith(("http://", "https://")):
        return {"title": value, "url": value}
    return {"title": value}


_source = record(
    {
        "title": text("Untitled Source"),
        "url": text(""),
        "publication": text(UNKNOWN),
        "date": text(""),
        "key_insights": string_list(),
        "credibility": choice(("high", "medium", "low"), "medium"),
        "source_type": choice(("case_study", "research_paper", "news_article", "industry_report"), "industry_report"),
    }
)
_sources = record_list(_source, from_string=_source_from_string)

_proven_example = record(
    {
        "company_name": text(UNKNOWN),
        "case_study_url": text(""),
        "success_metrics": string_list(),
        "source_credibility": choice(("high", "medium", "low"), "medium"),
    },
    aliases={"company": "company_name", "name": "company_name", "url": "case_study_url"},
)
_proven_examples = record_list(_proven_example, from_string=lambda s: {"company_name": s})

_context = record(
    {
        "user_situation": record(
            {
                "stage": text("idea"),
                "resources": string_list(),
                "constraints": string_list(),
                "goals": string_list(),
            }
        ),
        "key_claims": string_list(),
        "research_queries": record_list(
            record(
                {
                    "query": text(""),
                    "category": choice(
                        ("market_data", "competitors", "case_studies", "frameworks", "best_practices"),
                        "market_data",
                    ),
                    "priority": number(1, integer=True, low=1),
                }
            ),
            from_string=lambda s: {"query": s},
        ),
        "decision_points": string_list(),
        "generated_prompts": record({"research_prompt": text(""), "competitor_prompt": text("")}),
    }
)

_research_dossier = record(
    {
        "market_analysis": record(
            {
                "market_size": text(UNKNOWN),
                "growth_rate": text("N/A"),
                "trends": string_list(),
                "sources": _sources,
            }
        ),
        "competitor_analysis": record(
            {
                "competitors": record_list(
                    record(
                        {
                            "name": text(UNKNOWN),
                            "approach": text(""),
                            "strengths": string_list(),
                            "weaknesses": string_list(),
                        }
                    ),
                    from_string=lambda s: {"name": s},
                ),
                "sources": _sources,
            }
        ),
        "proven_methods": record_list(
            record(
                {
                    "method_name": text("Unnamed Method"),
                    "description": text(""),
                    "success_rate": text(UNKNOWN),
                    "examples": _proven_examples,
                    "sources": _sources,
                },
                aliases={"name": "method_name"},
            ),
            from_string=lambda s: {"method_name": s},
        ),
        "all_sources": _sources,
    }
)

_validation = record(
    {
        "contradictions": record_list(
            record(
                {
                    "claim": text(UNKNOWN),
                    "finding": text(UNKNOWN),
                    "severity": choice(("high", "medium", "low"), "medium"),
                }
            )
        ),
        "gaps": string_list(),
        "credibility_assessment": record(
            {
                "overall_score": number(50, low=0, high=100),
                "factors": string_list(),
            }
        ),
        "recommendations": string_list(),
    }
)

_phase = record(
    {
        "name": text("Initial Phase"),
        "duration": text("1 month"),
        "milestones": string_list(),
        "deliverables": string_list(),
        "estimated_cost": number(0, low=0),
        "sources": string_list(),
    }
)

_solution = record(
    {
        "name": text("Unnamed Solution"),
        "capital_required": record(
            {"min": number(0, low=0), "max": number(0, low=0), "currency": text("USD")},
        ),
        "time_to_market": record(
            {"min_months": number(0, low=0), "max_months": number(0, low=0)},
        ),
        "resource_requirements": record(
            {
                "team_size": number(1, integer=True, low=1),
                "skills_needed": string_list(),
                "infrastructure": string_list(),
            },
            aliases={"skills": "skills_needed"},
        ),
        "risk_level": choice(("low", "medium", "high"), "medium"),
        "risk_factors": string_list(),
        "mitigation_strategies": string_list(),
        "phases": record_list(_phase),
        "proven_examples": _proven_examples,
        "sources": _sources,
        "executive_summary": text(""),
        "why_this_approach": text(""),
    },
    aliases={"summary": "executive_summary", "description": "executive_summary", "mitigations": "mitigation_strategies"},
)

# --- Shape-specific passes ---


def _flatten_sources(dossier: dict[str, Any]) -> list[dict[str, Any]]:
    """Collect every source cited anywhere in a dossier, first occurrence wins."""
    collected = list(dossier["market_analysis"]["sources"]) + list(dossier["competitor_analysis"]["sources"])
    for method in dossier["proven_methods"]:
        collected.extend(method["sources"])

    seen: set[str] = set()
    unique = []
    for source in collected:
        key = source["url"] or source["title"]
        if key in seen:
            continue
        seen.add(key)
        unique.append(source)
    return unique


def _resolve_category(raw: Any, used: set[str]) -> str:
    if isinstance(raw, str):
        slug = _slug(raw)
        if slug in SOLUTION_CATEGORIES:
            return slug
        words = set(re.split(r"[^a-z]+", slug.replace("_", " ")))
        for category, keywords in _CATEGORY_KEYWORDS.items():
            if any(keyword in slug if len(keyword) > 2 else keyword in words for keyword in keywords):
                return category
    for category in SOLUTION_CATEGORIES:
        if category not in used:
            return category
    return "technology_driven"


def _solution_candidates(candidate: Any) -> list[Any]:
    if isinstance(candidate, list):
        return candidate
    if isinstance(candidate, Mapping):
        for key in ("solutions", "solution_approaches", "approaches"):
            wrapped = candidate.get(key)
            if isinstance(wrapped, list):
                return wrapped
        return [candidate] if candidate else []
    return []


def _normalize_solutions(candidate: Any) -> list[dict[str, Any]]:
    solutions = []
    ids: set[str] = set()
    used_categories: set[str] = set()
    for item in _solution_candidates(candidate):
        if not isinstance(item, Mapping):
            logger.debug(f"Dropping non-object solution entry: {item!r:.80}")
            continue
        solution = _solution(item)

        solution_id = item.get("id")
        solution_id = str(solution_id) if isinstance(solution_id, (str, int)) and str(solution_id).strip() else ""
        while not solution_id or solution_id in ids:
            solution_id = uuid4().hex[:9]
        ids.add(solution_id)
        solution["id"] = solution_id

        solution["category"] = _resolve_category(item.get("category"), used_categories)
        used_categories.add(solution["category"])
        solutions.append(solution)
    return solutions


def normalize(shape: Shape | str, candidate: Any) -> Any:
    """Normalize ``candidate`` to the canonical ``shape``.

    Never raises for any candidate value. Object shapes return a dict with
    every required field present; the solution-list shape returns a list.
    """
    shape = Shape(shape)
    match shape:
        case Shape.CONTEXT:
            return _context(candidate)
        case Shape.RESEARCH_DOSSIER:
            dossier = _research_dossier(candidate)
            if not dossier["all_sources"]:
                dossier["all_sources"] = _flatten_sources(dossier)
            return dossier
        case Shape.VALIDATION:
            return _validation(candidate)
        case Shape.SOLUTION_LIST:
            return _normalize_solutions(candidate)


def default_for(shape: Shape | str) -> Any:
    """The value a shape normalizes to when the candidate carries nothing."""
    return normalize(shape, None)
