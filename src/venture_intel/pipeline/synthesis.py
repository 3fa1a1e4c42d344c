"""Narrative summaries assembled from normalized stage results."""

from typing import Any

from ..visuals import score_solution

GENERIC_NEXT_STEPS = [
    "Review solution approaches",
    "Select preferred strategy",
    "Begin execution planning",
]


def choose_recommended(solutions: list[dict[str, Any]]) -> dict[str, Any] | None:
    """Pick the solution with the best mean comparison score; earlier wins ties."""
    best = None
    best_score = -1.0
    for solution in solutions:
        score = score_solution(solution).mean
        if score > best_score:
            best, best_score = solution, score
    return best


def generate_executive_summary(
    context: dict[str, Any],
    research: dict[str, Any],
    validation: dict[str, Any],
    solutions: list[dict[str, Any]],
) -> str:
    market = research["market_analysis"]
    credibility = validation["credibility_assessment"]["overall_score"]
    contradiction_note = (
        "Key contradictions were identified that need addressing."
        if validation["contradictions"]
        else "Claims are well supported by the research."
    )

    paragraphs = [
        f"Based on research across {len(research['all_sources'])} sources, we analyzed your "
        f"{context['user_situation']['stage']}-stage venture.",
        f"Market analysis: {market['market_size']} market with {market['growth_rate']} growth.",
        f"Validation: your venture has a credibility score of {credibility:g}/100. {contradiction_note}",
    ]
    if solutions:
        capital_floor = min(solution["capital_required"]["min"] for solution in solutions)
        capital_ceiling = max(solution["capital_required"]["max"] for solution in solutions)
        paragraphs.append(
            f"We designed {len(solutions)} distinct approaches tailored to your resources and goals, "
            f"ranging from ${capital_floor:,.0f} to ${capital_ceiling:,.0f} in required capital."
        )
    else:
        paragraphs.append("No solution approaches could be derived from the available research.")
    return "\n\n".join(paragraphs)


def extract_key_insights(research: dict[str, Any], validation: dict[str, Any], limit: int = 5) -> list[str]:
    insights: list[str] = list(research["market_analysis"]["trends"][:2])
    for method in research["proven_methods"]:
        description = method["description"]
        if len(description) > 100:
            description = description[:100] + "..."
        insights.append(f"{method['method_name']}: {description}" if description else method["method_name"])
    insights.extend(validation["recommendations"][:2])
    return insights[:limit]


def generate_next_steps(solution: dict[str, Any] | None) -> list[str]:
    """Concrete next steps from the first phase of the recommended solution."""
    if not solution or not solution.get("phases"):
        return list(GENERIC_NEXT_STEPS)

    first = solution["phases"][0]
    steps = [f"Start with {first['name']}" + (f": {first['deliverables'][0]}" if first["deliverables"] else "")]
    steps.append(f"Allocate budget: ${first['estimated_cost']:,.0f}")
    if first["milestones"]:
        steps.append(f"Key milestone: {first['milestones'][0]}")
    steps.extend(
        [
            "Review proven examples and adapt to your context",
            "Track metrics and adjust based on early results",
        ]
    )
    return steps
