"""LLM prompts for the decision pipeline.

Prompts describe the structure we ask for; the normalizer, not the prompt,
guarantees the structure we return.
"""

import json
from typing import Any

CONTEXT_ANALYZER_SYSTEM_PROMPT = """You are a problem analyzer and prompt generator for a venture decision platform.

Read the venture description and identify:
- The core problem
- The industry
- The target users
- The constraints (budget, time, resources)

Then write two focused, non-overlapping instructions for downstream analysts:
- A research instruction for a web research model that finds proven solutions, market data and case studies.
- A competitor instruction for a competitor analyst that finds companies facing the same problem.

Do not solve the problem. Act only as the thinking and routing layer.
Output must be a single JSON object."""

RESEARCH_ENGINE_SYSTEM_PROMPT = """You are a real-world research agent.

Search for:
- Industry trends
- Market size and growth data
- Proven strategies and real implementations

Focus on what works today and on practical, validated approaches.
Cite sources with title, URL, publication and date wherever possible.
Do not give opinions unless they are backed by evidence.

Return results as a single JSON object with the keys:
market_analysis {market_size, growth_rate, trends, sources},
competitor_analysis {competitors, sources},
proven_methods [{method_name, description, success_rate, examples, sources}],
all_sources."""

COMPARATOR_SYSTEM_PROMPT = """You are a competitor intelligence analyst and claim auditor.

Identify companies, startups and enterprises facing the same or a similar problem,
and audit the venture's claims against what they show.

Return a single JSON object with the keys:
contradictions [{claim, finding, severity: high|medium|low}],
gaps [string],
credibility_assessment {overall_score: 0-100, factors [string]},
recommendations [string],
competitors [{name, industry, problem, solution}]."""

SOLUTION_CATEGORY_GUIDANCE = {
    "capital_driven": "for founders with sufficient money",
    "human_expertise_driven": "for skilled teams with limited funds",
    "technology_driven": "where tools or automation replace cost or manpower",
}

SOLUTION_ARCHITECT_SYSTEM_PROMPT = """You are a strategic problem solver and decision assistant.

Using the research findings and competitor intelligence you are given, design
one solution approach per category:
{category_lines}

For each approach include proof of work: how competitors solved the same problem,
what strategy they used and why it worked.

Return a JSON object {{"solutions": [...]}} where each solution has:
id, name, category, capital_required {{min, max, currency}},
time_to_market {{min_months, max_months}},
resource_requirements {{team_size, skills_needed, infrastructure}},
risk_level (low|medium|high), risk_factors, mitigation_strategies,
phases [{{name, duration, milestones, deliverables, estimated_cost, sources}}],
proven_examples [{{company_name, case_study_url, success_metrics, source_credibility}}],
sources, executive_summary, why_this_approach.
Keep language clear and decision-oriented."""


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def get_context_prompt(venture: Any) -> str:
    """Generate the stage 1 prompt for a venture record."""
    return f"""Analyze this venture input:
{_dump(venture)}

Output JSON:
{{
    "user_situation": {{
        "stage": "idea|prototype|early_revenue|scaling",
        "resources": ["money", "skills", "time"],
        "constraints": ["budget", "regulation"],
        "goals": ["short-term", "long-term"]
    }},
    "key_claims": ["claim 1"],
    "research_queries": [{{"query": "...", "category": "market_data|competitors|case_studies|frameworks|best_practices", "priority": 1}}],
    "decision_points": ["..."],
    "generated_prompts": {{
        "research_prompt": "Instruction for the research engine...",
        "competitor_prompt": "Instruction for the competitor analyst..."
    }}
}}"""


def get_fallback_research_prompt(venture: Any) -> str:
    """Research instruction used when stage 1 produced none."""
    return f"""Find proven solutions, case studies, market size, growth rate and current trends for this venture:
{_dump(venture)}

Return JSON with market_analysis, competitor_analysis, proven_methods and all_sources."""


def get_fallback_competitor_prompt(venture: Any) -> str:
    """Competitor instruction used when stage 1 produced none."""
    return f"""Identify competitors facing the same problem as this venture, audit its claims and rate its credibility:
{_dump(venture)}

Return JSON with contradictions, gaps, credibility_assessment and recommendations."""


def get_solution_prompt(research_dossier: dict[str, Any], competitor_analysis: dict[str, Any], categories: list[str]) -> str:
    """Generate the stage 4 prompt from the joined stage 2 and 3 results."""
    return f"""Analyze the following research and competitor data and produce one solution approach
for each of these categories: {", ".join(categories)}.

Research findings:
{_dump(research_dossier)}

Competitor intelligence:
{_dump(competitor_analysis)}

Output strictly in the requested JSON structure."""


def get_solution_system_prompt(categories: list[str]) -> str:
    """Stage 4 system prompt listing exactly the requested categories."""
    category_lines = "\n".join(f"- {category}: {SOLUTION_CATEGORY_GUIDANCE.get(category, 'a distinct approach')}" for category in categories)
    return SOLUTION_ARCHITECT_SYSTEM_PROMPT.format(category_lines=category_lines)
