"""Pytest configuration and shared fixtures for venture-intel tests."""

import json
from collections.abc import Awaitable, Callable, Sequence

import pytest

from venture_intel.invoker import ChatMessage, Role

Handler = Callable[[Sequence[ChatMessage]], Awaitable[str]]


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: Tests that take longer to run")


@pytest.fixture
def anyio_backend():
    return "asyncio"


def reply(value: str | BaseException) -> Handler:
    """Handler that returns ``value`` or raises it."""

    async def handler(messages: Sequence[ChatMessage]) -> str:
        if isinstance(value, BaseException):
            raise value
        return value

    return handler


class ScriptedInvoker:
    """Role invoker that answers from per-role handlers and records call order."""

    def __init__(self, handlers: dict[Role, Handler]):
        self.handlers = handlers
        self.events: list[tuple[str, Role]] = []
        self.messages: dict[Role, list[ChatMessage]] = {}

    def describe(self, role: Role) -> str:
        return f"fake/{role.value}"

    async def invoke(self, role: Role, messages: Sequence[ChatMessage]) -> str:
        self.events.append(("start", role))
        self.messages[role] = list(messages)
        try:
            return await self.handlers[role](messages)
        finally:
            self.events.append(("end", role))

    def index(self, kind: str, role: Role) -> int:
        return self.events.index((kind, role))

    def called(self, role: Role) -> bool:
        return ("start", role) in self.events


CONTEXT_RESPONSE = "Here is my analysis:\n```json\n" + json.dumps(
    {
        "user_situation": {
            "stage": "prototype",
            "resources": ["$40k savings", "two engineers"],
            "constraints": ["rural logistics"],
            "goals": ["first 10 clinics"],
        },
        "key_claims": ["Clinics lack reliable meal supply"],
        "research_queries": [{"query": "rural clinic food service market", "category": "market_data", "priority": 1}],
        "decision_points": ["Own delivery fleet or partner"],
        "generated_prompts": {
            "research_prompt": "Research meal supply models for rural clinics.",
            "competitor_prompt": "Find competitors supplying meals to rural clinics.",
        },
    }
) + "\n```"

RESEARCH_RESPONSE = json.dumps(
    {
        "market_analysis": {
            "market_size": "$2.1B",
            "growth_rate": "6% CAGR",
            "trends": ["Telehealth-adjacent services", "Shared rural logistics", "Nutrition programs"],
            "sources": [{"title": "Rural Health Report", "url": "https://example.org/rural", "credibility": "high"}],
        },
        "competitor_analysis": {"competitors": [{"name": "MealCo", "approach": "Regional hubs"}], "sources": []},
        "proven_methods": [
            {
                "method_name": "Hub and spoke",
                "description": "Central kitchens serving clinics within a 100 mile radius.",
                "success_rate": "70%",
                "sources": ["https://example.org/hub"],
            }
        ],
    }
)

VALIDATION_RESPONSE = "Analysis follows. " + json.dumps(
    {
        "contradictions": [{"claim": "No competitors", "finding": "MealCo operates in 3 states", "severity": "high"}],
        "gaps": ["Unit economics"],
        "credibility_assessment": {"overall_score": 68, "factors": ["Clear need"]},
        "recommendations": ["Pilot with two clinics", "Validate pricing"],
        "competitors": [{"name": "MealCo", "industry": "Food service"}],
    }
)

SOLUTIONS_RESPONSE = json.dumps(
    {
        "solutions": [
            {
                "id": "cap",
                "name": "Fleet Build-out",
                "category": "capital_driven",
                "capital_required": {"min": 150000, "max": 300000, "currency": "USD"},
                "time_to_market": {"min_months": 6, "max_months": 9},
                "risk_level": "high",
                "phases": [{"name": "Fleet", "duration": "Month 1-3", "milestones": ["Vans leased"], "deliverables": ["Fleet"], "estimated_cost": 90000}],
                "proven_examples": [{"company_name": "MealCo"}],
            },
            {
                "id": "human",
                "name": "Local Cooks Network",
                "category": "human_expertise_driven",
                "capital_required": {"min": 20000, "max": 40000},
                "time_to_market": {"min_months": 3, "max_months": 5},
                "risk_level": "medium",
                "phases": [],
            },
            {
                "id": "tech",
                "name": "Routing Platform",
                "category": "technology_driven",
                "capital_required": {"min": 5000, "max": 12000},
                "time_to_market": {"min_months": 2, "max_months": 3},
                "risk_level": "low",
                "phases": [
                    {
                        "name": "MVP",
                        "duration": "2 months",
                        "milestones": ["Pilot clinic live"],
                        "deliverables": ["Routing app"],
                        "estimated_cost": 8000,
                    },
                    {"name": "Scale", "duration": "3-6 months", "milestones": [], "deliverables": [], "estimated_cost": 4000},
                ],
                "proven_examples": [{"company_name": "RouteRx"}, {"company_name": "ClinicFeed"}, {"company_name": "MealCo"}],
            },
        ]
    }
)


@pytest.fixture
def happy_handlers() -> dict[Role, Handler]:
    return {
        Role.CONTEXT_ANALYZER: reply(CONTEXT_RESPONSE),
        Role.RESEARCH_ENGINE: reply(RESEARCH_RESPONSE),
        Role.COMPARATOR: reply(VALIDATION_RESPONSE),
        Role.SOLUTION_ARCHITECT: reply(SOLUTIONS_RESPONSE),
    }
