"""Model invoker: the single seam between the pipeline and any chat backend."""

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Literal, Protocol

from .config import AppSettings
from .exceptions import CapabilityUnavailableError, ConfigurationError, LLMProviderError, StageTimeoutError
from .providers import get_llm

if TYPE_CHECKING:
    from browser_use.llm.base import BaseChatModel

logger = logging.getLogger(__name__)


class Role(str, Enum):
    """Logical pipeline roles, each bound to exactly one backend model."""

    CONTEXT_ANALYZER = "context_analyzer"
    RESEARCH_ENGINE = "research_engine"
    COMPARATOR = "comparator"
    SOLUTION_ARCHITECT = "solution_architect"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


@dataclass(frozen=True)
class ChatMessage:
    """A role-tagged plain-text message."""

    role: Literal["system", "user", "assistant"]
    content: str


@dataclass(frozen=True)
class RoleBinding:
    """Backend identity for one role."""

    provider: str
    model: str

    @property
    def display_name(self) -> str:
        return f"{self.provider}/{self.model}"


class RoleInvoker(Protocol):
    """Anything that can answer "invoke role R with messages M"."""

    async def invoke(self, role: Role, messages: Sequence[ChatMessage]) -> str: ...

    def describe(self, role: Role) -> str: ...


LLMFactory = Callable[[RoleBinding], "BaseChatModel"]


def bindings_from_settings(app_settings: AppSettings) -> dict[Role, RoleBinding]:
    """Build the role binding table from configured providers and models."""
    return {
        role: RoleBinding(
            provider=app_settings.roles.provider_for(role.value),
            model=app_settings.roles.model_for(role.value),
        )
        for role in Role
    }


def settings_llm_factory(app_settings: AppSettings) -> LLMFactory:
    """Create an LLM factory that resolves credentials from settings."""

    def factory(binding: RoleBinding) -> "BaseChatModel":
        return get_llm(
            provider=binding.provider,
            model=binding.model,
            api_key=app_settings.llm.get_api_key_for_provider(binding.provider),
            base_url=app_settings.llm.base_url,
            azure_endpoint=app_settings.llm.azure_endpoint,
            azure_api_version=app_settings.llm.azure_api_version,
        )

    return factory


def _to_browser_use_messages(messages: Sequence[ChatMessage]) -> list:
    from browser_use.llm.messages import AssistantMessage, SystemMessage, UserMessage

    converted = []
    for message in messages:
        match message.role:
            case "system":
                converted.append(SystemMessage(content=message.content))
            case "user":
                converted.append(UserMessage(content=message.content))
            case "assistant":
                converted.append(AssistantMessage(content=message.content))
    return converted


class ModelInvoker:
    """Sends message lists to the backend bound to a role and returns raw text.

    Chat clients are created lazily on first use of a role. Creation happens
    under a lock, so concurrent first calls share one client. Nothing here
    retries: a failed call propagates to the caller unchanged, except for
    client creation failures (``CapabilityUnavailableError``) and calls
    exceeding ``timeout`` (``StageTimeoutError``).
    """

    def __init__(
        self,
        bindings: Mapping[Role, RoleBinding],
        llm_factory: LLMFactory,
        timeout: float | None = None,
    ):
        """Initialize ModelInvoker.

        Args:
            bindings: Backend for every role; must cover all of ``Role``.
            llm_factory: Creates a chat client for a binding.
            timeout: Per-call timeout in seconds; ``None`` or ``0`` waits forever.

        Raises:
            ConfigurationError: If any role has no binding.
        """
        missing = [role.value for role in Role if role not in bindings]
        if missing:
            raise ConfigurationError(f"No backend bound for roles: {', '.join(missing)}")
        self.bindings = {role: bindings[role] for role in Role}
        self.llm_factory = llm_factory
        self.timeout = timeout or None
        self._clients: dict[Role, "BaseChatModel"] = {}
        self._init_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, app_settings: AppSettings) -> "ModelInvoker":
        return cls(
            bindings=bindings_from_settings(app_settings),
            llm_factory=settings_llm_factory(app_settings),
            timeout=app_settings.pipeline.call_timeout,
        )

    def describe(self, role: Role) -> str:
        return self.bindings[role].display_name

    async def _client_for(self, role: Role) -> "BaseChatModel":
        client = self._clients.get(role)
        if client is not None:
            return client

        async with self._init_lock:
            client = self._clients.get(role)
            if client is not None:
                return client

            binding = self.bindings[role]
            try:
                client = self.llm_factory(binding)
            except LLMProviderError as e:
                raise CapabilityUnavailableError(f"Backend for {role.value} ({binding.display_name}) unavailable: {e}") from e
            if client is None:
                raise CapabilityUnavailableError(f"Backend for {role.value} ({binding.display_name}) unavailable")

            logger.info(f"Initialized backend {binding.display_name} for role {role.value}")
            self._clients[role] = client
            return client

    async def invoke(self, role: Role, messages: Sequence[ChatMessage]) -> str:
        """Send ``messages`` to the backend bound to ``role`` and return its text."""
        client = await self._client_for(role)
        call = client.ainvoke(_to_browser_use_messages(messages))
        try:
            response = await asyncio.wait_for(call, timeout=self.timeout)
        except TimeoutError as e:
            raise StageTimeoutError(role.value, self.timeout or 0) from e

        completion = response.completion
        return completion if isinstance(completion, str) else str(completion or "")


# Process-wide invoker for CLI use
_default_invoker: ModelInvoker | None = None


def get_default_invoker() -> ModelInvoker:
    """Get the singleton ModelInvoker built from global settings."""
    global _default_invoker
    if _default_invoker is None:
        from .config import settings

        _default_invoker = ModelInvoker.from_settings(settings)
    return _default_invoker
