"""Configuration management using Pydantic settings with optional file persistence."""

import json
import os
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Paths ---

APP_NAME = "venture-intel"


def get_config_dir() -> Path:
    """Get the configuration directory (e.g. ~/.config/venture-intel)."""
    if os.name == "nt":
        base = Path(os.environ.get("APPDATA", Path.home() / ".config")).expanduser()
    else:
        base = Path("~/.config").expanduser()

    return base / APP_NAME


CONFIG_FILE = get_config_dir() / "config.json"


def load_config_file(path: Path | None = None) -> dict[str, Any]:
    """Load settings from the JSON config file if it exists.

    An unreadable or malformed file is treated as empty so that a broken
    config file never prevents the CLI from starting.
    """
    path = path or CONFIG_FILE
    if not path.exists():
        return {}

    try:
        text = path.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        data = json.loads(text)
    except (OSError, json.JSONDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


def save_config_file(config_data: dict[str, Any], path: Path | None = None) -> Path:
    """Save settings to the JSON config file."""
    path = path or CONFIG_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config_data, indent=2), encoding="utf-8")
    return path


# Standard environment variable names for API keys
# For providers with multiple common env var names, use a list (first match wins)
STANDARD_ENV_VAR_NAMES: dict[str, str | list[str]] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "google": ["GEMINI_API_KEY", "GOOGLE_API_KEY"],  # GEMINI_API_KEY takes priority
    "azure_openai": "AZURE_OPENAI_API_KEY",
    "groq": "GROQ_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
}

# Providers that don't require an API key
NO_KEY_PROVIDERS = frozenset({"ollama"})

ProviderType = Literal[
    "openai",
    "anthropic",
    "google",
    "azure_openai",
    "groq",
    "deepseek",
    "ollama",
    "openrouter",
]

SolutionCategory = Literal["capital_driven", "human_expertise_driven", "technology_driven"]


class LLMSettings(BaseSettings):
    """Credentials and endpoints shared by every role."""

    model_config = SettingsConfigDict(env_prefix="VENTURE_LLM_")

    api_key: Optional[SecretStr] = Field(default=None, description="Generic API key override (highest priority)")
    base_url: Optional[str] = Field(default=None, description="Custom base URL for OpenAI-compatible APIs")

    # Azure OpenAI specific
    azure_endpoint: Optional[str] = Field(default=None, description="Azure OpenAI endpoint URL")
    azure_api_version: Optional[str] = Field(default="2024-02-01", description="Azure OpenAI API version")

    def get_api_key_for_provider(self, provider: str) -> Optional[str]:
        """Resolve API key with priority: generic > standard > prefixed.

        Priority order:
        1. VENTURE_LLM_API_KEY (generic override, applies to any provider)
        2. <PROVIDER>_API_KEY (standard name, e.g., OPENAI_API_KEY, GEMINI_API_KEY)
        3. VENTURE_LLM_<PROVIDER>_API_KEY

        Returns:
            The resolved API key or None if not found.
        """
        if self.api_key:
            return self.api_key.get_secret_value()

        standard_vars = STANDARD_ENV_VAR_NAMES.get(provider)
        if standard_vars:
            if isinstance(standard_vars, str):
                standard_vars = [standard_vars]
            for var_name in standard_vars:
                key = os.environ.get(var_name)
                if key:
                    return key

        return os.environ.get(f"VENTURE_LLM_{provider.upper()}_API_KEY")

    @staticmethod
    def requires_api_key(provider: str) -> bool:
        """Check if the given provider requires an API key."""
        return provider not in NO_KEY_PROVIDERS


class RoleSettings(BaseSettings):
    """Provider and model bound to each pipeline role."""

    model_config = SettingsConfigDict(env_prefix="VENTURE_ROLES_")

    context_analyzer_provider: ProviderType = Field(default="openai")
    context_analyzer_model: str = Field(default="gpt-4.1")
    research_engine_provider: ProviderType = Field(default="openrouter")
    research_engine_model: str = Field(default="perplexity/sonar-pro")
    comparator_provider: ProviderType = Field(default="google")
    comparator_model: str = Field(default="gemini-2.5-pro")
    solution_architect_provider: ProviderType = Field(default="openai")
    solution_architect_model: str = Field(default="gpt-5.1")

    def provider_for(self, role: str) -> str:
        return getattr(self, f"{role}_provider")

    def model_for(self, role: str) -> str:
        return getattr(self, f"{role}_model")


class PipelineSettings(BaseSettings):
    """Pipeline behavior configuration."""

    model_config = SettingsConfigDict(env_prefix="VENTURE_PIPELINE_")

    call_timeout: float = Field(default=180.0, ge=0, description="Per-call timeout in seconds (0 disables)")
    expected_categories: list[SolutionCategory] = Field(
        default_factory=lambda: ["capital_driven", "human_expertise_driven", "technology_driven"],
        description="Solution categories requested from the solution architect",
    )


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="VENTURE_LOG_")

    level: str = Field(default="INFO")
    json_output: bool = Field(default=False, description="Render log lines as JSON instead of console text")


class AppSettings(BaseSettings):
    """Root application settings.

    Priority: Environment Variables > Config File > Defaults
    """

    model_config = SettingsConfigDict(env_prefix="VENTURE_", extra="ignore")

    llm: LLMSettings = Field(default_factory=LLMSettings)
    roles: RoleSettings = Field(default_factory=RoleSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    def save(self, path: Path | None = None) -> Path:
        """Save current configuration to file (excluding secrets)."""
        return save_config_file(self.public_dump(), path)

    def public_dump(self) -> dict[str, Any]:
        """Dump settings as JSON-ready data with secrets removed."""
        data = self.model_dump(mode="json", exclude_none=True)
        data.get("llm", {}).pop("api_key", None)
        return data


def _load_settings() -> AppSettings:
    """Load settings with file config as base, env vars overlay."""
    file_data = load_config_file()
    return AppSettings(**file_data)


settings = _load_settings()
