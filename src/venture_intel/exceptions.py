"""Custom exceptions for the venture-intel pipeline."""


class VentureIntelError(Exception):
    """Base exception for venture-intel errors."""

    pass


class ConfigurationError(VentureIntelError):
    """Raised when role bindings or settings are invalid."""

    pass


class LLMProviderError(VentureIntelError):
    """Raised when LLM provider configuration is invalid."""

    pass


class CapabilityUnavailableError(VentureIntelError):
    """Raised when the backend for a role cannot be obtained."""

    pass


class StageTimeoutError(VentureIntelError):
    """Raised when a single model call exceeds the configured timeout."""

    def __init__(self, role: str, timeout: float):
        super().__init__(f"Call to role '{role}' timed out after {timeout:g}s")
        self.role = role
        self.timeout = timeout


class StageOneFailure(VentureIntelError):
    """Raised when the context analysis call fails and the run is aborted."""

    pass
