"""
errors.py — Exception taxonomy for the orchestration core.

Only ``ConfigurationError`` and ``UnknownPersona`` are fatal; everything
else ends at most the current turn.
"""

from enum import Enum


class CUAError(Exception):
    """Base class for all orchestrator errors."""


class ConfigurationError(CUAError):
    """No usable provider credential, or an unknown provider was selected."""


class UnknownPersona(CUAError, KeyError):
    """A persona key was not found in the registry."""

    def __init__(self, key: str):
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"Unknown persona: {self.key!r}"


class ProviderError(CUAError):
    """A streaming or non-streaming provider call failed."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class PersistenceError(CUAError):
    """Reading or writing a stored transcript failed."""


class DelegationErrorKind(Enum):
    UNKNOWN_AGENT = "unknown_agent"
    PROVIDER_FAILURE = "provider_failure"
    ROUND_LIMIT = "round_limit"


class DelegationError(CUAError):
    """An agent-to-agent delegation could not produce an answer."""

    def __init__(self, kind: DelegationErrorKind, agent_name: str, message: str):
        super().__init__(message)
        self.kind = kind
        self.agent_name = agent_name
        self.message = message


class DelegationLimitExceeded(DelegationError):
    """A turn requested more delegation rounds than allowed."""

    def __init__(self, limit: int):
        super().__init__(
            DelegationErrorKind.ROUND_LIMIT,
            "",
            f"Delegation limit of {limit} round(s) exceeded.",
        )
        self.limit = limit
