"""
base.py — Provider contract shared by the Gemini and OpenAI bindings.

A ``Provider`` owns the SDK client; a ``ProviderSession`` owns one live
conversation and streams ``TurnEvent`` values for each round.  Both
bindings normalise tool calls into ``ToolCallRequested`` before the
orchestrator sees them.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from ..attachments import Attachment
from ..personas import Persona

#: Name of the only function exposed to providers.
INVOKE_AGENT = "invokeAgent"

INVOKE_AGENT_DESCRIPTION = (
    "Invokes another AI agent to perform a specialized task or get "
    "information. Use this to delegate tasks to agents with specific expertise."
)
AGENT_NAME_DESCRIPTION = (
    "The name of the agent to invoke. Choose from the available specialists."
)
PROMPT_DESCRIPTION = "The detailed prompt or question to send to the invoked agent."

JsonDict = dict[str, Any]


@dataclass(frozen=True)
class TextDelta:
    """A fragment of the answer, to be appended in arrival order."""

    text: str


@dataclass(frozen=True)
class ToolCallRequested:
    """The provider asked to run ``invokeAgent``."""

    name: str
    args: JsonDict = field(default_factory=dict)
    call_id: str = ""

    @property
    def agent_name(self) -> str:
        return str(self.args.get("agentName", ""))

    @property
    def prompt(self) -> str:
        return str(self.args.get("prompt", ""))


TurnEvent = TextDelta | ToolCallRequested


@dataclass(frozen=True)
class UserTurn:
    """Text and/or at most one attachment submitted by the user."""

    text: str = ""
    attachment: Attachment | None = None

    def __bool__(self) -> bool:
        return bool(self.text) or self.attachment is not None


class ProviderSession(ABC):
    """One live multi-turn conversation with a provider."""

    def __init__(self, persona: Persona, system_prompt: str):
        self.persona = persona
        self.system_prompt = system_prompt

    @abstractmethod
    def send_turn(self, turn: UserTurn, tools: Any = None) -> AsyncIterator[TurnEvent]:
        """Send the user's turn and stream the provider's reply."""

    @abstractmethod
    def continue_with_tool_result(
        self, call: ToolCallRequested, result: str
    ) -> AsyncIterator[TurnEvent]:
        """Hand a delegation result back and stream the next round."""

    @abstractmethod
    def export_history(self) -> list[JsonDict]:
        """The full transcript in the provider's native, JSON-ready shape."""

    @abstractmethod
    def abort_turn(self) -> None:
        """Drop whatever the current turn added to the conversation."""


class Provider(ABC):
    """An LLM backend: creates sessions and answers one-shot prompts."""

    provider_id: str = ""
    display_name: str = ""

    @abstractmethod
    def create_session(
        self,
        persona: Persona,
        system_prompt: str,
        history: list[JsonDict] | None = None,
    ) -> ProviderSession:
        """Start a conversation, optionally seeded with a stored transcript."""

    @abstractmethod
    def tool_specs(self, agent_names: list[str]) -> Any:
        """Provider-native ``invokeAgent`` declaration, or ``None``."""

    @abstractmethod
    async def generate(self, system_prompt: str, prompt: str) -> str:
        """Single stateless, non-streaming request."""


def invoke_agent_parameters(agent_names: list[str]) -> JsonDict:
    """JSON-schema parameters of ``invokeAgent`` restricted to *agent_names*."""
    return {
        "type": "object",
        "properties": {
            "agentName": {
                "type": "string",
                "description": AGENT_NAME_DESCRIPTION,
                "enum": list(agent_names),
            },
            "prompt": {
                "type": "string",
                "description": PROMPT_DESCRIPTION,
            },
        },
        "required": ["agentName", "prompt"],
    }
