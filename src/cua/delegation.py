"""
delegation.py — Runs one delegated prompt against another persona.

The call is stateless: the target persona answers with its own system
prompt and the given prompt as the only user turn.  Its stored transcript
is never read or written.
"""

from dataclasses import dataclass

from .errors import DelegationError, DelegationErrorKind, ProviderError
from .events import EventKind, EventLog
from .personas import PersonaRegistry
from .providers import Provider


@dataclass(frozen=True)
class DelegationResult:
    """Answer text, or the error that prevented one."""

    agent_name: str
    text: str
    error: DelegationError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class DelegationExecutor:
    """Invokes personas by name through the currently selected provider."""

    def __init__(
        self,
        registry: PersonaRegistry,
        provider: Provider,
        events: EventLog | None = None,
    ):
        self.registry = registry
        self.provider = provider
        self.events = events or EventLog()

    async def invoke(self, agent_name: str, prompt: str) -> DelegationResult:
        """Ask *agent_name* to answer *prompt*; never raises for call failures."""
        persona = self.registry.find_by_name(agent_name, case_insensitive=True)
        if persona is None:
            message = f"Error: Agent '{agent_name}' not found."
            self.events.emit(message, EventKind.ERROR)
            return DelegationResult(
                agent_name=agent_name,
                text=message,
                error=DelegationError(
                    DelegationErrorKind.UNKNOWN_AGENT, agent_name, message
                ),
            )

        self.events.emit(
            f"Executing call to [{persona.name}]. Awaiting response...",
            EventKind.INFO,
        )
        system_prompt = self.registry.system_prompt(persona.key)

        try:
            text = await self.provider.generate(system_prompt, prompt)
        except ProviderError as e:
            self.events.emit(
                f"Error during invocation of [{persona.name}]: {e.message}",
                EventKind.ERROR,
            )
            return DelegationResult(
                agent_name=persona.name,
                text=f"Error during invocation of {persona.name}: {e.message}",
                error=DelegationError(
                    DelegationErrorKind.PROVIDER_FAILURE, persona.name, e.message
                ),
            )

        self.events.emit(f"[{persona.name}] returned a response.", EventKind.SUCCESS)
        return DelegationResult(agent_name=persona.name, text=text)
