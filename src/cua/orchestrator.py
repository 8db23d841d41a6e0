"""
orchestrator.py — The per-turn control loop.

One user turn drives the active provider session through zero or more
delegation rounds:

    IDLE -> AWAITING_PROVIDER_TURN
         -> (TOOL_CALL_PENDING -> AWAITING_DELEGATION -> AWAITING_PROVIDER_TURN)*
         -> COMPLETED | FAILED

Text deltas are forwarded as they arrive.  The transcript is saved only
when a turn completes; a failed turn is rolled back and never persisted.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum

from . import mentions
from .attachments import Attachment
from .delegation import DelegationExecutor
from .errors import (
    ConfigurationError,
    DelegationError,
    DelegationLimitExceeded,
    PersistenceError,
    ProviderError,
)
from .events import EventCallback, EventKind, EventLog
from .history import HistoryStore, has_user_turn, session_key
from .personas import REGISTRY, Persona, PersonaRegistry
from .providers import (
    INVOKE_AGENT,
    Provider,
    ProviderSession,
    TextDelta,
    ToolCallRequested,
    UserTurn,
)

DeltaCallback = Callable[[str], None]


class TurnState(Enum):
    IDLE = "idle"
    AWAITING_PROVIDER_TURN = "awaiting_provider_turn"
    TOOL_CALL_PENDING = "tool_call_pending"
    AWAITING_DELEGATION = "awaiting_delegation"
    COMPLETED = "completed"
    FAILED = "failed"


_IN_FLIGHT = {
    TurnState.AWAITING_PROVIDER_TURN,
    TurnState.TOOL_CALL_PENDING,
    TurnState.AWAITING_DELEGATION,
}


@dataclass
class ActiveSession:
    """The conversation currently receiving turns."""

    provider: Provider
    persona: Persona
    session: ProviderSession
    executor: DelegationExecutor
    key: str
    restored: bool = False


@dataclass
class TurnResult:
    """Outcome of one submission."""

    state: TurnState
    text: str = ""
    error: str | None = None
    rounds: int = 0
    saved: bool = False
    warning: str | None = None
    delegated_to: str | None = None

    @property
    def ok(self) -> bool:
        return self.state is TurnState.COMPLETED


class TurnOrchestrator:
    """Owns the active session and runs user turns against it."""

    def __init__(
        self,
        providers: Iterable[Provider],
        store: HistoryStore,
        registry: PersonaRegistry = REGISTRY,
        on_delta: DeltaCallback | None = None,
        on_event: EventCallback | None = None,
        max_delegation_rounds: int | None = None,
    ):
        self.providers: dict[str, Provider] = {p.provider_id: p for p in providers}
        if not self.providers:
            raise ConfigurationError("No LLM provider is configured.")
        self.store = store
        self.registry = registry
        self.on_delta = on_delta
        self.events = EventLog(on_event)
        self.max_delegation_rounds = max_delegation_rounds
        self.active: ActiveSession | None = None
        self.state = TurnState.IDLE
        self._delegating = False

    @property
    def busy(self) -> bool:
        return self.state in _IN_FLIGHT or self._delegating

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def switch_session(self, provider_id: str, persona_key: str) -> ActiveSession:
        """Activate (provider, persona), restoring stored history if any."""
        self._ensure_idle()

        provider = self.providers.get(provider_id)
        if provider is None:
            raise ConfigurationError(
                f"Provider '{provider_id}' is not available "
                f"(configured: {', '.join(self.providers)})"
            )
        persona = self.registry.get(persona_key)
        key = session_key(provider.provider_id, persona.key)

        self.events.emit(
            f"Initializing session for {persona.name} via {provider.display_name}."
        )

        try:
            history = await self.store.load(key)
        except PersistenceError as e:
            self.events.emit(f"Could not read stored history: {e}", EventKind.ERROR)
            history = None

        system_prompt = self.registry.system_prompt(persona.key)
        restored = has_user_turn(history)
        if restored:
            session = provider.create_session(persona, system_prompt, history)
            self.events.emit("Session history restored.")
        else:
            session = provider.create_session(persona, system_prompt)
            self.events.emit("No history found. New session created.")

        self.active = ActiveSession(
            provider=provider,
            persona=persona,
            session=session,
            executor=DelegationExecutor(self.registry, provider, self.events),
            key=key,
            restored=restored,
        )
        self.state = TurnState.IDLE
        return self.active

    async def clear_history(self) -> ActiveSession:
        """Delete the active session's stored transcript and start afresh."""
        active = self._require_active()
        self._ensure_idle()
        await self.store.clear(active.key)
        fresh = await self.switch_session(active.provider.provider_id, active.persona.key)
        self.events.emit("Chat history and logs cleared by user.")
        return fresh

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def submit(
        self, raw_text: str, attachment: Attachment | None = None
    ) -> TurnResult | None:
        """Entry point for user input: handles ``@mentions``, then runs a turn."""
        active = self._require_active()
        text = (raw_text or "").strip()
        if not text and attachment is None:
            return None

        route = mentions.resolve(
            text,
            self.registry,
            active.persona.key,
            has_attachment=attachment is not None,
        )
        if route.kind is mentions.RouteKind.DELEGATE:
            return await self._delegate_once(active, text, route)

        return await self.run_turn(route.text, attachment)

    async def run_turn(
        self, text: str, attachment: Attachment | None = None
    ) -> TurnResult | None:
        """Run one full turn on the active session; ``None`` for empty input."""
        active = self._require_active()
        turn = UserTurn(text=text, attachment=attachment)
        if not turn:
            return None
        self._ensure_idle()

        persona = active.persona
        tools = active.provider.tool_specs(self._delegatable_names(persona))

        self.events.emit(f'User command received: "{text}"', EventKind.USER)
        self.events.emit(f"Task routed to [{persona.name}]. Processing...")

        rounds = 0
        round_text = ""
        try:
            self.state = TurnState.AWAITING_PROVIDER_TURN
            stream = active.session.send_turn(turn, tools)

            while True:
                parts: list[str] = []
                call: ToolCallRequested | None = None
                async for event in stream:
                    if isinstance(event, TextDelta):
                        parts.append(event.text)
                        if self.on_delta is not None:
                            self.on_delta(event.text)
                    elif isinstance(event, ToolCallRequested) and call is None:
                        call = event
                round_text = "".join(parts)

                if call is None:
                    break

                self.state = TurnState.TOOL_CALL_PENDING
                if call.name != INVOKE_AGENT:
                    raise ProviderError(f"Unsupported tool call: {call.name}")
                rounds += 1
                limit = self.max_delegation_rounds
                if limit is not None and rounds > limit:
                    raise DelegationLimitExceeded(limit)

                self.events.emit(
                    f"[{persona.name}] is invoking [{call.agent_name}] "
                    f'for task: "{call.prompt[:50]}..."',
                    EventKind.INVOKE,
                )
                self.state = TurnState.AWAITING_DELEGATION
                result = await active.executor.invoke(call.agent_name, call.prompt)
                if result.ok:
                    self.events.emit(
                        f"[{persona.name}] received response from "
                        f"[{result.agent_name}]. Continuing main task..."
                    )
                else:
                    # The error text is handed back to the model as the tool result.
                    self.events.emit(
                        f"[{persona.name}] received an error from "
                        f"[{result.agent_name}]. Continuing main task..."
                    )
                self.state = TurnState.AWAITING_PROVIDER_TURN
                stream = active.session.continue_with_tool_result(call, result.text)

        except (ProviderError, DelegationError) as e:
            return self._fail(active, e, rounds)
        except BaseException:
            self.state = TurnState.FAILED
            active.session.abort_turn()
            logging.warning("Turn on %s aborted after %d round(s)", active.key, rounds)
            raise

        self.state = TurnState.COMPLETED
        self.events.emit(
            f"[{persona.name}] generated final response. Task complete.",
            EventKind.COMPLETE,
        )

        outcome = TurnResult(state=TurnState.COMPLETED, text=round_text, rounds=rounds)
        try:
            await self.store.save(active.key, active.session.export_history())
            outcome.saved = True
        except PersistenceError as e:
            outcome.warning = str(e)
            self.events.emit(f"History was not saved: {e}", EventKind.ERROR)
        return outcome

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _delegate_once(
        self, active: ActiveSession, raw_text: str, route: mentions.MentionRoute
    ) -> TurnResult:
        """One-off ``@mention`` delegation; the active transcript is untouched."""
        self._ensure_idle()
        target = route.target
        self.events.emit(f'User command received: "{raw_text}"', EventKind.USER)
        self.events.emit(
            f"Delegation detected. Routing task from [{active.persona.name}] "
            f"to [{target.name}].",
            EventKind.INVOKE,
        )

        self._delegating = True
        try:
            result = await active.executor.invoke(target.name, route.text)
        finally:
            self._delegating = False

        if result.error is not None:
            return TurnResult(
                state=TurnState.FAILED,
                text=result.text,
                error=result.error.message,
                delegated_to=target.name,
            )

        self.events.emit(
            f"[{target.name}] generated response. Task complete.", EventKind.COMPLETE
        )
        return TurnResult(
            state=TurnState.COMPLETED, text=result.text, delegated_to=target.name
        )

    def _fail(self, active: ActiveSession, error: Exception, rounds: int) -> TurnResult:
        self.state = TurnState.FAILED
        active.session.abort_turn()
        message = getattr(error, "message", None) or str(error)
        self.events.emit(f"SYSTEM ERROR: {message}", EventKind.ERROR)
        logging.debug("Turn on %s failed after %d round(s)", active.key, rounds)
        return TurnResult(state=TurnState.FAILED, error=message, rounds=rounds)

    def _delegatable_names(self, persona: Persona) -> list[str]:
        if persona.key == self.registry.base_key:
            return []
        return [p.name for p in self.registry.delegatable(persona.key)]

    def _require_active(self) -> ActiveSession:
        if self.active is None:
            raise RuntimeError("No active session; call switch_session() first")
        return self.active

    def _ensure_idle(self) -> None:
        if self.busy:
            raise RuntimeError("A turn is already in progress")
