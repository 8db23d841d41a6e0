"""Shared fixtures: a scripted provider that replays canned turn events."""

from __future__ import annotations

from typing import Any

import pytest

from cua.errors import ProviderError
from cua.history import HistoryStore, MemoryRecordStore
from cua.personas import Persona
from cua.providers import (
    Provider,
    ProviderSession,
    TextDelta,
    ToolCallRequested,
    UserTurn,
)

# ---------------------------------------------------------------------------
# Scripted provider
# ---------------------------------------------------------------------------


class ScriptedSession(ProviderSession):
    """Replays one scripted round per send/continue call.

    A round is a list of ``TextDelta``/``ToolCallRequested`` events; an
    exception instance in the list is raised at that point of the stream.
    """

    def __init__(
        self,
        provider: ScriptedProvider,
        persona: Persona,
        system_prompt: str,
        history: list[dict] | None,
    ):
        super().__init__(persona, system_prompt)
        self.provider = provider
        self.history = (
            list(history)
            if history
            else [{"role": "system", "content": system_prompt}]
        )
        self.sent_turns: list[UserTurn] = []
        self.tool_results: list[tuple[ToolCallRequested, str]] = []
        self.tools_seen: list[Any] = []
        self._turn_start = len(self.history)

    async def send_turn(self, turn, tools=None):
        self._turn_start = len(self.history)
        self.sent_turns.append(turn)
        self.tools_seen.append(tools)
        self.history.append({"role": "user", "content": turn.text})
        async for event in self._play():
            yield event

    async def continue_with_tool_result(self, call, result):
        self.tool_results.append((call, result))
        self.history.append(
            {"role": "tool", "tool_call_id": call.call_id, "content": result}
        )
        async for event in self._play():
            yield event

    def export_history(self):
        return list(self.history)

    def abort_turn(self):
        del self.history[self._turn_start :]

    async def _play(self):
        text = []
        for item in self.provider.script.pop(0):
            if isinstance(item, Exception):
                raise item
            if isinstance(item, TextDelta):
                text.append(item.text)
            yield item
        self.history.append({"role": "assistant", "content": "".join(text)})


class ScriptedProvider(Provider):
    """Provider double; ``replies`` maps system prompts to one-shot answers."""

    display_name = "Scripted"

    def __init__(self, provider_id: str = "scripted", script=None, replies=None):
        self.provider_id = provider_id
        self.script: list[list[Any]] = list(script or [])
        self.replies: dict[str, str] = dict(replies or {})
        self.generate_error: str | None = None
        self.generate_calls: list[tuple[str, str]] = []
        self.sessions: list[ScriptedSession] = []

    def create_session(self, persona, system_prompt, history=None):
        session = ScriptedSession(self, persona, system_prompt, history)
        self.sessions.append(session)
        return session

    def tool_specs(self, agent_names):
        return list(agent_names) or None

    async def generate(self, system_prompt, prompt):
        self.generate_calls.append((system_prompt, prompt))
        if self.generate_error is not None:
            raise ProviderError(self.generate_error)
        return self.replies.get(system_prompt, f"reply to: {prompt}")


def tool_call(agent: str, prompt: str, call_id: str = "call_1") -> ToolCallRequested:
    return ToolCallRequested(
        name="invokeAgent",
        args={"agentName": agent, "prompt": prompt},
        call_id=call_id,
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def records() -> MemoryRecordStore:
    return MemoryRecordStore()


@pytest.fixture()
def store(records: MemoryRecordStore) -> HistoryStore:
    return HistoryStore(records)


@pytest.fixture()
def provider() -> ScriptedProvider:
    return ScriptedProvider()
