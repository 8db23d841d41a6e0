"""
openai_chat.py — OpenAI binding (``role``/``content`` chat completions).

The transcript is a plain list of message dicts owned by the session,
starting with the ``system`` message.  Streamed tool calls arrive as
fragments keyed by ``index``; they are reassembled per index and only
parsed as JSON once the stream is over.
"""

import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from openai import AsyncOpenAI

from ..errors import ProviderError
from ..personas import Persona
from .base import (
    INVOKE_AGENT,
    INVOKE_AGENT_DESCRIPTION,
    JsonDict,
    Provider,
    ProviderSession,
    TextDelta,
    ToolCallRequested,
    TurnEvent,
    UserTurn,
    invoke_agent_parameters,
)

DEFAULT_MODEL = "gpt-4o-mini"


def user_content(turn: UserTurn) -> str | list[JsonDict]:
    """Build the ``content`` of a user message: a plain string when text-only."""
    parts: list[JsonDict] = []
    if turn.text:
        parts.append({"type": "text", "text": turn.text})

    attachment = turn.attachment
    if attachment is not None:
        if attachment.mime_type.startswith("image/"):
            parts.append(
                {"type": "image_url", "image_url": {"url": attachment.data_url()}}
            )
        else:
            parts.append(
                {
                    "type": "file",
                    "file": {
                        "filename": attachment.name or "attachment",
                        "file_data": attachment.data_url(),
                    },
                }
            )

    if len(parts) == 1 and parts[0]["type"] == "text":
        return turn.text
    return parts


@dataclass
class _ToolCallBuilder:
    """Accumulates the streamed fragments of one tool call."""

    index: int
    call_id: str = ""
    name: str = ""
    fragments: list[str] = field(default_factory=list)

    def add(self, fragment: Any) -> None:
        if fragment.id:
            self.call_id = fragment.id
        function = fragment.function
        if function is None:
            return
        if function.name:
            self.name = function.name
        if function.arguments:
            self.fragments.append(function.arguments)

    @property
    def arguments(self) -> str:
        return "".join(self.fragments)

    def finish(self) -> ToolCallRequested:
        raw = self.arguments or "{}"
        try:
            args = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ProviderError(
                f"Malformed arguments for tool call '{self.name}': {e}"
            ) from e
        if not isinstance(args, dict):
            raise ProviderError(
                f"Tool call '{self.name}' arguments are not an object: {raw}"
            )
        return ToolCallRequested(
            name=self.name,
            args=args,
            call_id=self.call_id or f"call_{self.index}",
        )

    def as_message(self, call_id: str) -> JsonDict:
        return {
            "id": call_id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments or "{}"},
        }


class OpenAISession(ProviderSession):
    """A live chat-completions conversation for one persona."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model_name: str,
        persona: Persona,
        system_prompt: str,
        history: list[JsonDict] | None = None,
    ):
        super().__init__(persona, system_prompt)
        self.client = client
        self.model_name = model_name
        if history:
            self.messages: list[JsonDict] = list(history)
        else:
            self.messages = [{"role": "system", "content": system_prompt}]
        self._turn_start = len(self.messages)
        self._tools: list[JsonDict] | None = None

    # ------------------------------------------------------------------
    # Public
    # ------------------------------------------------------------------

    async def send_turn(
        self, turn: UserTurn, tools: list[JsonDict] | None = None
    ) -> AsyncIterator[TurnEvent]:
        self._turn_start = len(self.messages)
        self._tools = tools
        self.messages.append({"role": "user", "content": user_content(turn)})
        async for event in self._stream():
            yield event

    async def continue_with_tool_result(
        self, call: ToolCallRequested, result: str
    ) -> AsyncIterator[TurnEvent]:
        self.messages.append(
            {"role": "tool", "tool_call_id": call.call_id, "content": result}
        )
        async for event in self._stream():
            yield event

    def export_history(self) -> list[JsonDict]:
        return list(self.messages)

    def abort_turn(self) -> None:
        del self.messages[self._turn_start :]

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _stream(self) -> AsyncIterator[TurnEvent]:
        text_parts: list[str] = []
        builders: dict[int, _ToolCallBuilder] = {}

        request: JsonDict = {
            "model": self.model_name,
            "messages": self.messages,
            "stream": True,
        }
        if self._tools:
            request["tools"] = self._tools
            request["tool_choice"] = "auto"

        try:
            stream = await self.client.chat.completions.create(**request)
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                if delta.content:
                    text_parts.append(delta.content)
                    yield TextDelta(delta.content)
                for fragment in delta.tool_calls or []:
                    builder = builders.get(fragment.index)
                    if builder is None:
                        builder = builders[fragment.index] = _ToolCallBuilder(
                            index=fragment.index
                        )
                    builder.add(fragment)
        except Exception as e:
            logging.error("OpenAI streaming error: %s", e)
            raise ProviderError(str(e)) from e

        text = "".join(text_parts)
        if not builders:
            self.messages.append({"role": "assistant", "content": text})
            return

        if len(builders) > 1:
            logging.warning(
                "OpenAI requested %d tool calls; only the first is honored",
                len(builders),
            )

        first = builders[min(builders)]
        call = first.finish()
        self.messages.append(
            {
                "role": "assistant",
                "content": text or None,
                "tool_calls": [first.as_message(call.call_id)],
            }
        )
        yield call


class OpenAIProvider(Provider):
    """OpenAI chat completions through the ``openai`` SDK."""

    provider_id = "openai"
    display_name = "OpenAI"

    def __init__(
        self,
        api_key: str | None = None,
        model_name: str = DEFAULT_MODEL,
        timeout: float | None = None,
        client: Any = None,
    ):
        if client is None:
            kwargs: JsonDict = {"api_key": api_key}
            if timeout:
                kwargs["timeout"] = timeout
            client = AsyncOpenAI(**kwargs)
        self.client = client
        self.model_name = model_name

    def create_session(
        self,
        persona: Persona,
        system_prompt: str,
        history: list[JsonDict] | None = None,
    ) -> OpenAISession:
        return OpenAISession(
            self.client, self.model_name, persona, system_prompt, history
        )

    def tool_specs(self, agent_names: list[str]) -> list[JsonDict] | None:
        if not agent_names:
            return None
        return [
            {
                "type": "function",
                "function": {
                    "name": INVOKE_AGENT,
                    "description": INVOKE_AGENT_DESCRIPTION,
                    "parameters": invoke_agent_parameters(agent_names),
                },
            }
        ]

    async def generate(self, system_prompt: str, prompt: str) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model_name,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": prompt},
                ],
            )
        except Exception as e:
            logging.error("OpenAI generate error: %s", e)
            raise ProviderError(str(e)) from e
        return response.choices[0].message.content or ""
