"""
gemini_chat.py — Gemini binding (turn-based ``role``/``parts`` history).

Uses the async surface of the ``google-genai`` SDK (``client.aio``).  The
chat object records history itself; function calls are collected while a
round streams and normalised once it ends.  Stored transcripts are the
SDK's ``Content`` objects dumped with camelCase aliases, so inline bytes
travel as base64.
"""

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from google import genai
from google.genai import types

from ..errors import ProviderError
from ..personas import Persona
from .base import (
    AGENT_NAME_DESCRIPTION,
    INVOKE_AGENT,
    INVOKE_AGENT_DESCRIPTION,
    PROMPT_DESCRIPTION,
    JsonDict,
    Provider,
    ProviderSession,
    TextDelta,
    ToolCallRequested,
    TurnEvent,
    UserTurn,
)

DEFAULT_MODEL = "gemini-2.5-flash"


def content_to_record(content: types.Content) -> JsonDict:
    """Dump a ``Content`` into its JSON-ready, camelCase form."""
    return content.model_dump(mode="json", by_alias=True, exclude_none=True)


def content_from_record(record: JsonDict) -> types.Content:
    """Rebuild a ``Content`` from a stored record (base64 bytes decoded)."""
    return types.Content.model_validate_json(json.dumps(record))


def _chunk_text(chunk: types.GenerateContentResponse) -> str:
    """Concatenate the visible text parts of one streamed chunk."""
    if not chunk.candidates:
        return ""
    content = chunk.candidates[0].content
    if content is None or not content.parts:
        return ""
    return "".join(
        part.text for part in content.parts if part.text and not part.thought
    )


class GeminiSession(ProviderSession):
    """A live Gemini chat for one persona."""

    def __init__(
        self,
        client: genai.Client,
        model_name: str,
        persona: Persona,
        system_prompt: str,
        history: list[JsonDict] | None = None,
    ):
        super().__init__(persona, system_prompt)
        self.client = client
        self.model_name = model_name
        self._tools: list[types.Tool] | None = None
        restored = [content_from_record(m) for m in history or []]
        self._chat = self._new_chat(restored)
        self._turn_start = len(restored)

    # ------------------------------------------------------------------
    # Public
    # ------------------------------------------------------------------

    async def send_turn(
        self, turn: UserTurn, tools: list[types.Tool] | None = None
    ) -> AsyncIterator[TurnEvent]:
        self._turn_start = len(self._chat.get_history())
        self._tools = tools

        parts: list[types.Part] = []
        if turn.text:
            parts.append(types.Part.from_text(text=turn.text))
        if turn.attachment is not None:
            parts.append(
                types.Part.from_bytes(
                    data=turn.attachment.raw_bytes(),
                    mime_type=turn.attachment.mime_type,
                )
            )

        async for event in self._stream(parts):
            yield event

    async def continue_with_tool_result(
        self, call: ToolCallRequested, result: str
    ) -> AsyncIterator[TurnEvent]:
        part = types.Part.from_function_response(
            name=call.name, response={"content": result}
        )
        async for event in self._stream([part]):
            yield event

    def export_history(self) -> list[JsonDict]:
        return [content_to_record(c) for c in self._chat.get_history()]

    def abort_turn(self) -> None:
        kept = list(self._chat.get_history())[: self._turn_start]
        self._chat = self._new_chat(kept)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _config(self, tools: list[types.Tool] | None = None) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            system_instruction=self.system_prompt,
            tools=tools,
        )

    def _new_chat(self, history: list[types.Content]):
        return self.client.aio.chats.create(
            model=self.model_name,
            config=self._config(),
            history=history,
        )

    async def _stream(self, message: list[types.Part]) -> AsyncIterator[TurnEvent]:
        round_start = len(self._chat.get_history())
        function_calls: list[types.FunctionCall] = []

        try:
            stream = await self._chat.send_message_stream(
                message, config=self._config(self._tools)
            )
            async for chunk in stream:
                text = _chunk_text(chunk)
                if text:
                    yield TextDelta(text)
                if chunk.function_calls:
                    function_calls.extend(chunk.function_calls)
        except Exception as e:
            logging.error("Gemini streaming error: %s", e)
            raise ProviderError(str(e)) from e

        if not function_calls:
            return

        if len(function_calls) > 1:
            logging.warning(
                "Gemini requested %d function calls; only the first is honored",
                len(function_calls),
            )
            self._keep_first_call(round_start)

        call = function_calls[0]
        yield ToolCallRequested(
            name=call.name or "",
            args=dict(call.args or {}),
            call_id=call.id or call.name or "",
        )

    def _keep_first_call(self, round_start: int) -> None:
        """Strip every function call after the first from this round's output."""
        history = list(self._chat.get_history())
        seen = False
        trimmed: list[types.Content] = []
        for content in history[round_start:]:
            if content.role != "model":
                trimmed.append(content)
                continue
            parts = []
            for part in content.parts or []:
                if part.function_call is not None:
                    if seen:
                        continue
                    seen = True
                parts.append(part)
            if parts:
                trimmed.append(types.Content(role=content.role, parts=parts))
        self._chat = self._new_chat(history[:round_start] + trimmed)


class GeminiProvider(Provider):
    """Google Gemini through the ``google-genai`` SDK."""

    provider_id = "gemini"
    display_name = "Google Gemini"

    def __init__(
        self,
        api_key: str | None = None,
        model_name: str = DEFAULT_MODEL,
        timeout: float | None = None,
        client: Any = None,
    ):
        if client is None:
            http_options = (
                types.HttpOptions(timeout=int(timeout * 1000)) if timeout else None
            )
            client = genai.Client(api_key=api_key, http_options=http_options)
        self.client = client
        self.model_name = model_name

    def create_session(
        self,
        persona: Persona,
        system_prompt: str,
        history: list[JsonDict] | None = None,
    ) -> GeminiSession:
        return GeminiSession(
            self.client, self.model_name, persona, system_prompt, history
        )

    def tool_specs(self, agent_names: list[str]) -> list[types.Tool] | None:
        if not agent_names:
            return None
        declaration = types.FunctionDeclaration(
            name=INVOKE_AGENT,
            description=INVOKE_AGENT_DESCRIPTION,
            parameters=types.Schema(
                type=types.Type.OBJECT,
                properties={
                    "agentName": types.Schema(
                        type=types.Type.STRING,
                        description=AGENT_NAME_DESCRIPTION,
                        enum=list(agent_names),
                    ),
                    "prompt": types.Schema(
                        type=types.Type.STRING,
                        description=PROMPT_DESCRIPTION,
                    ),
                },
                required=["agentName", "prompt"],
            ),
        )
        return [types.Tool(function_declarations=[declaration])]

    async def generate(self, system_prompt: str, prompt: str) -> str:
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model_name,
                contents=prompt,
                config=types.GenerateContentConfig(system_instruction=system_prompt),
            )
        except Exception as e:
            logging.error("Gemini generate error: %s", e)
            raise ProviderError(str(e)) from e
        return response.text or ""
