"""Tests for the Gemini binding, using a fake ``client.aio`` surface."""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from google.genai import types

from cua.attachments import Attachment
from cua.errors import ProviderError
from cua.personas import REGISTRY
from cua.providers import TextDelta, ToolCallRequested, UserTurn
from cua.providers.gemini_chat import (
    GeminiProvider,
    content_from_record,
    content_to_record,
)

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


def _text_chunk(text: str, thought: bool | None = None) -> types.GenerateContentResponse:
    part = types.Part(text=text, thought=thought)
    return types.GenerateContentResponse(
        candidates=[types.Candidate(content=types.Content(role="model", parts=[part]))]
    )


def _call_chunk(*calls: tuple[str, dict, str | None]) -> types.GenerateContentResponse:
    parts = [
        types.Part(function_call=types.FunctionCall(name=name, args=args, id=call_id))
        for name, args, call_id in calls
    ]
    return types.GenerateContentResponse(
        candidates=[types.Candidate(content=types.Content(role="model", parts=parts))]
    )


class FakeChat:
    """Mimics AsyncChat: history is recorded only after a complete stream."""

    def __init__(self, history, owner: FakeGenaiClient):
        self.history = list(history)
        self.owner = owner

    def get_history(self, curated: bool = False):
        return list(self.history)

    async def send_message_stream(self, message, config=None):
        self.owner.sent.append((message, config))
        chunks = self.owner.rounds.pop(0)
        if isinstance(chunks, Exception):
            raise chunks

        async def generator():
            outputs = []
            for chunk in chunks:
                if isinstance(chunk, Exception):
                    raise chunk
                outputs.append(chunk.candidates[0].content)
                yield chunk
            self.history.append(types.Content(role="user", parts=list(message)))
            self.history.extend(outputs)

        return generator()


class FakeChats:
    def __init__(self, owner: FakeGenaiClient):
        self.owner = owner

    def create(self, *, model, config=None, history=None):
        self.owner.created.append(
            {"model": model, "config": config, "history": list(history or [])}
        )
        return FakeChat(history or [], self.owner)


class FakeModels:
    def __init__(self, owner: FakeGenaiClient):
        self.owner = owner

    async def generate_content(self, *, model, contents, config=None):
        self.owner.generated.append(
            {"model": model, "contents": contents, "config": config}
        )
        if isinstance(self.owner.reply, Exception):
            raise self.owner.reply
        return SimpleNamespace(text=self.owner.reply)


class FakeGenaiClient:
    def __init__(self, rounds=None, reply="one-shot"):
        self.rounds = list(rounds or [])
        self.reply = reply
        self.sent: list = []
        self.created: list[dict] = []
        self.generated: list[dict] = []
        self.aio = SimpleNamespace(chats=FakeChats(self), models=FakeModels(self))


def _session(client: FakeGenaiClient, history=None):
    provider = GeminiProvider(client=client)
    persona = REGISTRY.get("Lyra")
    return provider, provider.create_session(
        persona, REGISTRY.system_prompt("Lyra"), history
    )


async def _collect(stream) -> list:
    return [event async for event in stream]


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestRecords:
    def test_inline_data_round_trip(self) -> None:
        record = {
            "role": "user",
            "parts": [
                {"text": "look"},
                {"inlineData": {"mimeType": "image/png", "data": "aGVsbG8gcG5n"}},
            ],
        }
        content = content_from_record(record)
        assert content.parts[1].inline_data.data == b"hello png"
        assert content_to_record(content) == record

    def test_function_call_shape(self) -> None:
        content = types.Content(
            role="model",
            parts=[
                types.Part(
                    function_call=types.FunctionCall(
                        name="invokeAgent", args={"agentName": "Kara", "prompt": "x"}
                    )
                )
            ],
        )
        assert content_to_record(content) == {
            "role": "model",
            "parts": [
                {"functionCall": {"name": "invokeAgent", "args": {"agentName": "Kara", "prompt": "x"}}}
            ],
        }


class TestSession:
    async def test_system_prompt_is_configuration(self) -> None:
        client = FakeGenaiClient()
        _, session = _session(client)
        config = client.created[0]["config"]
        assert config.system_instruction == REGISTRY.system_prompt("Lyra")
        assert session.export_history() == []

    async def test_prior_transcript_seeds_chat(self) -> None:
        prior = [
            {"role": "user", "parts": [{"text": "hi"}]},
            {"role": "model", "parts": [{"text": "hello"}]},
        ]
        client = FakeGenaiClient()
        _, session = _session(client, prior)
        assert [c.role for c in client.created[0]["history"]] == ["user", "model"]
        assert session.export_history() == prior

    async def test_streams_text_in_order(self) -> None:
        client = FakeGenaiClient(
            [[_text_chunk("Hel"), _text_chunk("lo, "), _text_chunk("world")]]
        )
        _, session = _session(client)

        events = await _collect(session.send_turn(UserTurn(text="hi")))

        assert events == [TextDelta("Hel"), TextDelta("lo, "), TextDelta("world")]
        history = session.export_history()
        assert history[0] == {"role": "user", "parts": [{"text": "hi"}]}
        assert "".join(p["text"] for m in history[1:] for p in m["parts"]) == "Hello, world"

    async def test_thought_parts_are_not_streamed(self) -> None:
        client = FakeGenaiClient([[_text_chunk("pondering", thought=True), _text_chunk("Answer")]])
        _, session = _session(client)
        events = await _collect(session.send_turn(UserTurn(text="q")))
        assert events == [TextDelta("Answer")]

    async def test_attachment_becomes_inline_part(self) -> None:
        client = FakeGenaiClient([[_text_chunk("A cat.")]])
        _, session = _session(client)
        att = Attachment.from_bytes(b"img", "image/png")

        await _collect(session.send_turn(UserTurn(text="what?", attachment=att)))

        message, _ = client.sent[0]
        assert message[0].text == "what?"
        assert message[1].inline_data.mime_type == "image/png"
        assert message[1].inline_data.data == b"img"

    async def test_tools_are_sent_with_system_prompt(self) -> None:
        client = FakeGenaiClient([[_text_chunk("ok")]])
        provider, session = _session(client)
        tools = provider.tool_specs(["Kara"])

        await _collect(session.send_turn(UserTurn(text="hi"), tools))

        _, config = client.sent[0]
        assert config.tools == tools
        assert config.system_instruction == REGISTRY.system_prompt("Lyra")

    async def test_function_call_round_trip(self) -> None:
        client = FakeGenaiClient(
            [
                [_text_chunk("Asking Kara."), _call_chunk(("invokeAgent", {"agentName": "Kara", "prompt": "audit"}, "fc-1"))],
                [_text_chunk("Kara says fine.")],
            ]
        )
        _, session = _session(client)

        events = await _collect(session.send_turn(UserTurn(text="check")))
        assert events == [
            TextDelta("Asking Kara."),
            ToolCallRequested(
                name="invokeAgent",
                args={"agentName": "Kara", "prompt": "audit"},
                call_id="fc-1",
            ),
        ]

        events = await _collect(session.continue_with_tool_result(events[1], "All good."))
        assert events == [TextDelta("Kara says fine.")]

        message, _ = client.sent[1]
        response = message[0].function_response
        assert response.name == "invokeAgent"
        assert response.response == {"content": "All good."}

        history = session.export_history()
        assert history[-2]["parts"][0]["functionResponse"]["response"] == {"content": "All good."}

    async def test_only_first_function_call_is_honored(self) -> None:
        client = FakeGenaiClient(
            [
                [
                    _call_chunk(
                        ("invokeAgent", {"agentName": "Kara", "prompt": "a"}, None),
                        ("invokeAgent", {"agentName": "Dan", "prompt": "b"}, None),
                    )
                ]
            ]
        )
        _, session = _session(client)

        events = await _collect(session.send_turn(UserTurn(text="go")))

        assert len(events) == 1
        assert events[0].agent_name == "Kara"
        assert events[0].call_id == "invokeAgent"
        calls = [
            p for m in session.export_history() for p in m["parts"] if "functionCall" in p
        ]
        assert len(calls) == 1

    async def test_failure_and_abort_restore_previous_history(self) -> None:
        client = FakeGenaiClient(
            [
                [_call_chunk(("invokeAgent", {"agentName": "Kara", "prompt": "a"}, None))],
                RuntimeError("503 unavailable"),
                [_text_chunk("fresh")],
            ]
        )
        _, session = _session(client, [{"role": "user", "parts": [{"text": "earlier"}]}])
        before = session.export_history()

        events = await _collect(session.send_turn(UserTurn(text="go")))
        with pytest.raises(ProviderError, match="503"):
            await _collect(session.continue_with_tool_result(events[0], "x"))
        session.abort_turn()

        assert session.export_history() == before
        events = await _collect(session.send_turn(UserTurn(text="retry")))
        assert events == [TextDelta("fresh")]


class TestProvider:
    def test_tool_specs(self) -> None:
        provider = GeminiProvider(client=FakeGenaiClient())
        (tool,) = provider.tool_specs(["Kara", "Dan"])
        (declaration,) = tool.function_declarations
        assert declaration.name == "invokeAgent"
        assert declaration.parameters.properties["agentName"].enum == ["Kara", "Dan"]
        assert declaration.parameters.required == ["agentName", "prompt"]

    def test_no_tools_without_agents(self) -> None:
        provider = GeminiProvider(client=FakeGenaiClient())
        assert provider.tool_specs([]) is None

    async def test_generate(self) -> None:
        client = FakeGenaiClient(reply="Kara here.")
        provider = GeminiProvider(client=client)

        assert await provider.generate("You are Kara.", "status?") == "Kara here."
        call = client.generated[0]
        assert call["contents"] == "status?"
        assert call["config"].system_instruction == "You are Kara."

    async def test_generate_failure(self) -> None:
        client = FakeGenaiClient(reply=RuntimeError("quota exceeded"))
        provider = GeminiProvider(client=client)
        with pytest.raises(ProviderError, match="quota exceeded"):
            await provider.generate("sys", "prompt")
