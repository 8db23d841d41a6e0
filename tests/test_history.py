"""Tests for transcript persistence."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from cua.errors import PersistenceError
from cua.history import (
    HistoryStore,
    JsonFileRecordStore,
    MemoryRecordStore,
    has_user_turn,
    session_key,
    transcript_shape,
)

GEMINI_TRANSCRIPT = [
    {"role": "user", "parts": [{"text": "hello"}]},
    {
        "role": "model",
        "parts": [{"functionCall": {"name": "invokeAgent", "args": {"agentName": "Kara", "prompt": "x"}}}],
    },
    {
        "role": "user",
        "parts": [{"functionResponse": {"name": "invokeAgent", "response": {"content": "ok"}}}],
    },
    {"role": "model", "parts": [{"text": "done"}]},
]

OPENAI_TRANSCRIPT = [
    {"role": "system", "content": "You are Lyra."},
    {
        "role": "user",
        "content": [
            {"type": "text", "text": "look"},
            {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAAA"}},
        ],
    },
    {
        "role": "assistant",
        "content": None,
        "tool_calls": [
            {
                "id": "call_1",
                "type": "function",
                "function": {"name": "invokeAgent", "arguments": "{}"},
            }
        ],
    },
    {"role": "tool", "tool_call_id": "call_1", "content": "ok"},
    {"role": "assistant", "content": "done"},
]


@pytest.fixture(params=["memory", "file"])
def history(request, tmp_path: Path) -> HistoryStore:
    if request.param == "memory":
        return HistoryStore(MemoryRecordStore())
    return HistoryStore(JsonFileRecordStore(tmp_path / "sessions"))


class TestRoundTrip:
    @pytest.mark.parametrize("transcript", [GEMINI_TRANSCRIPT, OPENAI_TRANSCRIPT])
    async def test_save_then_load(self, history: HistoryStore, transcript) -> None:
        await history.save("gemini-Lyra", transcript)
        assert await history.load("gemini-Lyra") == transcript

    async def test_load_missing(self, history: HistoryStore) -> None:
        assert await history.load("openai-Kara") is None

    async def test_keys_are_independent(self, history: HistoryStore) -> None:
        await history.save("gemini-Lyra", GEMINI_TRANSCRIPT)
        await history.save("openai-Lyra", OPENAI_TRANSCRIPT)
        assert await history.load("gemini-Lyra") == GEMINI_TRANSCRIPT
        assert await history.load("openai-Lyra") == OPENAI_TRANSCRIPT

    async def test_save_replaces(self, history: HistoryStore) -> None:
        await history.save("gemini-Lyra", GEMINI_TRANSCRIPT)
        await history.save("gemini-Lyra", GEMINI_TRANSCRIPT[:1])
        assert await history.load("gemini-Lyra") == GEMINI_TRANSCRIPT[:1]


class TestClear:
    async def test_clear_is_idempotent(self, history: HistoryStore) -> None:
        await history.save("gemini-CUA", GEMINI_TRANSCRIPT)
        await history.clear("gemini-CUA")
        assert await history.load("gemini-CUA") is None
        await history.clear("gemini-CUA")
        assert await history.load("gemini-CUA") is None


class TestJsonFileRecordStore:
    async def test_record_layout(self, tmp_path: Path) -> None:
        store = JsonFileRecordStore(tmp_path)
        await store.put({"provider": "openai-Dan", "history": OPENAI_TRANSCRIPT})

        data = json.loads((tmp_path / "openai-Dan.json").read_text(encoding="utf-8"))
        assert data == {"provider": "openai-Dan", "history": OPENAI_TRANSCRIPT}
        assert [p.name for p in tmp_path.iterdir()] == ["openai-Dan.json"]

    async def test_invalid_key_becomes_persistence_error(self, tmp_path: Path) -> None:
        history = HistoryStore(JsonFileRecordStore(tmp_path))
        with pytest.raises(PersistenceError):
            await history.save("../escape", [])

    async def test_corrupt_record_becomes_persistence_error(self, tmp_path: Path) -> None:
        (tmp_path / "gemini-Kara.json").write_text("{not json", encoding="utf-8")
        history = HistoryStore(JsonFileRecordStore(tmp_path))
        with pytest.raises(PersistenceError):
            await history.load("gemini-Kara")


class TestMemoryRecordStore:
    async def test_returns_copies(self) -> None:
        store = MemoryRecordStore()
        transcript = [{"role": "user", "content": "hi"}]
        await store.put({"provider": "k", "history": transcript})
        transcript.append({"role": "assistant", "content": "changed"})

        record = await store.get("k")
        assert record["history"] == [{"role": "user", "content": "hi"}]


class TestHelpers:
    def test_session_key(self) -> None:
        assert session_key("gemini", "Lyra") == "gemini-Lyra"

    def test_transcript_shape(self) -> None:
        assert transcript_shape(GEMINI_TRANSCRIPT) == "parts"
        assert transcript_shape(OPENAI_TRANSCRIPT) == "content"
        assert transcript_shape([]) is None

    def test_has_user_turn(self) -> None:
        assert has_user_turn(GEMINI_TRANSCRIPT)
        assert not has_user_turn([{"role": "system", "content": "x"}])
        assert not has_user_turn(None)
