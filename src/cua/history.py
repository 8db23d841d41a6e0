"""
history.py — Transcript persistence, one record per session key.

Records have the shape ``{"provider": <session key>, "history": [...]}``.
The store never inspects messages: whatever transcript is saved comes back
unchanged, in the provider's native shape.
"""

import asyncio
import copy
import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Protocol

from .errors import PersistenceError

JsonDict = dict[str, Any]
Transcript = list[JsonDict]

_SAFE_KEY_RE = re.compile(r"^[A-Za-z0-9_-]{1,120}$")


def session_key(provider_id: str, persona_key: str) -> str:
    """Compose the storage key for a (provider, persona) pair."""
    return f"{provider_id}-{persona_key}"


def transcript_shape(transcript: Transcript) -> str | None:
    """Return ``"parts"`` or ``"content"`` depending on the stored schema."""
    for message in transcript:
        if not isinstance(message, dict):
            continue
        if "parts" in message:
            return "parts"
        if "content" in message:
            return "content"
    return None


def has_user_turn(transcript: Transcript | None) -> bool:
    """True when the transcript holds at least one user message."""
    return bool(transcript) and any(
        isinstance(m, dict) and m.get("role") == "user" for m in transcript
    )


def _validate_key(key: str) -> str:
    if not isinstance(key, str) or not _SAFE_KEY_RE.match(key):
        raise ValueError(f"Invalid session key: {key!r}")
    return key


class RecordStore(Protocol):
    """Asynchronous keyed persistence of session records."""

    async def get(self, key: str) -> JsonDict | None: ...

    async def put(self, record: JsonDict) -> None: ...

    async def delete(self, key: str) -> None: ...


class MemoryRecordStore:
    """Keeps records in a dict. Used for ephemeral sessions and tests."""

    def __init__(self) -> None:
        self.records: dict[str, JsonDict] = {}

    async def get(self, key: str) -> JsonDict | None:
        record = self.records.get(key)
        return copy.deepcopy(record) if record is not None else None

    async def put(self, record: JsonDict) -> None:
        self.records[record["provider"]] = copy.deepcopy(record)

    async def delete(self, key: str) -> None:
        self.records.pop(key, None)


class JsonFileRecordStore:
    """One JSON file per session key under *directory*."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{_validate_key(key)}.json"

    async def get(self, key: str) -> JsonDict | None:
        return await asyncio.to_thread(self._read, key)

    async def put(self, record: JsonDict) -> None:
        await asyncio.to_thread(self._write, record)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._delete, key)

    # ------------------------------------------------------------------
    # Blocking helpers (run in a worker thread)
    # ------------------------------------------------------------------

    def _read(self, key: str) -> JsonDict | None:
        path = self._path(key)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def _write(self, record: JsonDict) -> None:
        path = self._path(str(record.get("provider", "")))
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(record, indent=2, ensure_ascii=False) + "\n"

        # Write to a sibling temp file, then atomically swap it in.
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.stem}.", suffix=".tmp", dir=path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class HistoryStore:
    """Loads, saves and clears transcripts; I/O failures become ``PersistenceError``."""

    def __init__(self, records: RecordStore):
        self.records = records

    async def load(self, key: str) -> Transcript | None:
        try:
            record = await self.records.get(key)
        except (OSError, ValueError) as e:
            logging.error("Error loading history for %s: %s", key, e)
            raise PersistenceError(f"Could not load history for {key}: {e}") from e

        if record is None:
            return None
        history = record.get("history")
        return history if isinstance(history, list) else None

    async def save(self, key: str, transcript: Transcript) -> None:
        try:
            await self.records.put({"provider": key, "history": transcript})
        except (OSError, TypeError, ValueError) as e:
            logging.error("Error saving history for %s: %s", key, e)
            raise PersistenceError(f"Could not save history for {key}: {e}") from e
        logging.info("Saved %d message(s) for %s", len(transcript), key)

    async def clear(self, key: str) -> None:
        try:
            await self.records.delete(key)
        except (OSError, ValueError) as e:
            logging.error("Error clearing history for %s: %s", key, e)
            raise PersistenceError(f"Could not clear history for {key}: {e}") from e
        logging.info("Cleared history for %s", key)
