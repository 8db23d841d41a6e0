#!/usr/bin/env python3
"""
app.py — Application entrypoint.

Sets up logging, validates credentials, builds the enabled providers and
runs an interactive terminal session on top of the turn orchestrator.
Orchestration events go to the log; answers stream to stdout.
"""

import asyncio
import logging
import os
import sys
from pathlib import Path

from .attachments import Attachment, encode_file
from .credentials import CredentialLoader, Credentials
from .errors import ConfigurationError, PersistenceError, UnknownPersona
from .history import HistoryStore, JsonFileRecordStore, transcript_shape
from .orchestrator import TurnOrchestrator, TurnResult, TurnState
from .personas import BASE_PERSONA, REGISTRY
from .providers import GeminiProvider, OpenAIProvider, Provider
from .providers.gemini_chat import DEFAULT_MODEL as GEMINI_DEFAULT_MODEL
from .providers.openai_chat import DEFAULT_MODEL as OPENAI_DEFAULT_MODEL

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)

HELP_TEXT = """\
Commands:
  /provider <id>   switch provider (gemini, openai)
  /persona <key>   switch persona (see /personas)
  /attach <path>   stage one file for the next message
  /clear           delete the stored history of this session
  /personas        list available personas
  /help            show this help
  /quit            leave
Start a message with @Name to hand it to another persona once."""


def default_history_dir() -> Path:
    configured = os.environ.get("CUA_HISTORY_DIR")
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".local" / "share" / "cua" / "chat_sessions"


def render_transcript(transcript: list[dict], persona_prefix: str) -> list[str]:
    """Printable lines for the user and assistant text of a stored transcript.

    System prompts and tool traffic are skipped; attachments show as a
    placeholder.
    """
    shape = transcript_shape(transcript)
    lines = []
    for message in transcript:
        if not isinstance(message, dict):
            continue
        if shape == "parts":
            parts = message.get("parts") or []
            if any("functionCall" in p or "functionResponse" in p for p in parts):
                continue
            chunks = [
                p["text"] if "text" in p else "[attachment]"
                for p in parts
                if "text" in p or "inlineData" in p
            ]
        elif shape == "content":
            if message.get("role") in ("system", "tool") or message.get("tool_calls"):
                continue
            content = message.get("content")
            if isinstance(content, str):
                chunks = [content]
            elif isinstance(content, list):
                chunks = [
                    p.get("text", "") if p.get("type") == "text" else "[attachment]"
                    for p in content
                ]
            else:
                continue
        else:
            break

        text = " ".join(c for c in chunks if c)
        if text:
            prefix = "USER>" if message.get("role") == "user" else persona_prefix
            lines.append(f"{prefix} {text}")
    return lines


def _request_timeout() -> float | None:
    raw = os.environ.get("CUA_REQUEST_TIMEOUT", "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        logging.warning("Ignoring invalid CUA_REQUEST_TIMEOUT=%r", raw)
        return None


def build_providers(creds: Credentials) -> list[Provider]:
    """Instantiate one provider per available credential (Gemini first)."""
    timeout = _request_timeout()
    providers: list[Provider] = []
    if creds.gemini_api_key:
        providers.append(
            GeminiProvider(
                api_key=creds.gemini_api_key,
                model_name=os.environ.get("GEMINI_MODEL", GEMINI_DEFAULT_MODEL),
                timeout=timeout,
            )
        )
    if creds.openai_api_key:
        providers.append(
            OpenAIProvider(
                api_key=creds.openai_api_key,
                model_name=os.environ.get("OPENAI_MODEL", OPENAI_DEFAULT_MODEL),
                timeout=timeout,
            )
        )
    return providers


# ---------------------------------------------------------------------------
# Terminal front-end
# ---------------------------------------------------------------------------
class ConsoleFrontend:
    """Reads user input, forwards it to the orchestrator, prints answers."""

    def __init__(self, orchestrator: TurnOrchestrator, out=None):
        self.orchestrator = orchestrator
        self.out = out or sys.stdout
        self.staged: Attachment | None = None
        self._prefix_pending = False
        orchestrator.on_delta = self.on_delta

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def write(self, text: str = "", end: str = "\n") -> None:
        self.out.write(text + end)
        self.out.flush()

    def prefix(self) -> str:
        return f"{self.orchestrator.active.persona.key.upper()}>"

    def on_delta(self, text: str) -> None:
        if self._prefix_pending:
            self.write(f"{self.prefix()} ", end="")
            self._prefix_pending = False
        self.write(text, end="")

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def run(self, provider_id: str, persona_key: str) -> None:
        await self.switch(provider_id, persona_key)
        while True:
            try:
                line = await asyncio.to_thread(input, "USER> ")
            except (EOFError, KeyboardInterrupt):
                self.write()
                return
            line = line.strip()
            if line.startswith("/"):
                if not await self.handle_command(line):
                    return
                continue
            await self.submit(line)

    async def switch(self, provider_id: str, persona_key: str) -> None:
        active = await self.orchestrator.switch_session(provider_id, persona_key)
        persona, provider = active.persona, active.provider
        if active.restored:
            self.write(
                f"{self.prefix()} Session restored for {persona.name} "
                f"via {provider.display_name}."
            )
            for line in render_transcript(active.session.export_history(), self.prefix()):
                self.write(line)
        else:
            self.write(
                f"{self.prefix()} New session started for {persona.name} "
                f"via {provider.display_name}. Awaiting your input."
            )

    async def submit(self, line: str) -> TurnResult | None:
        attachment, self.staged = self.staged, None
        self._prefix_pending = True
        result = await self.orchestrator.submit(line, attachment)
        if result is None:
            self._prefix_pending = False
            return None

        streamed = not self._prefix_pending
        self._prefix_pending = False

        if result.delegated_to:
            self.write(f"{result.delegated_to.upper()}> {result.text}")
        elif result.state is TurnState.FAILED:
            if streamed:
                self.write()
            message = result.error or "An unknown error occurred."
            if not message.startswith("Error"):
                message = f"Error: {message}"
            self.write(f"SYSTEM_ERROR> {message}")
        else:
            if streamed:
                self.write()
            else:
                self.write(f"{self.prefix()} {result.text}")
            if result.warning:
                self.write(f"SYSTEM_ERROR> {result.warning}")
        return result

    async def handle_command(self, line: str) -> bool:
        """Run a slash command; ``False`` means quit."""
        command, _, arg = line.partition(" ")
        arg = arg.strip()
        active = self.orchestrator.active

        if command in ("/quit", "/exit"):
            return False
        if command == "/help":
            self.write(HELP_TEXT)
        elif command == "/personas":
            for p in REGISTRY:
                marker = "*" if p.key == active.persona.key else " "
                self.write(f"{marker} {p.key:<8} {p.role:<32} {p.summary}")
        elif command == "/provider":
            await self._switch_checked(arg, active.persona.key)
        elif command == "/persona":
            await self._switch_checked(active.provider.provider_id, arg)
        elif command == "/attach":
            try:
                self.staged = encode_file(Path(arg))
            except ValueError as e:
                self.write(f"SYSTEM_ERROR> {e}")
            else:
                self.write(f"Staged {self.staged.name} ({self.staged.mime_type}).")
        elif command == "/clear":
            answer = await asyncio.to_thread(
                input,
                f"Clear the chat history for {active.persona.name} on "
                f"{active.provider.display_name}? [y/N] ",
            )
            if answer.strip().lower() in ("y", "yes"):
                try:
                    await self.orchestrator.clear_history()
                except PersistenceError as e:
                    self.write(f"SYSTEM_ERROR> {e}")
                else:
                    self.write(f"{self.prefix()} History cleared.")
        else:
            self.write(f"Unknown command: {command} (try /help)")
        return True

    async def _switch_checked(self, provider_id: str, persona_key: str) -> None:
        try:
            await self.switch(provider_id, persona_key)
        except (ConfigurationError, UnknownPersona) as e:
            self.write(f"SYSTEM_ERROR> {e}")


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main(
    provider: str | None = None,
    persona: str | None = None,
    history_dir: Path | None = None,
) -> None:
    try:
        creds = CredentialLoader().load()
    except ConfigurationError as e:
        logging.critical(str(e))
        logging.critical("CRITICAL ERROR: API keys not found. Application halted.")
        sys.exit(1)

    providers = build_providers(creds)
    available = [p.provider_id for p in providers]
    provider_id = provider or available[0]
    if provider_id not in available:
        logging.warning(
            "Provider '%s' is not configured, using '%s'", provider_id, available[0]
        )
        provider_id = available[0]

    persona_key = persona or BASE_PERSONA
    if persona_key not in REGISTRY:
        logging.critical("Unknown persona: %s", persona_key)
        sys.exit(1)

    store = HistoryStore(JsonFileRecordStore(history_dir or default_history_dir()))
    orchestrator = TurnOrchestrator(providers, store)
    frontend = ConsoleFrontend(orchestrator)

    logging.info("CUA orchestrator starting up...")
    asyncio.run(frontend.run(provider_id, persona_key))


if __name__ == "__main__":
    main()
