"""Interface for ``python -m cua``."""

import asyncio
from argparse import ArgumentParser
from collections.abc import Sequence
from pathlib import Path

from . import __version__
from .personas import REGISTRY

__all__ = ["main"]

PROVIDER_IDS = ("gemini", "openai")


def main(args: Sequence[str] | None = None) -> None:
    """Entry point — parse CLI args then dispatch to the chosen command."""
    parser = ArgumentParser(
        description="CUA: multi-persona chat over Gemini and OpenAI"
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=__version__,
    )

    sub = parser.add_subparsers(dest="command")

    # --- run (default: interactive session) ---
    run = sub.add_parser("run", help="Start an interactive chat session")
    _add_session_args(run)
    run.add_argument(
        "--history-dir",
        type=Path,
        default=None,
        help="Where transcripts are stored (default: ~/.local/share/cua/chat_sessions)",
    )

    # --- personas: list the catalog ---
    sub.add_parser("personas", help="List the available personas")

    # --- clear: delete one stored session ---
    clr = sub.add_parser("clear", help="Delete the stored history of one session")
    _add_session_args(clr, required=True)
    clr.add_argument(
        "--history-dir",
        type=Path,
        default=None,
        help="Where transcripts are stored",
    )

    parsed = parser.parse_args(args)

    if parsed.command == "personas":
        _list_personas()
    elif parsed.command == "clear":
        _run_clear(parsed)
    else:
        # Default: interactive session (both "run" and no subcommand)
        from .app import main as run_app

        run_app(
            provider=getattr(parsed, "provider", None),
            persona=getattr(parsed, "persona", None),
            history_dir=getattr(parsed, "history_dir", None),
        )


def _add_session_args(parser: ArgumentParser, required: bool = False) -> None:
    parser.add_argument(
        "--provider",
        choices=PROVIDER_IDS,
        required=required,
        help="LLM provider",
    )
    parser.add_argument(
        "--persona",
        choices=REGISTRY.keys(),
        required=required,
        help="Persona key",
    )


def _list_personas() -> None:
    for p in REGISTRY:
        print(f"{p.key:<8} {p.role:<32} {p.summary}")


def _run_clear(parsed) -> None:
    """Execute the clear subcommand."""
    from .app import default_history_dir
    from .history import HistoryStore, JsonFileRecordStore, session_key

    store = HistoryStore(JsonFileRecordStore(parsed.history_dir or default_history_dir()))
    key = session_key(parsed.provider, parsed.persona)
    asyncio.run(store.clear(key))
    print(f"Cleared history for {key}")


if __name__ == "__main__":
    main()
