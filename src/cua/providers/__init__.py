"""
providers — LLM backend bindings behind one streaming-turn contract.

To add a backend:
1. Create a module in this package
2. Subclass Provider and ProviderSession, set provider_id + display_name
3. Register it in app.build_providers()

The orchestrator only ever sees TextDelta and ToolCallRequested events,
so a new binding needs no changes elsewhere.
"""

from .base import (
    INVOKE_AGENT,
    Provider,
    ProviderSession,
    TextDelta,
    ToolCallRequested,
    TurnEvent,
    UserTurn,
)
from .gemini_chat import GeminiProvider
from .openai_chat import OpenAIProvider

__all__ = [
    "INVOKE_AGENT",
    "GeminiProvider",
    "OpenAIProvider",
    "Provider",
    "ProviderSession",
    "TextDelta",
    "ToolCallRequested",
    "TurnEvent",
    "UserTurn",
]
