"""cua — Multi-persona chat orchestration over Gemini and OpenAI."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("cua-orchestrator")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = ["__version__"]
