"""
events.py — Orchestration log events.

Each event is written to ``logging`` and handed to an optional callback,
which is how a front-end fills its orchestration log panel.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum


class EventKind(Enum):
    USER = "user"
    INFO = "info"
    INVOKE = "invoke"
    SUCCESS = "success"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class OrchestrationEvent:
    kind: EventKind
    message: str


EventCallback = Callable[[OrchestrationEvent], None]


class EventLog:
    """Fans orchestration events out to ``logging`` and a listener."""

    def __init__(self, listener: EventCallback | None = None):
        self.listener = listener

    def emit(self, message: str, kind: EventKind = EventKind.INFO) -> None:
        level = logging.ERROR if kind is EventKind.ERROR else logging.INFO
        logging.log(level, "[%s] %s", kind.value, message)
        if self.listener is not None:
            self.listener(OrchestrationEvent(kind=kind, message=message))
