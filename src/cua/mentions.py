"""
mentions.py — Leading ``@AgentName`` detection in raw user input.

``@Kara check this`` routes the remainder to Kara as a one-off reply that
never touches the active conversation.  Mentioning the active persona just
strips the mention.
"""

import re
from dataclasses import dataclass
from enum import Enum

from .personas import Persona, PersonaRegistry

_MENTION_RE = re.compile(r"^@(\w+)[, ]?(.*)", re.DOTALL)


@dataclass(frozen=True)
class Mention:
    agent_name: str
    remainder: str


class RouteKind(Enum):
    PLAIN = "plain"
    DELEGATE = "delegate"


@dataclass(frozen=True)
class MentionRoute:
    """Where a submission goes: the normal turn loop, or a one-off delegation."""

    kind: RouteKind
    text: str
    target: Persona | None = None


def parse(raw: str) -> Mention | None:
    """Match a leading ``@word`` token and return it with the rest of the input."""
    match = _MENTION_RE.match(raw)
    if match is None:
        return None
    return Mention(agent_name=match.group(1), remainder=match.group(2).strip())


def resolve(
    raw: str,
    registry: PersonaRegistry,
    active_key: str,
    has_attachment: bool = False,
) -> MentionRoute:
    """Decide how *raw* should be handled given the active persona."""
    plain = MentionRoute(kind=RouteKind.PLAIN, text=raw)

    # Multipart turns always take the normal path.
    if has_attachment:
        return plain

    mention = parse(raw)
    if mention is None or not mention.remainder:
        return plain

    target = registry.find_by_name(mention.agent_name, case_insensitive=True)
    if target is None:
        return plain

    if target.key == active_key:
        return MentionRoute(kind=RouteKind.PLAIN, text=mention.remainder)

    return MentionRoute(
        kind=RouteKind.DELEGATE, text=mention.remainder, target=target
    )
