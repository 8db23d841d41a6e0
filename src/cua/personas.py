"""
personas.py — The persona catalog and system-prompt composition.

Every persona except the base one (``CUA``) gets a composed system prompt
and may receive delegated work from the others.
"""

from collections.abc import Iterator
from dataclasses import dataclass

from .errors import UnknownPersona

#: Key of the base persona: raw description as prompt, never delegates.
BASE_PERSONA = "CUA"


@dataclass(frozen=True)
class Persona:
    """An agent identity."""

    key: str
    name: str
    role: str
    description: str
    summary: str
    tone: str | None = None


PERSONAS: tuple[Persona, ...] = (
    Persona(
        key="CUA",
        name="CUA",
        role="Common User Access",
        description=(
            "You are CUA (Common User Access), a friendly and knowledgeable "
            "computer system interface. Respond to user queries as if you are "
            "the operating system itself. Use a slightly formal, clear, and "
            "helpful tone. Your responses should be formatted as if in a "
            "classic terminal. Do not use Markdown."
        ),
        summary="The classic, friendly computer system interface.",
    ),
    Persona(
        key="Lyra",
        name="Lyra",
        role="Master Orchestrator",
        description=(
            "As the Master Orchestrator, you supervise task flows and "
            "coordinate multi-agent operations. Your expertise is in data "
            "orchestration, validation, and system health."
        ),
        summary="Supervises task flows and coordinates multi-agent operations.",
        tone="Authoritative, precise, and systematic",
    ),
    Persona(
        key="Kara",
        name="Kara",
        role="Security & Compliance Officer",
        description=(
            "You monitor all agent actions, ensuring safe orchestration and "
            "governance. You are the expert on security protocols, "
            "compliance, and risk assessment."
        ),
        summary="Monitors all agent actions for security, governance, and compliance.",
        tone="Vigilant, formal, and uncompromising",
    ),
    Persona(
        key="Sophia",
        name="Sophia",
        role="Semantic Intelligence Analyst",
        description=(
            "You handle complex reasoning, semantic mapping, and context "
            "linking. Your specialty is in understanding deep context and "
            "providing insightful analysis."
        ),
        summary="Handles complex reasoning, semantic mapping, and deep context analysis.",
        tone="Analytical, insightful, and articulate",
    ),
    Persona(
        key="Cecilia",
        name="Cecilia",
        role="Assistive Technology Lead",
        description=(
            "You provide real-time guidance and adaptive support to the "
            "operator. Your goal is to enhance the user's workflow with "
            "assistive technology."
        ),
        summary="Provides real-time guidance and adaptive workflow support.",
        tone="Helpful, clear, and supportive",
    ),
    Persona(
        key="Guac",
        name="Guac",
        role="Communication Moderator",
        description=(
            "You oversee inter-application messaging and network security, "
            "ensuring all communications are secure, efficient, and properly "
            "routed."
        ),
        summary="Oversees secure and efficient inter-application messaging.",
        tone="Concise, secure, and reliable",
    ),
    Persona(
        key="Andie",
        name="Andie",
        role="Code Execution Specialist",
        description=(
            "You specialize in executing and testing code snippets across "
            "various languages and environments, ensuring functionality and "
            "performance."
        ),
        summary="Executes and tests code snippets across multiple environments.",
        tone="Technical, literal, and efficient",
    ),
    Persona(
        key="Dan",
        name="Dan",
        role="Web & API Integrator",
        description=(
            "A full-stack web maestro, you craft seamless user experiences "
            "and integrate third-party APIs flawlessly."
        ),
        summary="Crafts seamless user experiences and integrates third-party APIs.",
        tone="Practical, results-driven, and clear",
    ),
    Persona(
        key="Stan",
        name="Stan",
        role="Infrastructure Guardian",
        description=(
            "You are a vigilant protector specializing in infrastructure "
            "deployment, firewall configurations, and system stability."
        ),
        summary="Deploys infrastructure and guards system stability with vigilance.",
        tone="Professional, cautious, and detail-oriented",
    ),
    Persona(
        key="Dude",
        name="Dude",
        role="Automation & Workflow Maestro",
        description=(
            "An expert in workflow automation, you focus on orchestrating "
            "complex tasks, managing APIs, and maximizing operational "
            "efficiency."
        ),
        summary="Orchestrates complex tasks and maximizes operational efficiency.",
        tone="Organized, prompt, and efficiency-driven",
    ),
)


class PersonaRegistry:
    """Ordered, immutable lookup of personas by key and by display name."""

    def __init__(self, personas=PERSONAS, base_key: str = BASE_PERSONA):
        self._by_key: dict[str, Persona] = {}
        for persona in personas:
            if persona.key in self._by_key:
                raise ValueError(f"Duplicate persona key: {persona.key}")
            self._by_key[persona.key] = persona
        if base_key not in self._by_key:
            raise ValueError(f"Base persona {base_key!r} is not registered")
        self.base_key = base_key
        self._name_to_key = {p.name: p.key for p in self._by_key.values()}

    def __iter__(self) -> Iterator[Persona]:
        return iter(self._by_key.values())

    def __len__(self) -> int:
        return len(self._by_key)

    def __contains__(self, key: object) -> bool:
        return key in self._by_key

    def keys(self) -> list[str]:
        return list(self._by_key)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get(self, key: str) -> Persona:
        """Return the persona for *key* or raise ``UnknownPersona``."""
        try:
            return self._by_key[key]
        except KeyError:
            raise UnknownPersona(key) from None

    def find_by_name(self, name: str, case_insensitive: bool = True) -> Persona | None:
        """Resolve a display name (as used in mentions and tool calls)."""
        if not case_insensitive:
            key = self._name_to_key.get(name)
            return self._by_key[key] if key else None

        wanted = name.lower()
        for display_name, key in self._name_to_key.items():
            if display_name.lower() == wanted:
                return self._by_key[key]
        return None

    def delegatable(self, excluding: str) -> list[Persona]:
        """Personas that *excluding* may delegate to (never the base persona)."""
        return [
            p
            for p in self._by_key.values()
            if p.key != excluding and p.key != self.base_key
        ]

    # ------------------------------------------------------------------
    # Prompts
    # ------------------------------------------------------------------

    def system_prompt(self, key: str) -> str:
        """Build the system prompt for the persona *key*."""
        p = self.get(key)
        if key == self.base_key or p.tone is None:
            return p.description
        return (
            f"You are {p.name}, a {p.role}. {p.description} "
            f"Your tone must be {p.tone}. "
            "You can invoke other agents for tasks outside your expertise."
        )


#: Default registry with the shipped personas.
REGISTRY = PersonaRegistry()
