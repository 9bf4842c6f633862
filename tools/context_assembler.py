"""
ContextAssembler — Builds the context blocks injected into every oracle prompt.

The content oracle is stateless. The only way it stays consistent with
what already happened is the context we hand it: the world snapshot, the
last few log lines, and the memory digest from the Discovery Ledger.
Sections are joined with a horizontal rule so the model sees clear
boundaries.
"""

import logging
from typing import List, Optional, TYPE_CHECKING

from models.world import WorldSnapshot

if TYPE_CHECKING:
    from models.director import GameDirectorDirective
    from models.events import ActiveEvent
    from tools.discovery_ledger import DiscoveryLedger
    from tools.game_log import GameLog

logger = logging.getLogger('ContextAssembler')

SECTION_SEPARATOR = "\n\n---\n\n"


def format_skills(skills: dict) -> str:
    if not skills:
        return "none"
    return ", ".join(f"{name}: {level}" for name, level in sorted(skills.items()))


def describe_setting(world: Optional[WorldSnapshot]) -> str:
    """One-line game setting instruction (historical, named universe or generic fiction)."""
    if world is None:
        return "Game Setting: unknown."
    character = world.character
    if character.game_setting == "Historical" and character.setting_context:
        return (
            f"Game Setting: HISTORICAL - {character.setting_context}. "
            "Everything generated MUST be plausible for this period and culture."
        )
    if character.setting_context:
        return (
            f"Game Setting: FICTIONAL universe: \"{character.setting_context}\". "
            "Everything generated MUST be consistent with its lore and themes."
        )
    return "Game Setting: General FICTIONAL. Fit the character and location themes."


def describe_character(world: Optional[WorldSnapshot]) -> str:
    if world is None:
        return "Player Character: unknown."
    c = world.character
    return (
        f"Player Character: {c.name} ({c.concept or 'adventurer'}). Rarity: {c.rarity}. "
        f"Health: {c.health}/{c.max_health}, Energy: {c.energy}/{c.max_energy}. "
        f"Skills: {format_skills(c.skills)}. Visual Style: {c.visual_style}."
    )


class ContextAssembler:
    """Assembles prompt context for the lore, event and director oracles.

    Args:
        ledger: The session's DiscoveryLedger (source of the memory digest).
        game_log: The session's GameLog (source of recent lines).
    """

    def __init__(self, ledger: "DiscoveryLedger", game_log: "GameLog"):
        self.ledger = ledger
        self.game_log = game_log

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    def _build_player_section(self, world: WorldSnapshot) -> str:
        return f"## Player\n{describe_character(world)}"

    def _build_location_section(self, world: WorldSnapshot) -> str:
        loc = world.location
        tags = ", ".join(loc.environment_tags) or "none"
        lines = [
            "## Location",
            f"{loc.name} (Rarity: {loc.rarity}, Key: {loc.key})",
            f"Description: {loc.description or 'No description.'}",
            f"Tags: {tags}",
        ]
        if world.npcs:
            npcs = "; ".join(
                f"{n.name} (ID: {n.id}, Rarity: {n.rarity}, Disposition: {n.disposition}"
                f"{', defeated' if n.is_defeated else ''})"
                for n in world.npcs
            )
            lines.append(f"NPCs present: {npcs}")
        return "\n".join(lines)

    def _build_inventory_section(self, world: WorldSnapshot) -> str:
        items = ", ".join(f"{i.name} (Rarity: {i.rarity})" for i in world.inventory) or "empty"
        return f"## Inventory\n{items}"

    def _build_recent_log_section(self, limit: int) -> str:
        entries = self.game_log.recent(limit)
        if not entries:
            return "## Recent Log\nNothing yet."
        lines = [f"[{e.type}] {e.text[:200]}" for e in entries]
        return "## Recent Log\n" + "\n".join(lines)

    def build_memory_section(self) -> str:
        return self.ledger.build_context_summary()

    # ------------------------------------------------------------------
    # Context Building
    # ------------------------------------------------------------------

    def build_event_context(self, world: WorldSnapshot, log_limit: int = 3) -> str:
        """Context for trigger decisions, event generation and resolution."""
        sections = [
            self._build_player_section(world),
            self._build_location_section(world),
            self._build_inventory_section(world),
            self._build_recent_log_section(log_limit),
            self.build_memory_section(),
            describe_setting(world),
        ]
        return SECTION_SEPARATOR.join(sections)

    def build_director_context(
        self,
        world: WorldSnapshot,
        active_event: Optional["ActiveEvent"] = None,
        previous: Optional["GameDirectorDirective"] = None,
        log_limit: int = 20,
    ) -> str:
        """Context for the Game Director: a wider log window and a truncated memory digest."""
        if active_event is not None:
            event_line = (
                f"Active Event: \"{active_event.title}\" - {active_event.narration[:100]}... "
                f"(Requires Action: {active_event.requires_player_action_to_resolve})"
            )
        else:
            event_line = "No active event."

        previous_line = (
            f"Previous Game Director Focus: {previous.focus}" if previous else "No previous game director focus."
        )

        memory = self.build_memory_section()
        if len(memory) > 1000:
            memory = memory[:1000] + "..."

        sections: List[str] = [
            self._build_player_section(world),
            self._build_location_section(world),
            self._build_inventory_section(world),
            event_line,
            "## Game Memory & Chronicle (Summary)\n" + memory,
            self._build_recent_log_section(log_limit),
            previous_line,
            describe_setting(world),
        ]
        return SECTION_SEPARATOR.join(sections)
