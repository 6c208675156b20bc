from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from quest_scan.models import BOSS, MISSING_DOCS, MISSING_TESTS, TODO_HUNTER

if TYPE_CHECKING:
    from .state import GameState


@dataclass(frozen=True)
class Badge:
    id: str
    name: str
    icon: str
    description: str
    condition: Callable[["GameState"], bool]

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name, "icon": self.icon, "description": self.description}


def _first_blood(state: "GameState") -> bool:
    return len(state.completed_quests) >= 1


def _scribe(state: "GameState") -> bool:
    return state.completed_by_scanner(MISSING_DOCS) >= 3


def _exterminator(state: "GameState") -> bool:
    return state.completed_by_scanner(TODO_HUNTER) >= 5


def _guardian(state: "GameState") -> bool:
    return state.completed_by_scanner(MISSING_TESTS) >= 3


def _dragon_slayer(state: "GameState") -> bool:
    return any(item.difficulty == 3 for item in state.completed_quests)


def _boss_slayer(state: "GameState") -> bool:
    return state.completed_by_scanner(BOSS) >= 1


def _perfectionist(state: "GameState") -> bool:
    return state.last_scan_all_completed


BADGES: tuple[Badge, ...] = (
    Badge("first-blood", "First Blood", "🩸", "Complete your first quest", _first_blood),
    Badge("scribe", "Scribe", "📜", "Document 3 functions", _scribe),
    Badge("exterminator", "Exterminator", "🪲", "Resolve 5 TODOs", _exterminator),
    Badge("guardian", "Guardian", "🛡️", "Create 3 test files", _guardian),
    Badge("dragon-slayer", "Dragon Slayer", "🐉", "Complete a ★★★ quest", _dragon_slayer),
    Badge("boss-slayer", "Boss Slayer", "👑", "Complete a Boss Quest", _boss_slayer),
    Badge("perfectionist", "Perfectionist", "✨", "Complete all quests in a single scan", _perfectionist),
)
BADGES_BY_ID = {badge.id: badge for badge in BADGES}


def check_new_badges(state: "GameState") -> list[Badge]:
    """Catalog badges not yet earned whose condition holds for `state`."""

    earned = set(state.badge_ids)
    return [badge for badge in BADGES if badge.id not in earned and badge.condition(state)]
