from __future__ import annotations

"""Experience to level mapping."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Level:
    name: str
    min_xp: int
    icon: str

    def to_dict(self) -> dict[str, object]:
        return {"name": self.name, "min_xp": self.min_xp, "icon": self.icon}


# Ascending by threshold; the first entry must start at 0.
LEVELS: tuple[Level, ...] = (
    Level("Novice", 0, "🌱"),
    Level("Apprentice", 25, "⚔️"),
    Level("Journeyman", 75, "🛡️"),
    Level("Expert", 150, "🔮"),
    Level("Master", 300, "👑"),
    Level("Legend", 500, "🐉"),
)


@dataclass(frozen=True)
class Progress:
    current: Level
    next_level: Level | None
    xp_to_next: int
    percent: int

    def to_dict(self) -> dict[str, object]:
        return {
            "current": self.current.to_dict(),
            "next_level": self.next_level.to_dict() if self.next_level else None,
            "xp_to_next": self.xp_to_next,
            "percent": self.percent,
        }


@dataclass(frozen=True)
class XpAward:
    new_xp: int
    leveled_up: bool
    new_level: Level | None = None


def level_for(xp: int) -> Level:
    current = LEVELS[0]
    for level in LEVELS:
        if xp < level.min_xp:
            break
        current = level
    return current


def progress_for(xp: int) -> Progress:
    """Position of `xp` within its level band."""

    current = level_for(xp)
    index = LEVELS.index(current)
    if index == len(LEVELS) - 1:
        return Progress(current=current, next_level=None, xp_to_next=0, percent=100)
    next_level = LEVELS[index + 1]
    band = next_level.min_xp - current.min_xp
    percent = (100 * (xp - current.min_xp)) // band
    return Progress(current=current, next_level=next_level, xp_to_next=next_level.min_xp - xp, percent=percent)


def add_xp(current_xp: int, amount: int) -> XpAward:
    if amount < 0:
        raise ValueError("xp awards must be non-negative.")
    before = level_for(current_xp)
    new_xp = current_xp + amount
    after = level_for(new_xp)
    if after.name != before.name:
        return XpAward(new_xp=new_xp, leveled_up=True, new_level=after)
    return XpAward(new_xp=new_xp, leveled_up=False)
