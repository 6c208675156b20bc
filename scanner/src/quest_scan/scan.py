from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable

from .boss import synthesize_boss_quests
from .detectors import run_detectors
from .models import DETECTOR_TAGS, QuestDefinition


def scan_tree(
    root: Path,
    scanners: Iterable[str] = DETECTOR_TAGS,
    extra_excluded_dirs: Iterable[str] = (),
) -> list[QuestDefinition]:
    """Full detection pass: ordered detector output followed by boss quests."""

    quests = run_detectors(root, scanners, extra_excluded_dirs)
    return quests + synthesize_boss_quests(quests)


def quests_to_json(quests: list[QuestDefinition]) -> str:
    return json.dumps([quest.to_dict() for quest in quests], indent=2, ensure_ascii=False)


def quests_to_text(quests: list[QuestDefinition]) -> str:
    if not quests:
        return "No quests."
    lines: list[str] = []
    for number, quest in enumerate(quests, start=1):
        location = f"{quest.file_path}:{quest.line}" if quest.line else quest.file_path
        lines.append(f"#{number} [{quest.scanner}] {location} :: {quest.title} (+{quest.xp} XP)")
        lines.append(f"  hint: {quest.hint}")
    return "\n".join(lines)
