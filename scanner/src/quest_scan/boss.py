from __future__ import annotations

import re
from pathlib import PurePosixPath

from .models import BOSS, QuestDefinition


def synthesize_boss_quests(quests: list[QuestDefinition]) -> list[QuestDefinition]:
    """Derive one boss quest per file touched by two or more detector tags."""

    tags_by_file: dict[str, set[str]] = {}
    for quest in quests:
        if quest.scanner == BOSS:
            continue
        tags_by_file.setdefault(quest.file_path, set()).add(quest.scanner)

    bosses: list[QuestDefinition] = []
    for file_path, tags in tags_by_file.items():
        if len(tags) < 2:
            continue
        file_name = PurePosixPath(file_path).name
        stem = re.sub(r"\.\w+$", "", file_name)
        bosses.append(
            QuestDefinition(
                id=f"{BOSS}-{stem}",
                title=f"🐉 BOSS: Purify {file_name}",
                description=f"Resolve ALL quests for {file_path} to slay the boss",
                file_path=file_path,
                scanner=BOSS,
                difficulty=4,
                xp=50,
                hint="Fix all issues in this file: add documentation, resolve TODOs, and create tests",
            )
        )
    return bosses
