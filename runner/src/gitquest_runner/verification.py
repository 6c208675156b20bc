from __future__ import annotations

"""Re-inspection heuristics deciding whether an accepted quest was resolved.

Every verifier receives the frozen definition captured at acceptance time, the
working tree root, and the current `GameState`. None of them mutate state.
Line-based checks search a window of `WINDOW_BEFORE` lines above and
`WINDOW_AFTER - 1` lines below the recorded line so edits that shift code
around still verify.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from quest_scan.matching import (
    ANY_EXPORT_PATTERN,
    MARKER_PATTERN,
    TEST_CALL_PATTERN,
    candidate_test_paths,
    has_doc_block_above,
    read_lines,
    search_window,
)
from quest_scan.models import BOSS, MISSING_DOCS, MISSING_TESTS, TODO_HUNTER, QuestDefinition

from .errors import UnknownScannerError
from .state import ActiveQuest, GameState


REMARK_MATCH_CHARS = 20
DESCRIPTION_REMARK_PATTERN = re.compile(r"(?:TODO|FIXME|HACK|XXX):\s*(.+?)\s*\(", re.IGNORECASE)


@dataclass(frozen=True)
class Verdict:
    resolved: bool
    detail: str

    def __bool__(self) -> bool:
        return self.resolved


def verify_missing_docs(quest: QuestDefinition, root: Path, state: GameState) -> Verdict:
    lines = read_lines(root / quest.file_path)
    if lines is None:
        return Verdict(False, f"{quest.file_path} could not be read.")
    if not quest.line:
        return Verdict(False, "Quest has no recorded line to re-inspect.")
    for index in search_window(quest.line, len(lines)):
        if ANY_EXPORT_PATTERN.match(lines[index]) and has_doc_block_above(lines, index):
            return Verdict(True, f"Documented export found at line {index + 1}.")
    return Verdict(False, "No documented export found near the original line.")


def original_remark(quest: QuestDefinition) -> str | None:
    match = DESCRIPTION_REMARK_PATTERN.search(quest.description)
    if not match:
        return None
    return match.group(1).strip()


def verify_todo_hunter(quest: QuestDefinition, root: Path, state: GameState) -> Verdict:
    # Any marker comment left in the window blocks resolution, not only the original one.
    lines = read_lines(root / quest.file_path)
    if lines is None:
        return Verdict(False, f"{quest.file_path} could not be read.")
    remark = original_remark(quest)
    needle = remark[:REMARK_MATCH_CHARS] if remark else None
    line = quest.line or 0
    for index in search_window(line, len(lines)):
        if not MARKER_PATTERN.search(lines[index]):
            continue
        if needle and needle in lines[index]:
            return Verdict(False, f"The original comment is still present at line {index + 1}.")
        return Verdict(False, f"Another marker comment remains nearby at line {index + 1}.")
    return Verdict(True, "No marker comment remains near the original line.")


def verify_missing_tests(quest: QuestDefinition, root: Path, state: GameState) -> Verdict:
    for candidate in candidate_test_paths(root, quest.file_path):
        if not candidate.is_file():
            continue
        lines = read_lines(candidate)
        if lines is None:
            continue
        if TEST_CALL_PATTERN.search("\n".join(lines)):
            return Verdict(True, f"Test cases found in {candidate.relative_to(root).as_posix()}.")
    return Verdict(False, "No test file with a test/it/describe call was found.")


def verify_boss(quest: QuestDefinition, root: Path, state: GameState) -> Verdict:
    pending = [
        item.id
        for item in state.last_scan
        if item.file_path == quest.file_path and item.scanner != BOSS and not state.is_completed(item.id)
    ]
    if pending:
        return Verdict(False, f"{len(pending)} quest(s) for {quest.file_path} are still open: {', '.join(pending)}")
    return Verdict(True, f"Every quest for {quest.file_path} is complete.")


VERIFIERS: dict[str, Callable[[QuestDefinition, Path, GameState], Verdict]] = {
    MISSING_DOCS: verify_missing_docs,
    TODO_HUNTER: verify_todo_hunter,
    MISSING_TESTS: verify_missing_tests,
    BOSS: verify_boss,
}


def verify(active: ActiveQuest, root: Path, state: GameState) -> Verdict:
    quest = active.quest
    verifier = VERIFIERS.get(quest.scanner)
    if verifier is None:
        raise UnknownScannerError(quest.scanner)
    return verifier(quest, root, state)
