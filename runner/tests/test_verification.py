from __future__ import annotations

from pathlib import Path

import pytest

from gitquest_runner.errors import UnknownScannerError
from gitquest_runner.state import ActiveQuest, CompletedQuest, GameState
from gitquest_runner.verification import original_remark, verify
from quest_scan.models import QuestDefinition


ORIGINAL_LINE = 20


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text.strip() + "\n", encoding="utf-8")


def _active(quest: QuestDefinition, number: int = 1) -> ActiveQuest:
    return ActiveQuest(id=quest.id, quest_number=number, quest=quest, accepted_at="2026-01-01T00:00:00+00:00")


def _todo_quest(line: int = ORIGINAL_LINE) -> QuestDefinition:
    return QuestDefinition(
        id=f"todo-hunter-src-a-ts-{line}",
        title="The Forgotten Task: wire up the retry budget",
        description=f"TODO: wire up the retry budget (src/a.ts:{line})",
        file_path="src/a.ts",
        scanner="todo-hunter",
        difficulty=2,
        xp=15,
        hint="",
        line=line,
    )


def _docs_quest(line: int = 1, file_path: str = "src/a.ts") -> QuestDefinition:
    return QuestDefinition(
        id="missing-docs-src-a-ts-run",
        title="The Undocumented run",
        description="Add JSDoc documentation to `run` in src/a.ts",
        file_path=file_path,
        scanner="missing-docs",
        difficulty=1,
        xp=10,
        hint="",
        line=line,
    )


def _tests_quest(file_path: str = "src/a.ts") -> QuestDefinition:
    return QuestDefinition(
        id="missing-tests-src-a-ts",
        title="The Untested Dragon: a",
        description="src/a.ts has no corresponding test file",
        file_path=file_path,
        scanner="missing-tests",
        difficulty=3,
        xp=25,
        hint="",
    )


def _file_with_marker_at(tmp_path: Path, offset: int | None, text: str = "// TODO: something else") -> None:
    lines = ["const filler = 1;"] * 40
    if offset is not None:
        lines[ORIGINAL_LINE - 1 + offset] = text
    (tmp_path / "src").mkdir(parents=True, exist_ok=True)
    (tmp_path / "src" / "a.ts").write_text("\n".join(lines) + "\n", encoding="utf-8")


@pytest.mark.parametrize("offset", [-10, 0, 14])
def test_marker_inside_window_blocks_resolution(tmp_path: Path, offset: int) -> None:
    _file_with_marker_at(tmp_path, offset)

    verdict = verify(_active(_todo_quest()), tmp_path, GameState())

    assert not verdict.resolved


@pytest.mark.parametrize("offset", [-11, 15])
def test_marker_outside_window_is_ignored(tmp_path: Path, offset: int) -> None:
    _file_with_marker_at(tmp_path, offset)

    verdict = verify(_active(_todo_quest()), tmp_path, GameState())

    assert verdict.resolved


def _file_with_documented_export_at(tmp_path: Path, offset: int) -> None:
    lines = ["const filler = 1;"] * 40
    export_index = ORIGINAL_LINE - 1 + offset
    lines[export_index - 1] = "/** Runs the job. */"
    lines[export_index] = "export function run() {}"
    (tmp_path / "src").mkdir(parents=True, exist_ok=True)
    (tmp_path / "src" / "a.ts").write_text("\n".join(lines) + "\n", encoding="utf-8")


@pytest.mark.parametrize("offset", [-10, 0, 14])
def test_documented_export_inside_window_resolves(tmp_path: Path, offset: int) -> None:
    _file_with_documented_export_at(tmp_path, offset)

    verdict = verify(_active(_docs_quest(line=ORIGINAL_LINE)), tmp_path, GameState())

    assert verdict.resolved
    assert f"line {ORIGINAL_LINE + offset}" in verdict.detail


@pytest.mark.parametrize("offset", [-11, 15])
def test_documented_export_outside_window_is_ignored(tmp_path: Path, offset: int) -> None:
    _file_with_documented_export_at(tmp_path, offset)

    verdict = verify(_active(_docs_quest(line=ORIGINAL_LINE)), tmp_path, GameState())

    assert not verdict.resolved


def test_todo_resolved_when_window_is_clean(tmp_path: Path) -> None:
    _file_with_marker_at(tmp_path, None)

    verdict = verify(_active(_todo_quest()), tmp_path, GameState())

    assert verdict
    assert "No marker comment" in verdict.detail


def test_todo_original_remark_still_present(tmp_path: Path) -> None:
    _file_with_marker_at(tmp_path, 3, "// TODO: wire up the retry budget")

    verdict = verify(_active(_todo_quest()), tmp_path, GameState())

    assert not verdict.resolved
    assert "original comment" in verdict.detail


def test_todo_replacing_remark_with_another_marker_is_not_resolved(tmp_path: Path) -> None:
    _file_with_marker_at(tmp_path, 0, "// FIXME: retry budget is still wrong")

    verdict = verify(_active(_todo_quest()), tmp_path, GameState())

    assert not verdict.resolved
    assert "Another marker" in verdict.detail


def test_todo_unreadable_file_is_unresolved(tmp_path: Path) -> None:
    assert not verify(_active(_todo_quest()), tmp_path, GameState()).resolved


def test_original_remark_parses_description() -> None:
    assert original_remark(_todo_quest()) == "wire up the retry budget"


def test_docs_resolved_after_adding_doc_block(tmp_path: Path) -> None:
    _write(
        tmp_path / "src" / "a.ts",
        """
/**
 * Runs the job.
 * @returns nothing
 */
export function run() {}
""",
    )

    assert verify(_active(_docs_quest()), tmp_path, GameState()).resolved


def test_docs_unresolved_without_doc_block(tmp_path: Path) -> None:
    _write(tmp_path / "src" / "a.ts", "export function run() {}")

    verdict = verify(_active(_docs_quest()), tmp_path, GameState())

    assert not verdict.resolved


def test_docs_unresolved_with_empty_doc_block(tmp_path: Path) -> None:
    _write(
        tmp_path / "src" / "a.ts",
        """
/** */
export function run() {}
""",
    )

    assert not verify(_active(_docs_quest(line=2)), tmp_path, GameState()).resolved


def test_docs_without_recorded_line_is_unresolved(tmp_path: Path) -> None:
    _write(tmp_path / "src" / "a.ts", "/** Docs. */\nexport function run() {}")
    quest = QuestDefinition(**{**_docs_quest().to_dict(), "line": None})

    assert not verify(_active(quest), tmp_path, GameState()).resolved


def test_tests_resolved_by_test_file_with_cases(tmp_path: Path) -> None:
    _write(tmp_path / "src" / "a.ts", "export const a = 1;")
    _write(tmp_path / "src" / "__tests__" / "a.test.ts", "describe('a', () => {});")

    verdict = verify(_active(_tests_quest()), tmp_path, GameState())

    assert verdict.resolved
    assert "src/__tests__/a.test.ts" in verdict.detail


def test_tests_file_without_cases_is_unresolved(tmp_path: Path) -> None:
    _write(tmp_path / "src" / "a.ts", "export const a = 1;")
    _write(tmp_path / "src" / "a.test.ts", "// nothing here yet")

    assert not verify(_active(_tests_quest()), tmp_path, GameState()).resolved


def test_tests_resolved_by_other_extension(tmp_path: Path) -> None:
    _write(tmp_path / "tests" / "a.spec.js", "it('works', () => {});")

    assert verify(_active(_tests_quest()), tmp_path, GameState()).resolved


def _boss_state(completed_ids: list[str]) -> tuple[QuestDefinition, GameState]:
    docs = _docs_quest()
    todo = _todo_quest()
    boss = QuestDefinition(
        id="boss-a",
        title="🐉 BOSS: Purify a.ts",
        description="Resolve ALL quests for src/a.ts to slay the boss",
        file_path="src/a.ts",
        scanner="boss",
        difficulty=4,
        xp=50,
        hint="",
    )
    state = GameState(last_scan=[docs, todo, boss])
    state.completed_quests = [
        CompletedQuest(id=quest_id, scanner="x", difficulty=1, xp=10, completed_at="") for quest_id in completed_ids
    ]
    return boss, state


def test_boss_unresolved_while_file_quests_remain(tmp_path: Path) -> None:
    boss, state = _boss_state([_docs_quest().id])

    verdict = verify(_active(boss), tmp_path, state)

    assert not verdict.resolved
    assert _todo_quest().id in verdict.detail


def test_boss_resolved_when_file_quests_completed(tmp_path: Path) -> None:
    boss, state = _boss_state([_docs_quest().id, _todo_quest().id])

    assert verify(_active(boss), tmp_path, state).resolved


def test_unknown_scanner_raises(tmp_path: Path) -> None:
    quest = QuestDefinition(**{**_tests_quest().to_dict(), "scanner": "lint"})

    with pytest.raises(UnknownScannerError) as excinfo:
        verify(_active(quest), tmp_path, GameState())

    assert excinfo.value.code == "SCANNER_UNKNOWN"


def test_verification_does_not_mutate_state(tmp_path: Path) -> None:
    boss, state = _boss_state([_docs_quest().id, _todo_quest().id])
    before = state.to_dict()

    verify(_active(boss), tmp_path, state)

    assert state.to_dict() == before
