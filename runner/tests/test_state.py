from __future__ import annotations

import json
import threading
from pathlib import Path

import pytest

from gitquest_runner.errors import DuplicateCompletionError, StateConflictError
from gitquest_runner.state import GameState, StateStore
from quest_scan.models import QuestDefinition


def _quest(quest_id: str, scanner: str = "missing-docs", difficulty: int = 1, xp: int = 10) -> QuestDefinition:
    return QuestDefinition(
        id=quest_id,
        title=f"Quest {quest_id}",
        description="desc",
        file_path="src/a.ts",
        scanner=scanner,
        difficulty=difficulty,
        xp=xp,
        hint="hint",
        line=3,
    )


def test_accept_is_idempotent() -> None:
    state = GameState()
    quest = _quest("q1")

    first = state.accept(1, quest)
    second = state.accept(4, quest)

    assert second is first
    assert len(state.active_quests) == 1
    assert state.active_quest(1) is first
    assert state.active_quest(4) is None


def test_complete_awards_once_and_clears_active_record() -> None:
    state = GameState()
    quest = _quest("q1")
    state.record_scan([quest, _quest("q2")])
    state.accept(1, quest)

    outcome = state.complete(quest)

    assert outcome.xp_gained == 10
    assert outcome.total_xp == 10
    assert not outcome.leveled_up
    assert [badge.id for badge in outcome.new_badges] == ["first-blood"]
    assert state.xp == 10
    assert state.player.quests_completed == 1
    assert state.is_completed("q1")
    assert not state.is_active("q1")
    assert state.badge_ids == ["first-blood"]
    assert state.remaining_in_last_scan() == 1

    with pytest.raises(DuplicateCompletionError):
        state.complete(quest)
    assert state.xp == 10
    assert len(state.completed_quests) == 1


def test_completing_last_quest_of_scan_sets_flag_before_badges() -> None:
    state = GameState()
    quest = _quest("q1")
    state.record_scan([quest])

    outcome = state.complete(quest)

    assert state.last_scan_all_completed
    assert "perfectionist" in [badge.id for badge in outcome.new_badges]


def test_record_scan_recomputes_completion_flag() -> None:
    state = GameState()
    quest = _quest("q1")
    state.record_scan([quest])
    state.complete(quest)
    assert state.last_scan_all_completed

    state.record_scan([quest, _quest("q2")])
    assert not state.last_scan_all_completed

    state.record_scan([])
    assert not state.last_scan_all_completed

    state.record_scan([quest])
    assert state.last_scan_all_completed


def test_record_scan_leaves_lifecycle_records_alone() -> None:
    state = GameState()
    quest = _quest("q1")
    state.accept(1, quest)

    state.record_scan([_quest("other")])

    assert state.is_active("q1")
    assert [item.id for item in state.last_scan] == ["other"]


def test_store_round_trip(tmp_path: Path) -> None:
    store = StateStore(tmp_path)
    state = store.load()
    quest = _quest("q1")
    state.record_scan([quest, _quest("t1", "todo-hunter", 2, 15)])
    state.accept(1, quest)
    state.accept(2, state.last_scan[1])
    state.complete(quest)
    store.save(state)

    loaded = StateStore(tmp_path).load()

    assert loaded.xp == 10
    assert loaded.badge_ids == ["first-blood"]
    assert [item.id for item in loaded.completed_quests] == ["q1"]
    assert [item.quest_number for item in loaded.active_quests] == [2]
    assert loaded.active_quests[0].quest == state.last_scan[1]
    assert loaded.last_scan == state.last_scan
    assert loaded.revision == 1

    payload = json.loads((tmp_path / ".git-quest.json").read_text(encoding="utf-8"))
    assert payload["state_schema_version"] == "0.1"
    assert payload["player"]["quests_completed"] == 1


def test_missing_document_yields_defaults(tmp_path: Path) -> None:
    store = StateStore(tmp_path)
    state = store.load()

    assert state.xp == 0
    assert state.completed_quests == []
    assert store.last_reset_backup is None


def test_corrupt_document_is_backed_up(tmp_path: Path) -> None:
    path = tmp_path / ".git-quest.json"
    path.write_text("{not json", encoding="utf-8")
    store = StateStore(tmp_path)

    state = store.load()

    assert state.xp == 0
    assert store.last_reset_backup is not None
    assert store.last_reset_backup.name.startswith(".git-quest.json.corrupt-")
    assert store.last_reset_backup.read_text(encoding="utf-8") == "{not json"
    assert not path.exists()
    store.save(state)
    assert json.loads(path.read_text(encoding="utf-8"))["revision"] == 1


def test_schema_violation_is_backed_up(tmp_path: Path) -> None:
    path = tmp_path / ".git-quest.json"
    path.write_text(json.dumps({"player": {"xp": -5}, "revision": 7}), encoding="utf-8")
    store = StateStore(tmp_path)

    state = store.load()

    assert state.xp == 0
    assert store.last_reset_backup is not None
    assert state.revision == 7
    store.save(state)
    assert json.loads(path.read_text(encoding="utf-8"))["revision"] == 8


def test_repeated_loads_of_corrupt_document_back_up_once(tmp_path: Path) -> None:
    (tmp_path / ".git-quest.json").write_text("{not json", encoding="utf-8")
    store = StateStore(tmp_path)

    store.load()
    first_backup = store.last_reset_backup
    store.load()
    store.load()

    assert first_backup is not None
    assert store.last_reset_backup is None
    assert list(tmp_path.glob(".git-quest.json.corrupt-*")) == [first_backup]


def test_transactions_in_one_process_run_one_after_another(tmp_path: Path) -> None:
    store = StateStore(tmp_path)
    conflicts: list[StateConflictError] = []

    def _second_writer() -> None:
        try:
            with store.transaction() as state:
                state.record_scan([_quest("q2")])
        except StateConflictError as exc:
            conflicts.append(exc)

    with store.transaction() as state:
        writer = threading.Thread(target=_second_writer)
        writer.start()
        writer.join(timeout=0.2)
        assert writer.is_alive()
        state.record_scan([_quest("q1")])
    writer.join(timeout=5)

    assert not writer.is_alive()
    assert conflicts == []
    loaded = store.load()
    assert [quest.id for quest in loaded.last_scan] == ["q2"]
    assert loaded.revision == 2


def test_save_rejects_concurrent_writer(tmp_path: Path) -> None:
    first = StateStore(tmp_path)
    second = StateStore(tmp_path)
    stale = first.load()
    fresh = second.load()
    fresh.record_scan([_quest("q1")])
    second.save(fresh)

    stale.record_scan([_quest("q2")])
    with pytest.raises(StateConflictError) as excinfo:
        first.save(stale)

    assert excinfo.value.code == "STATE_CONFLICT"
    assert [quest.id for quest in StateStore(tmp_path).load().last_scan] == ["q1"]


def test_transaction_discards_changes_on_error(tmp_path: Path) -> None:
    store = StateStore(tmp_path)

    with pytest.raises(RuntimeError):
        with store.transaction() as state:
            state.record_scan([_quest("q1")])
            raise RuntimeError("boom")

    assert not (tmp_path / ".git-quest.json").exists()

    with store.transaction() as state:
        state.record_scan([_quest("q1")])
    assert [quest.id for quest in store.load().last_scan] == ["q1"]


def test_duplicate_badge_ids_are_dropped_on_load() -> None:
    state = GameState.from_dict(
        {
            "player": {"xp": 10, "quests_completed": 1},
            "completed_quests": [],
            "active_quests": [],
            "badge_ids": ["first-blood", "first-blood"],
        }
    )

    assert state.badge_ids == ["first-blood"]
