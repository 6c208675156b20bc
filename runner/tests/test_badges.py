from __future__ import annotations

from gitquest_runner.badges import BADGES_BY_ID, check_new_badges
from gitquest_runner.state import CompletedQuest, GameState


def _completed(quest_id: str, scanner: str, difficulty: int = 1) -> CompletedQuest:
    return CompletedQuest(id=quest_id, scanner=scanner, difficulty=difficulty, xp=10, completed_at="2026-01-01T00:00:00+00:00")


def test_no_badges_for_fresh_state() -> None:
    assert check_new_badges(GameState()) == []


def test_first_blood_and_dragon_slayer() -> None:
    state = GameState(completed_quests=[_completed("missing-tests-a-ts", "missing-tests", 3)])

    assert [badge.id for badge in check_new_badges(state)] == ["first-blood", "dragon-slayer"]


def test_scanner_count_badges() -> None:
    completed = [_completed(f"docs-{i}", "missing-docs") for i in range(3)]
    completed += [_completed(f"todo-{i}", "todo-hunter", 2) for i in range(5)]
    completed += [_completed(f"tests-{i}", "missing-tests", 3) for i in range(2)]
    state = GameState(completed_quests=completed, badge_ids=["first-blood", "dragon-slayer"])

    assert [badge.id for badge in check_new_badges(state)] == ["scribe", "exterminator"]


def test_boss_slayer_and_perfectionist() -> None:
    state = GameState(
        completed_quests=[_completed("boss-auth", "boss", 4)],
        badge_ids=["first-blood"],
        last_scan_all_completed=True,
    )

    assert [badge.id for badge in check_new_badges(state)] == ["boss-slayer", "perfectionist"]


def test_earned_badges_are_never_returned_again() -> None:
    state = GameState(completed_quests=[_completed("missing-docs-a-ts-f", "missing-docs")])
    first = check_new_badges(state)
    state.badge_ids.extend(badge.id for badge in first)

    assert check_new_badges(state) == []


def test_badge_catalog_serializes_without_predicate() -> None:
    payload = BADGES_BY_ID["guardian"].to_dict()
    assert payload == {
        "id": "guardian",
        "name": "Guardian",
        "icon": "🛡️",
        "description": "Create 3 test files",
    }
