from __future__ import annotations

"""Persisted player progress, quest lifecycle records, and their transitions."""

import json
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Iterator

from jsonschema import Draft202012Validator

from quest_scan.models import QuestDefinition

from .badges import Badge, check_new_badges
from .errors import DuplicateCompletionError, StateConflictError
from .paths import STATE_FILE_NAME
from .progression import Level, add_xp


STATE_SCHEMA_VERSION = "0.1"

_QUEST_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["id", "file_path", "scanner", "difficulty", "xp"],
    "properties": {
        "id": {"type": "string"},
        "title": {"type": "string"},
        "description": {"type": "string"},
        "file_path": {"type": "string"},
        "line": {"type": ["integer", "null"], "minimum": 1},
        "scanner": {"type": "string"},
        "difficulty": {"type": "integer", "minimum": 1, "maximum": 4},
        "xp": {"type": "integer", "minimum": 0},
        "hint": {"type": "string"},
    },
}

STATE_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["player", "completed_quests", "active_quests", "badge_ids"],
    "properties": {
        "state_schema_version": {"type": "string"},
        "revision": {"type": "integer", "minimum": 0},
        "player": {
            "type": "object",
            "required": ["xp", "quests_completed"],
            "properties": {
                "xp": {"type": "integer", "minimum": 0},
                "quests_completed": {"type": "integer", "minimum": 0},
                "first_played": {"type": "string"},
                "last_played": {"type": "string"},
            },
        },
        "completed_quests": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "scanner", "difficulty", "xp"],
                "properties": {
                    "id": {"type": "string"},
                    "scanner": {"type": "string"},
                    "difficulty": {"type": "integer"},
                    "xp": {"type": "integer", "minimum": 0},
                    "completed_at": {"type": "string"},
                },
            },
        },
        "active_quests": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "quest_number", "quest"],
                "properties": {
                    "id": {"type": "string"},
                    "quest_number": {"type": "integer", "minimum": 1},
                    "quest": _QUEST_SCHEMA,
                    "accepted_at": {"type": "string"},
                },
            },
        },
        "badge_ids": {"type": "array", "items": {"type": "string"}},
        "last_scan": {"type": "array", "items": _QUEST_SCHEMA},
        "last_scan_all_completed": {"type": "boolean"},
    },
}
_STATE_VALIDATOR = Draft202012Validator(STATE_SCHEMA)


def _now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


@dataclass
class Player:
    xp: int = 0
    quests_completed: int = 0
    first_played: str = field(default_factory=_now_iso)
    last_played: str = field(default_factory=_now_iso)


@dataclass(frozen=True)
class ActiveQuest:
    id: str
    quest_number: int
    quest: QuestDefinition
    accepted_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "quest_number": self.quest_number,
            "quest": self.quest.to_dict(),
            "accepted_at": self.accepted_at,
        }


@dataclass(frozen=True)
class CompletedQuest:
    id: str
    scanner: str
    difficulty: int
    xp: int
    completed_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "scanner": self.scanner,
            "difficulty": self.difficulty,
            "xp": self.xp,
            "completed_at": self.completed_at,
        }


@dataclass(frozen=True)
class CompletionOutcome:
    xp_gained: int
    total_xp: int
    leveled_up: bool
    new_level: Level | None
    new_badges: list[Badge]

    def to_dict(self) -> dict[str, Any]:
        return {
            "xp_gained": self.xp_gained,
            "total_xp": self.total_xp,
            "leveled_up": self.leveled_up,
            "new_level": self.new_level.to_dict() if self.new_level else None,
            "new_badges": [badge.to_dict() for badge in self.new_badges],
        }


@dataclass
class GameState:
    """Aggregate owning every persisted record; mutated only via its transitions."""

    player: Player = field(default_factory=Player)
    completed_quests: list[CompletedQuest] = field(default_factory=list)
    active_quests: list[ActiveQuest] = field(default_factory=list)
    badge_ids: list[str] = field(default_factory=list)
    last_scan: list[QuestDefinition] = field(default_factory=list)
    last_scan_all_completed: bool = False
    revision: int = 0

    @property
    def xp(self) -> int:
        return self.player.xp

    def is_completed(self, quest_id: str) -> bool:
        return any(item.id == quest_id for item in self.completed_quests)

    def completed_by_scanner(self, scanner: str) -> int:
        return sum(1 for item in self.completed_quests if item.scanner == scanner)

    def active_quest(self, quest_number: int) -> ActiveQuest | None:
        for item in self.active_quests:
            if item.quest_number == quest_number:
                return item
        return None

    def is_active(self, quest_id: str) -> bool:
        return any(item.id == quest_id for item in self.active_quests)

    def remaining_in_last_scan(self) -> int:
        return sum(1 for quest in self.last_scan if not self.is_completed(quest.id))

    def _all_completed_in_last_scan(self) -> bool:
        return bool(self.last_scan) and all(self.is_completed(quest.id) for quest in self.last_scan)

    def record_scan(self, quests: list[QuestDefinition]) -> None:
        self.last_scan = list(quests)
        self.last_scan_all_completed = self._all_completed_in_last_scan()

    def accept(self, quest_number: int, quest: QuestDefinition) -> ActiveQuest:
        for item in self.active_quests:
            if item.id == quest.id:
                return item
        active = ActiveQuest(id=quest.id, quest_number=quest_number, quest=quest, accepted_at=_now_iso())
        self.active_quests.append(active)
        return active

    def complete(self, quest: QuestDefinition) -> CompletionOutcome:
        """Award xp, record the completion, and collect newly earned badges as one unit."""

        if self.is_completed(quest.id):
            raise DuplicateCompletionError(quest.id)
        award = add_xp(self.player.xp, quest.xp)
        self.player.xp = award.new_xp
        self.completed_quests.append(
            CompletedQuest(
                id=quest.id,
                scanner=quest.scanner,
                difficulty=quest.difficulty,
                xp=quest.xp,
                completed_at=_now_iso(),
            )
        )
        self.player.quests_completed += 1
        self.active_quests = [item for item in self.active_quests if item.id != quest.id]
        self.last_scan_all_completed = self._all_completed_in_last_scan()
        new_badges = check_new_badges(self)
        self.badge_ids.extend(badge.id for badge in new_badges)
        return CompletionOutcome(
            xp_gained=quest.xp,
            total_xp=self.player.xp,
            leveled_up=award.leveled_up,
            new_level=award.new_level,
            new_badges=new_badges,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "state_schema_version": STATE_SCHEMA_VERSION,
            "revision": self.revision,
            "player": {
                "xp": self.player.xp,
                "quests_completed": self.player.quests_completed,
                "first_played": self.player.first_played,
                "last_played": self.player.last_played,
            },
            "completed_quests": [item.to_dict() for item in self.completed_quests],
            "active_quests": [item.to_dict() for item in self.active_quests],
            "badge_ids": list(self.badge_ids),
            "last_scan": [quest.to_dict() for quest in self.last_scan],
            "last_scan_all_completed": self.last_scan_all_completed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GameState":
        player_raw = data.get("player", {})
        now = _now_iso()
        player = Player(
            xp=int(player_raw.get("xp", 0)),
            quests_completed=int(player_raw.get("quests_completed", 0)),
            first_played=str(player_raw.get("first_played") or now),
            last_played=str(player_raw.get("last_played") or now),
        )
        completed = [
            CompletedQuest(
                id=str(item["id"]),
                scanner=str(item["scanner"]),
                difficulty=int(item["difficulty"]),
                xp=int(item["xp"]),
                completed_at=str(item.get("completed_at", "")),
            )
            for item in data.get("completed_quests", [])
        ]
        active = [
            ActiveQuest(
                id=str(item["id"]),
                quest_number=int(item["quest_number"]),
                quest=QuestDefinition.from_dict(item["quest"]),
                accepted_at=str(item.get("accepted_at", "")),
            )
            for item in data.get("active_quests", [])
        ]
        badge_ids: list[str] = []
        for badge_id in data.get("badge_ids", []):
            if badge_id not in badge_ids:
                badge_ids.append(str(badge_id))
        return cls(
            player=player,
            completed_quests=completed,
            active_quests=active,
            badge_ids=badge_ids,
            last_scan=[QuestDefinition.from_dict(item) for item in data.get("last_scan", [])],
            last_scan_all_completed=bool(data.get("last_scan_all_completed", False)),
            revision=int(data.get("revision", 0)),
        )


def _save_json(path: Path, value: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.parent / f".{path.name}.tmp"
    payload = json.dumps(value, indent=2, ensure_ascii=False)
    for attempt in range(5):
        temp_path.write_text(payload, encoding="utf-8")
        try:
            temp_path.replace(path)
            return
        except PermissionError:
            if attempt == 4:
                raise
            # On Windows, AV/indexers can briefly lock newly-written temp files.
            time.sleep(0.02 * (attempt + 1))


@dataclass
class StateStore:
    """Whole-document persistence for one working tree's `GameState`."""

    root: Path
    last_reset_backup: Path | None = field(default=None, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    @property
    def path(self) -> Path:
        return self.root / STATE_FILE_NAME

    def _set_aside(self, revision: int = 0) -> GameState:
        # Moved, not copied: the next load sees no document and resets nothing.
        stamp = datetime.now(tz=UTC).strftime("%Y%m%dT%H%M%S%fZ")
        backup = self.path.with_name(f"{self.path.name}.corrupt-{stamp}")
        self.path.replace(backup)
        self.last_reset_backup = backup
        return GameState(revision=revision)

    def load(self) -> GameState:
        """Read the document; unreadable or invalid content is moved aside and replaced by defaults."""

        self.last_reset_backup = None
        if not self.path.exists():
            return GameState()
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError):
            return self._set_aside()
        except OSError:
            return GameState()
        if not isinstance(payload, dict):
            return self._set_aside()
        if next(_STATE_VALIDATOR.iter_errors(payload), None) is not None:
            revision = payload.get("revision")
            if isinstance(revision, int) and not isinstance(revision, bool) and revision >= 0:
                return self._set_aside(revision)
            return self._set_aside()
        return GameState.from_dict(payload)

    def _disk_revision(self) -> int | None:
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError, UnicodeDecodeError):
            return None
        if not isinstance(payload, dict):
            return None
        revision = payload.get("revision")
        if isinstance(revision, int) and not isinstance(revision, bool):
            return revision
        return None

    def save(self, state: GameState) -> None:
        """Write the whole document, refusing if another writer bumped the revision."""

        found = self._disk_revision()
        if found is not None and found != state.revision:
            raise StateConflictError(expected=state.revision, found=found)
        state.player.last_played = _now_iso()
        state.revision += 1
        _save_json(self.path, state.to_dict())

    @contextmanager
    def transaction(self) -> Iterator[GameState]:
        """Load, hand out, and save the document while holding this store's lock."""

        with self._lock:
            state = self.load()
            yield state
            self.save(state)
