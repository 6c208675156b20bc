from __future__ import annotations

"""Quest lifecycle orchestration: scan, accept, verify, and progress queries."""

import hashlib
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator

from quest_scan.models import DETECTOR_TAGS, QuestDefinition
from quest_scan.scan import scan_tree

from .badges import BADGES
from .config import ProjectConfig, load_project_config
from .errors import QuestRequestError, UnknownScannerError
from .paths import discover_project_root, ensure_home_dirs, gitquest_home
from .progression import progress_for
from .state import GameState, StateStore
from .telemetry import TelemetryLogger, sanitize_actor_id
from .verification import verify


VALID_LOG_STATUSES = ("all", "active", "completed", "available")
RECENT_COMPLETIONS = 10


def _in_scope(quest: QuestDefinition, prefix: str | None) -> bool:
    if prefix is None:
        return True
    return quest.file_path == prefix or quest.file_path.startswith(f"{prefix}/")


@dataclass
class QuestService:
    """Command surface shared by the CLI, HTTP API, and MCP server.

    Each public operation is one load-mutate-save transaction against the
    working tree's `.git-quest.json` and returns a JSON-serializable dict.
    Invalid requests raise `QuestRequestError` without mutating state.
    """

    root: Path
    home: Path
    store: StateStore
    config: ProjectConfig
    telemetry: TelemetryLogger

    @classmethod
    def create(cls, root: Path | None = None) -> "QuestService":
        project_root = (root or discover_project_root()).resolve()
        home = gitquest_home()
        dirs = ensure_home_dirs(home)
        telemetry = TelemetryLogger(events_path=dirs["telemetry"] / "events.jsonl")
        service = cls(
            root=project_root,
            home=home,
            store=StateStore(project_root),
            config=load_project_config(project_root),
            telemetry=telemetry,
        )
        service.telemetry.log_event(
            "runner.started",
            actor="system",
            actor_id="system:runner",
            source="cli",
            data={"root_hash": hashlib.sha256(str(project_root).encode("utf-8")).hexdigest()},
        )
        return service

    def _emit_event(
        self,
        event_type: str,
        *,
        actor: str,
        actor_id: str | None,
        source: str,
        data: dict[str, Any],
        trace_id: str | None = None,
    ) -> None:
        self.telemetry.log_event(
            event_type,
            actor=actor,
            actor_id=sanitize_actor_id(actor_id),
            source=source,
            data=data,
            trace_id=trace_id,
        )

    @contextmanager
    def _rejections(self, operation: str, caller: dict[str, Any]) -> Iterator[None]:
        try:
            yield
        except QuestRequestError as exc:
            self._emit_event(
                "request.rejected",
                **caller,
                data={"operation": operation, "code": exc.code, "message": exc.message},
            )
            raise

    @contextmanager
    def _transaction(self, caller: dict[str, Any]) -> Iterator[GameState]:
        with self.store.transaction() as state:
            self._note_reset(caller)
            yield state

    def _load(self, caller: dict[str, Any]) -> GameState:
        state = self.store.load()
        self._note_reset(caller)
        return state

    def _note_reset(self, caller: dict[str, Any]) -> None:
        backup = self.store.last_reset_backup
        if backup is not None:
            self._emit_event("state.reset", **caller, data={"backup": backup.name})

    def _scan_scope(self, path: str | None) -> str | None:
        if not path:
            return None
        target = Path(path).expanduser()
        if not target.is_absolute():
            target = self.root / target
        target = target.resolve()
        try:
            relative = target.relative_to(self.root)
        except ValueError as exc:
            raise QuestRequestError(
                "PATH_OUTSIDE_ROOT",
                f"{path} is outside the project root {self.root}.",
                hint="Scan a directory inside the project, or set GITQUEST_ROOT.",
                path=path,
            ) from exc
        if not target.is_dir():
            raise QuestRequestError("PATH_NOT_DIRECTORY", f"{path} is not a directory.", path=path)
        prefix = relative.as_posix()
        return None if prefix == "." else prefix

    def _resolve_scanners(self, scanner: str) -> tuple[str, ...]:
        if scanner == "all":
            return self.config.scanners
        if scanner not in DETECTOR_TAGS:
            raise UnknownScannerError(scanner)
        return (scanner,)

    @staticmethod
    def _status(state: GameState, quest: QuestDefinition) -> str:
        if state.is_completed(quest.id):
            return "completed"
        if state.is_active(quest.id):
            return "active"
        return "available"

    @staticmethod
    def _player_summary(state: GameState) -> dict[str, Any]:
        return {"xp": state.xp, "progress": progress_for(state.xp).to_dict()}

    def scan(
        self,
        path: str | None = None,
        scanner: str = "all",
        *,
        actor: str = "human",
        source: str = "cli",
        actor_id: str = "unknown",
        trace_id: str | None = None,
    ) -> dict[str, Any]:
        """Run the detectors, synthesize boss quests, and replace the scan snapshot."""

        caller = {"actor": actor, "source": source, "actor_id": actor_id, "trace_id": trace_id}
        with self._rejections("scan", caller):
            scanners = self._resolve_scanners(scanner)
            prefix = self._scan_scope(path)
            quests = [
                quest
                for quest in scan_tree(self.root, scanners, self.config.exclude_dirs)
                if _in_scope(quest, prefix)
            ]
            with self._transaction(caller) as state:
                state.record_scan(quests)
                board = [
                    {"number": number, "status": self._status(state, quest), **quest.to_dict()}
                    for number, quest in enumerate(quests, start=1)
                ]
                player = self._player_summary(state)

        by_scanner: dict[str, int] = {}
        for quest in quests:
            by_scanner[quest.scanner] = by_scanner.get(quest.scanner, 0) + 1
        self._emit_event(
            "scan.completed",
            **caller,
            data={"scanner": scanner, "scope": prefix or ".", "count": len(quests), "by_scanner": by_scanner},
        )
        return {"scanner": scanner, "scope": prefix or ".", "count": len(quests), "quests": board, "player": player}

    def accept(
        self,
        quest_number: int,
        *,
        actor: str = "human",
        source: str = "cli",
        actor_id: str = "unknown",
        trace_id: str | None = None,
    ) -> dict[str, Any]:
        """Accept the quest at a 1-based position in the last scan; repeat accepts are no-ops."""

        caller = {"actor": actor, "source": source, "actor_id": actor_id, "trace_id": trace_id}
        with self._rejections("accept", caller):
            with self._transaction(caller) as state:
                if not state.last_scan:
                    raise QuestRequestError(
                        "NO_SCAN",
                        "No quests available.",
                        hint="Run `git-quest scan` first.",
                    )
                if quest_number < 1 or quest_number > len(state.last_scan):
                    raise QuestRequestError(
                        "QUEST_NOT_FOUND",
                        f"Invalid quest number. Choose between 1 and {len(state.last_scan)}.",
                        quest_number=quest_number,
                    )
                quest = state.last_scan[quest_number - 1]
                if state.is_completed(quest.id):
                    raise QuestRequestError(
                        "QUEST_ALREADY_COMPLETED",
                        f'Quest "{quest.title}" is already completed.',
                        quest_number=quest_number,
                        quest_id=quest.id,
                    )
                holder = state.active_quest(quest_number)
                if holder is not None and holder.id != quest.id:
                    raise QuestRequestError(
                        "QUEST_NUMBER_IN_USE",
                        f'Quest #{quest_number} is still held by "{holder.quest.title}" from an earlier scan.',
                        hint=f"Finish it with `git-quest verify {quest_number}` before accepting another quest #{quest_number}.",
                        quest_number=quest_number,
                        quest_id=quest.id,
                        active_quest_id=holder.id,
                    )
                already_active = state.is_active(quest.id)
                active = state.accept(quest_number, quest)

        if not already_active:
            self._emit_event(
                "quest.accepted",
                **caller,
                data={"quest_id": quest.id, "scanner": quest.scanner, "quest_number": active.quest_number},
            )
        return {
            "quest_number": active.quest_number,
            "already_active": already_active,
            "accepted_at": active.accepted_at,
            "quest": active.quest.to_dict(),
        }

    def verify(
        self,
        quest_number: int,
        *,
        actor: str = "human",
        source: str = "cli",
        actor_id: str = "unknown",
        trace_id: str | None = None,
    ) -> dict[str, Any]:
        """Re-inspect the working tree for an active quest and complete it when resolved."""

        caller = {"actor": actor, "source": source, "actor_id": actor_id, "trace_id": trace_id}
        with self._rejections("verify", caller):
            with self._transaction(caller) as state:
                active = state.active_quest(quest_number)
                if active is None:
                    if 1 <= quest_number <= len(state.last_scan) and state.is_completed(
                        state.last_scan[quest_number - 1].id
                    ):
                        raise QuestRequestError(
                            "QUEST_ALREADY_COMPLETED",
                            f"Quest #{quest_number} is already completed.",
                            quest_number=quest_number,
                        )
                    raise QuestRequestError(
                        "QUEST_NOT_ACTIVE",
                        f"No active quest #{quest_number}.",
                        hint=f"Accept it first with `git-quest accept {quest_number}`.",
                        quest_number=quest_number,
                    )
                quest = active.quest
                verdict = verify(active, self.root, state)
                self._emit_event(
                    "quest.verified",
                    **caller,
                    data={"quest_id": quest.id, "scanner": quest.scanner, "resolved": verdict.resolved},
                )
                if not verdict.resolved:
                    self._emit_event(
                        "quest.failed",
                        **caller,
                        data={"quest_id": quest.id, "scanner": quest.scanner, "reason": verdict.detail},
                    )
                    return {
                        "quest_number": quest_number,
                        "resolved": False,
                        "detail": verdict.detail,
                        "quest": quest.to_dict(),
                    }
                if state.is_completed(quest.id):
                    raise QuestRequestError(
                        "QUEST_ALREADY_COMPLETED",
                        f'Quest "{quest.title}" is already completed.',
                        quest_number=quest_number,
                        quest_id=quest.id,
                    )
                outcome = state.complete(quest)
                remaining = state.remaining_in_last_scan()
                progress = progress_for(state.xp)

        self._emit_event(
            "quest.completed",
            **caller,
            data={
                "quest_id": quest.id,
                "scanner": quest.scanner,
                "difficulty": quest.difficulty,
                "xp_gained": outcome.xp_gained,
                "total_xp": outcome.total_xp,
            },
        )
        if outcome.leveled_up and outcome.new_level is not None:
            self._emit_event("level.up", **caller, data={"level": outcome.new_level.name, "total_xp": outcome.total_xp})
        for badge in outcome.new_badges:
            self._emit_event("badge.earned", **caller, data={"badge_id": badge.id, "quest_id": quest.id})
        return {
            "quest_number": quest_number,
            "resolved": True,
            "detail": verdict.detail,
            "quest": quest.to_dict(),
            **outcome.to_dict(),
            "remaining": remaining,
            "progress": progress.to_dict(),
        }

    def stats(
        self,
        *,
        actor: str = "human",
        source: str = "cli",
        actor_id: str = "unknown",
        trace_id: str | None = None,
    ) -> dict[str, Any]:
        caller = {"actor": actor, "source": source, "actor_id": actor_id, "trace_id": trace_id}
        state = self._load(caller)
        earned = set(state.badge_ids)
        return {
            "xp": state.xp,
            "quests_completed": state.player.quests_completed,
            "first_played": state.player.first_played,
            "last_played": state.player.last_played,
            "progress": progress_for(state.xp).to_dict(),
            "badges": [{**badge.to_dict(), "earned": badge.id in earned} for badge in BADGES],
            "completed_by_scanner": {
                tag: state.completed_by_scanner(tag)
                for tag in sorted({item.scanner for item in state.completed_quests})
            },
            "recent_completions": [item.to_dict() for item in state.completed_quests[-RECENT_COMPLETIONS:]],
        }

    def log(
        self,
        status: str = "all",
        *,
        actor: str = "human",
        source: str = "cli",
        actor_id: str = "unknown",
        trace_id: str | None = None,
    ) -> dict[str, Any]:
        """Active, completed, and still-available quests, filtered by `status`."""

        caller = {"actor": actor, "source": source, "actor_id": actor_id, "trace_id": trace_id}
        with self._rejections("log", caller):
            if status not in VALID_LOG_STATUSES:
                raise QuestRequestError(
                    "STATUS_INVALID",
                    f"Unknown quest status filter: {status}",
                    hint=f"Use one of: {', '.join(VALID_LOG_STATUSES)}.",
                    status=status,
                )
            state = self._load(caller)

        payload: dict[str, Any] = {"status": status}
        if status in {"all", "active"}:
            payload["active"] = [item.to_dict() for item in state.active_quests]
        if status in {"all", "completed"}:
            payload["completed"] = [item.to_dict() for item in state.completed_quests]
        if status in {"all", "available"}:
            payload["available"] = [
                {"number": number, **quest.to_dict()}
                for number, quest in enumerate(state.last_scan, start=1)
                if self._status(state, quest) == "available"
            ]
        return payload

    def telemetry_status(self) -> dict[str, Any]:
        return {
            "events_path": str(self.telemetry.events_path),
            "event_count": self.telemetry.count_events(),
            "build": self.telemetry.build.to_dict(),
        }

    def telemetry_summary(self, range_value: str = "7d") -> dict[str, Any]:
        return self.telemetry.summarize(range_value)

    def telemetry_purge(self) -> dict[str, Any]:
        return {"purged": self.telemetry.purge(), "events_path": str(self.telemetry.events_path)}
