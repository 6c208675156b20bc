from __future__ import annotations

"""Append-only JSONL event log for quest lifecycle activity."""

import json
import platform
import re
import sys
import unicodedata
import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from importlib.metadata import PackageNotFoundError, version as package_version
from pathlib import Path
from typing import Any


SCHEMA_VERSION = "0.1"
VALID_EVENT_TYPES = {
    "runner.started",
    "scan.completed",
    "quest.accepted",
    "quest.verified",
    "quest.failed",
    "quest.completed",
    "badge.earned",
    "level.up",
    "request.rejected",
    "state.reset",
    "risk.flagged",
}
VALID_ACTOR_KINDS = {"human", "agent", "system"}
VALID_SOURCES = {"cli", "api", "mcp"}
MAX_STRING_LENGTH = 200
RANGE_PATTERN = re.compile(r"^(\d+)([dh])$")


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


def _utc_now_rfc3339() -> str:
    return _utc_now().replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _parse_ts(value: Any) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _safe_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=True)


def _strip_control_chars(value: str) -> str:
    return "".join(ch for ch in value if not unicodedata.category(ch).startswith("C"))


@dataclass(frozen=True)
class BuildInfo:
    """Static build/runtime metadata attached to every event."""

    version: str
    python_version: str
    platform: str

    def to_dict(self) -> dict[str, Any]:
        return {"version": self.version, "python_version": self.python_version, "platform": self.platform}


def sanitize_text(value: str) -> tuple[str, bool]:
    """Strip control characters and truncate; returns `(text, truncated)`."""

    cleaned = _strip_control_chars(value).strip()
    if len(cleaned) > MAX_STRING_LENGTH:
        return f"{cleaned[:MAX_STRING_LENGTH]}...[truncated]", True
    return cleaned, False


def sanitize_actor_id(value: Any) -> str:
    text = "" if value is None else str(value)
    sanitized, _ = sanitize_text(text)
    return sanitized or "unknown"


def sanitize_event_data(data: Any) -> tuple[Any, int]:
    """Recursively sanitize an event payload; returns `(payload, truncated_count)`."""

    if isinstance(data, dict):
        sanitized: dict[str, Any] = {}
        truncated = 0
        for key, value in data.items():
            key_text, key_cut = sanitize_text(str(key))
            value_sanitized, value_cut = sanitize_event_data(value)
            sanitized[key_text] = value_sanitized
            truncated += int(key_cut) + value_cut
        return sanitized, truncated
    if isinstance(data, (list, tuple)):
        items: list[Any] = []
        truncated = 0
        for item in data:
            item_sanitized, item_cut = sanitize_event_data(item)
            items.append(item_sanitized)
            truncated += item_cut
        return items, truncated
    if data is None or isinstance(data, (bool, int, float)):
        return data, 0
    text, cut = sanitize_text(str(data))
    return text, int(cut)


def parse_range(range_value: str) -> timedelta:
    """Parse compact duration windows such as `7d` or `24h`."""

    match = RANGE_PATTERN.match(range_value.strip().lower())
    if not match:
        raise ValueError("range must be like 7d or 24h")
    amount = int(match.group(1))
    if amount <= 0:
        raise ValueError("range amount must be > 0")
    if match.group(2) == "d":
        return timedelta(days=amount)
    return timedelta(hours=amount)


def detect_version() -> str:
    try:
        return package_version("git-quest")
    except PackageNotFoundError:
        return "0.1.0"


class TelemetryLogger:
    """Append-only event logger; write failures go to stderr and never propagate."""

    def __init__(self, events_path: Path) -> None:
        self.events_path = events_path
        self.events_path.parent.mkdir(parents=True, exist_ok=True)
        self.build = BuildInfo(
            version=detect_version(),
            python_version=sys.version.split()[0],
            platform=platform.platform(),
        )

    def _append_jsonl(self, payload: dict[str, Any]) -> None:
        self.events_path.parent.mkdir(parents=True, exist_ok=True)
        with self.events_path.open("a", encoding="utf-8", newline="\n") as handle:
            handle.write(_safe_json(payload))
            handle.write("\n")

    def log_event(
        self,
        event_type: str,
        *,
        actor: str,
        source: str,
        data: dict[str, Any],
        actor_id: str | None = None,
        trace_id: str | None = None,
    ) -> None:
        try:
            if event_type not in VALID_EVENT_TYPES:
                data = {"reason": "invalid_event_type", "requested_event_type": event_type}
                event_type = "risk.flagged"
            sanitized, truncated = sanitize_event_data(data)
            payload = {
                "schema_version": SCHEMA_VERSION,
                "event_id": str(uuid.uuid4()),
                "ts": _utc_now_rfc3339(),
                "event_type": event_type,
                "actor": {
                    "kind": actor if actor in VALID_ACTOR_KINDS else "system",
                    "id": sanitize_actor_id(actor_id),
                },
                "source": source if source in VALID_SOURCES else "cli",
                "trace_id": sanitize_actor_id(trace_id) if trace_id else None,
                "build": self.build.to_dict(),
                "data": sanitized,
            }
            if truncated:
                payload["fields_truncated_count"] = truncated
            self._append_jsonl(payload)
        except Exception as exc:  # noqa: BLE001
            print(f"[telemetry] failed to append event: {exc}", file=sys.stderr)

    def iter_events(self) -> list[dict[str, Any]]:
        if not self.events_path.exists():
            return []
        events: list[dict[str, Any]] = []
        with self.events_path.open("r", encoding="utf-8") as handle:
            for line in handle:
                line = line.strip()
                if not line:
                    continue
                try:
                    payload = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if isinstance(payload, dict):
                    events.append(payload)
        return events

    def count_events(self) -> int:
        return len(self.iter_events())

    def purge(self) -> bool:
        if not self.events_path.exists():
            return False
        self.events_path.unlink()
        return True

    def summarize(self, range_value: str = "7d") -> dict[str, Any]:
        """Counts of lifecycle events inside a trailing window."""

        end = _utc_now()
        start = end - parse_range(range_value)
        in_window = []
        for event in self.iter_events():
            ts = _parse_ts(event.get("ts"))
            if ts is not None and start <= ts <= end:
                in_window.append(event)

        by_type = Counter(str(event.get("event_type")) for event in in_window)
        completions = [event for event in in_window if event.get("event_type") == "quest.completed"]
        by_scanner = Counter(str(event.get("data", {}).get("scanner", "unknown")) for event in completions)
        attempts = by_type.get("quest.completed", 0) + by_type.get("quest.failed", 0)
        return {
            "schema_version": SCHEMA_VERSION,
            "generated_at": _utc_now_rfc3339(),
            "range": range_value,
            "events_considered": len(in_window),
            "events_by_type": dict(sorted(by_type.items())),
            "completions_by_scanner": dict(sorted(by_scanner.items())),
            "xp_awarded": sum(int(event.get("data", {}).get("xp_gained", 0)) for event in completions),
            "verify_success_rate": round(by_type.get("quest.completed", 0) / attempts, 4) if attempts else 0.0,
        }
