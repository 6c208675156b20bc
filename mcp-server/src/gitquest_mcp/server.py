from __future__ import annotations

"""MCP stdio server exposing the quest lifecycle as chat tools."""

import argparse
import json
import sys
import uuid
from pathlib import Path
from typing import Any

from gitquest_runner.config import ConfigError
from gitquest_runner.errors import QuestRequestError
from gitquest_runner.paths import discover_project_root
from gitquest_runner.render import (
    render_accepted,
    render_quest_board,
    render_quest_log,
    render_rejection,
    render_stats,
    render_verification,
)
from gitquest_runner.service import VALID_LOG_STATUSES, QuestService
from gitquest_runner.telemetry import detect_version
from quest_scan.models import DETECTOR_TAGS


MAX_STRING_LENGTH = 1024
MAX_ID_LENGTH = 200
SCANNER_CHOICES = ["all", *DETECTOR_TAGS]
ATTRIBUTION_PROPERTIES = {"actor_id": {"type": "string"}, "trace_id": {"type": "string"}}


TOOL_SCHEMAS = [
    {
        "name": "scan_quests",
        "description": (
            "Scan the current repository for maintenance quests. Returns a numbered quest board with "
            "difficulty ratings, XP rewards, and hints."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Project subdirectory to scan. Defaults to the whole project."},
                "scanner": {"type": "string", "enum": SCANNER_CHOICES},
                **ATTRIBUTION_PROPERTIES,
            },
            "additionalProperties": False,
        },
    },
    {
        "name": "accept_quest",
        "description": "Accept a quest by its number from the last scan and get instructions for completing it.",
        "input_schema": {
            "type": "object",
            "properties": {"quest_number": {"type": "integer", "minimum": 1}, **ATTRIBUTION_PROPERTIES},
            "required": ["quest_number"],
            "additionalProperties": False,
        },
    },
    {
        "name": "verify_quest",
        "description": "Re-inspect the code for an accepted quest. Awards XP and badges when the issue is resolved.",
        "input_schema": {
            "type": "object",
            "properties": {"quest_number": {"type": "integer", "minimum": 1}, **ATTRIBUTION_PROPERTIES},
            "required": ["quest_number"],
            "additionalProperties": False,
        },
    },
    {
        "name": "player_stats",
        "description": "Show level, XP, badges, and recent completions.",
        "input_schema": {"type": "object", "properties": dict(ATTRIBUTION_PROPERTIES), "additionalProperties": False},
    },
    {
        "name": "quest_log",
        "description": "Show active, completed, and available quests.",
        "input_schema": {
            "type": "object",
            "properties": {"status": {"type": "string", "enum": list(VALID_LOG_STATUSES)}, **ATTRIBUTION_PROPERTIES},
            "additionalProperties": False,
        },
    },
]
TOOL_NAMES = {tool["name"] for tool in TOOL_SCHEMAS}


def _text(text: str, *, is_error: bool = False) -> dict[str, Any]:
    payload: dict[str, Any] = {"content": [{"type": "text", "text": text}]}
    if is_error:
        payload["isError"] = True
    return payload


class QuestBridge:
    """Dispatches validated tool calls to an in-process `QuestService`."""

    def __init__(self, service: QuestService, *, actor_id: str = "mcp:unknown") -> None:
        self.service = service
        self.actor_id = actor_id

    def _new_trace_id(self) -> str:
        return f"mcp:{uuid.uuid4()}"

    def call_tool(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        validate_tool_arguments(name, arguments)
        caller = {
            "actor": "agent",
            "source": "mcp",
            "actor_id": arguments.get("actor_id") or self.actor_id,
            "trace_id": arguments.get("trace_id") or self._new_trace_id(),
        }
        try:
            if name == "scan_quests":
                result = self.service.scan(arguments.get("path"), arguments.get("scanner", "all"), **caller)
                return _text(render_quest_board(result))
            if name == "accept_quest":
                return _text(render_accepted(self.service.accept(arguments["quest_number"], **caller)))
            if name == "verify_quest":
                return _text(render_verification(self.service.verify(arguments["quest_number"], **caller)))
            if name == "player_stats":
                return _text(render_stats(self.service.stats(**caller)))
            if name == "quest_log":
                return _text(render_quest_log(self.service.log(arguments.get("status", "all"), **caller)))
        except QuestRequestError as exc:
            return _text(render_rejection(exc.to_dict()), is_error=True)
        raise ValueError(f"Unknown tool: {name}")


def _validate_text(value: Any, *, field: str, max_length: int = MAX_STRING_LENGTH) -> None:
    if not isinstance(value, str):
        raise ValueError(f"{field} must be a string.")
    if len(value) > max_length:
        raise ValueError(f"{field} exceeds {max_length} characters.")
    if "\x00" in value:
        raise ValueError(f"{field} must not contain NUL characters.")


def _validate_quest_number(arguments: dict[str, Any]) -> None:
    if "quest_number" not in arguments:
        raise ValueError("quest_number is required.")
    value = arguments["quest_number"]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError("quest_number must be an integer.")


def validate_tool_arguments(name: str, arguments: dict[str, Any]) -> None:
    """Validate MCP tool arguments against the declared tool schemas."""

    if name not in TOOL_NAMES:
        raise ValueError(f"Unknown tool: {name}")
    if not isinstance(arguments, dict):
        raise ValueError("Tool arguments must be an object.")

    for key in ("actor_id", "trace_id"):
        if arguments.get(key) is not None:
            _validate_text(arguments[key], field=key, max_length=MAX_ID_LENGTH)

    schema = next(tool["input_schema"] for tool in TOOL_SCHEMAS if tool["name"] == name)
    unknown = sorted(key for key in arguments if key not in schema["properties"])
    if unknown:
        raise ValueError(f"{name} does not accept: {', '.join(unknown)}.")

    if name == "scan_quests":
        if arguments.get("path") is not None:
            _validate_text(arguments["path"], field="path")
        scanner = arguments.get("scanner", "all")
        if scanner not in SCANNER_CHOICES:
            raise ValueError(f"scanner must be one of: {', '.join(SCANNER_CHOICES)}.")
        return
    if name in {"accept_quest", "verify_quest"}:
        _validate_quest_number(arguments)
        return
    if name == "quest_log":
        status = arguments.get("status", "all")
        if status not in VALID_LOG_STATUSES:
            raise ValueError(f"status must be one of: {', '.join(VALID_LOG_STATUSES)}.")


def _write_response(response_id: Any, result: Any = None, error: str | None = None) -> None:
    payload: dict[str, Any] = {"jsonrpc": "2.0", "id": response_id}
    if error is not None:
        payload["error"] = {"message": error}
    else:
        payload["result"] = result
    sys.stdout.write(json.dumps(payload, ensure_ascii=False) + "\n")
    sys.stdout.flush()


def serve_stdio(bridge: QuestBridge) -> int:
    """Serve newline-delimited MCP-style JSON-RPC requests over stdio."""

    for line in sys.stdin:
        line = line.strip()
        if not line:
            continue
        try:
            msg = json.loads(line)
        except json.JSONDecodeError:
            _write_response(None, error="Invalid JSON input.")
            continue
        if not isinstance(msg, dict):
            _write_response(None, error="Request must be a JSON object.")
            continue

        response_id = msg.get("id")
        method = msg.get("method")
        params = msg.get("params") or {}
        try:
            if method == "initialize":
                _write_response(response_id, {"server": "git-quest", "version": detect_version()})
            elif method == "tools/list":
                _write_response(response_id, {"tools": TOOL_SCHEMAS})
            elif method == "tools/call":
                result = bridge.call_tool(params.get("name"), params.get("arguments") or {})
                _write_response(response_id, result)
            else:
                _write_response(response_id, error=f"Unsupported method: {method}")
        except Exception as exc:  # noqa: BLE001
            _write_response(response_id, error=str(exc))
    return 0


def main() -> int:
    """CLI entrypoint for stdio server mode or one-shot tool invocation."""

    parser = argparse.ArgumentParser(description="git-quest MCP server over stdio.")
    parser.add_argument("--root", default=None, help="Project root. Defaults to GITQUEST_ROOT or discovery from cwd.")
    parser.add_argument("--actor-id", default="mcp:unknown", help="Default actor id for MCP-originated calls.")
    parser.add_argument("--tool", help="Optional direct tool call mode.")
    parser.add_argument("--args-json", default="{}", help="Tool arguments in JSON.")
    args = parser.parse_args()

    root = Path(args.root).expanduser() if args.root else discover_project_root()
    try:
        service = QuestService.create(root)
    except ConfigError as exc:
        print(f"Invalid project config: {exc}", file=sys.stderr)
        return 2
    bridge = QuestBridge(service, actor_id=args.actor_id)
    if args.tool:
        tool_args = json.loads(args.args_json)
        print(json.dumps(bridge.call_tool(args.tool, tool_args), indent=2, ensure_ascii=False))
        return 0
    return serve_stdio(bridge)


if __name__ == "__main__":
    raise SystemExit(main())
