from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any, Callable
from uuid import uuid4

import uvicorn

from .api import create_app
from .config import ConfigError
from .errors import QuestRequestError
from .paths import discover_project_root
from .render import (
    render_accepted,
    render_quest_board,
    render_quest_log,
    render_rejection,
    render_stats,
    render_verification,
)
from .service import VALID_LOG_STATUSES, QuestService


MCP_SERVER_NAME = "git-quest"
DEFAULT_CLIENT_CONFIG = Path.home() / ".copilot" / "mcp-config.json"


def _service() -> QuestService:
    return QuestService.create(discover_project_root())


def register_mcp_server(config_path: Path) -> dict[str, Any]:
    """Add the git-quest stdio server to an MCP client config, keeping other entries."""

    config: dict[str, Any] = {}
    if config_path.exists():
        try:
            loaded = json.loads(config_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError):
            loaded = None
        if isinstance(loaded, dict):
            config = loaded
    servers = config.get("mcpServers")
    if not isinstance(servers, dict):
        servers = {}
        config["mcpServers"] = servers
    servers[MCP_SERVER_NAME] = {"command": "gitquest-mcp", "args": []}
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(config, indent=2), encoding="utf-8")
    return {"config_path": str(config_path), "server": MCP_SERVER_NAME, "entry": servers[MCP_SERVER_NAME]}


def _emit(result: dict[str, Any], as_json: bool, renderer: Callable[[dict[str, Any]], str]) -> None:
    if as_json:
        print(json.dumps(result, indent=2, ensure_ascii=False))
    else:
        print(renderer(result))


def main() -> int:
    parser = argparse.ArgumentParser(description="git-quest: turn code maintenance into quests")
    sub = parser.add_subparsers(dest="command", required=True)
    default_actor_id = os.environ.get("GITQUEST_ACTOR_ID", "unknown")

    def add_common(cmd: argparse.ArgumentParser) -> None:
        cmd.add_argument("--actor-id", default=default_actor_id, help="Event log actor identifier")
        cmd.add_argument("--json", action="store_true", help="Print the raw result as JSON")

    scan_cmd = sub.add_parser("scan", help="Scan the project for quests")
    scan_cmd.add_argument("path", nargs="?", default=None, help="Project subdirectory to scan")
    scan_cmd.add_argument(
        "--scanner",
        default="all",
        help="Detector to run: all, missing-docs, todo-hunter, or missing-tests",
    )
    add_common(scan_cmd)

    accept_cmd = sub.add_parser("accept", help="Accept a quest from the last scan")
    accept_cmd.add_argument("quest_number", type=int)
    add_common(accept_cmd)

    verify_cmd = sub.add_parser("verify", help="Verify an accepted quest and claim its reward")
    verify_cmd.add_argument("quest_number", type=int)
    add_common(verify_cmd)

    stats_cmd = sub.add_parser("stats", help="Show level, xp, and badges")
    add_common(stats_cmd)

    log_cmd = sub.add_parser("log", help="Show active, completed, and available quests")
    log_cmd.add_argument("--status", default="all", choices=list(VALID_LOG_STATUSES))
    add_common(log_cmd)

    api_cmd = sub.add_parser("api", help="Run local API server")
    api_cmd.add_argument("--host", default="127.0.0.1")
    api_cmd.add_argument("--port", type=int, default=8000)

    telemetry_cmd = sub.add_parser("telemetry", help="Event log operations")
    telemetry_sub = telemetry_cmd.add_subparsers(dest="telemetry_command", required=True)
    telemetry_sub.add_parser("status", help="Show event log status")
    telemetry_summary = telemetry_sub.add_parser("summary", help="Summarize recent quest activity")
    telemetry_summary.add_argument("--range", default="7d", help="Trailing window such as 7d or 24h")
    telemetry_sub.add_parser("purge", help="Delete the local event log")

    setup_cmd = sub.add_parser("setup", help="Register the MCP server with a client config")
    setup_cmd.add_argument("--config", default=str(DEFAULT_CLIENT_CONFIG), help="MCP client config JSON path")

    args = parser.parse_args()

    if args.command == "setup":
        result = register_mcp_server(Path(args.config).expanduser())
        print(json.dumps(result, indent=2))
        return 0

    try:
        service = _service()
    except ConfigError as exc:
        print(f"Invalid project config: {exc}", file=sys.stderr)
        return 2
    trace_id = f"cli:{uuid4()}"
    caller = {"actor": "human", "source": "cli", "trace_id": trace_id}

    try:
        if args.command == "scan":
            result = service.scan(args.path, args.scanner, actor_id=args.actor_id, **caller)
            _emit(result, args.json, render_quest_board)
            return 0

        if args.command == "accept":
            result = service.accept(args.quest_number, actor_id=args.actor_id, **caller)
            _emit(result, args.json, render_accepted)
            return 0

        if args.command == "verify":
            result = service.verify(args.quest_number, actor_id=args.actor_id, **caller)
            _emit(result, args.json, render_verification)
            return 0 if result["resolved"] else 1

        if args.command == "stats":
            _emit(service.stats(actor_id=args.actor_id, **caller), args.json, render_stats)
            return 0

        if args.command == "log":
            result = service.log(args.status, actor_id=args.actor_id, **caller)
            _emit(result, args.json, render_quest_log)
            return 0
    except QuestRequestError as exc:
        if getattr(args, "json", False):
            print(json.dumps(exc.to_dict(), indent=2, ensure_ascii=False), file=sys.stderr)
        else:
            print(render_rejection(exc.to_dict()), file=sys.stderr)
        return 1

    if args.command == "api":
        app = create_app(service)
        uvicorn.run(app, host=args.host, port=args.port, log_level="info")
        return 0

    if args.command == "telemetry":
        if args.telemetry_command == "status":
            print(json.dumps(service.telemetry_status(), indent=2))
            return 0
        if args.telemetry_command == "summary":
            try:
                summary = service.telemetry_summary(args.range)
            except ValueError as exc:
                print(str(exc), file=sys.stderr)
                return 2
            print(json.dumps(summary, indent=2))
            return 0
        if args.telemetry_command == "purge":
            print(json.dumps(service.telemetry_purge(), indent=2))
            return 0

    return 1


if __name__ == "__main__":
    raise SystemExit(main())
