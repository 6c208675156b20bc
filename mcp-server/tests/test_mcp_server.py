from __future__ import annotations

import io
import json
import sys
from pathlib import Path

import pytest

from gitquest_mcp import server
from gitquest_mcp.server import TOOL_SCHEMAS, QuestBridge, serve_stdio, validate_tool_arguments
from gitquest_runner.service import QuestService


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text.strip() + "\n", encoding="utf-8")


def _bridge(tmp_path: Path, monkeypatch) -> QuestBridge:  # type: ignore[no-untyped-def]
    monkeypatch.setenv("GITQUEST_HOME", str(tmp_path / "home"))
    root = tmp_path / "project"
    _write(
        root / "src" / "parser.js",
        """
// TODO: support nested brackets
const depth = 0;
""",
    )
    _write(root / "src" / "parser.test.js", "it('parses', () => {});")
    return QuestBridge(QuestService.create(root), actor_id="mcp:test")


def _text(result: dict) -> str:
    return result["content"][0]["text"]


def test_tool_schemas_cover_quest_lifecycle() -> None:
    names = [tool["name"] for tool in TOOL_SCHEMAS]
    assert names == ["scan_quests", "accept_quest", "verify_quest", "player_stats", "quest_log"]


def test_tool_unknown_raises(tmp_path: Path, monkeypatch) -> None:  # type: ignore[no-untyped-def]
    bridge = _bridge(tmp_path, monkeypatch)
    with pytest.raises(ValueError, match="Unknown tool"):
        bridge.call_tool("delete_repo", {})


def test_validate_tool_arguments_rejects_unexpected_keys() -> None:
    with pytest.raises(ValueError, match="does not accept: force"):
        validate_tool_arguments("player_stats", {"force": True})


def test_validate_tool_arguments_requires_integer_quest_number() -> None:
    with pytest.raises(ValueError, match="required"):
        validate_tool_arguments("accept_quest", {})
    with pytest.raises(ValueError, match="integer"):
        validate_tool_arguments("verify_quest", {"quest_number": "1"})
    with pytest.raises(ValueError, match="integer"):
        validate_tool_arguments("verify_quest", {"quest_number": True})


def test_validate_tool_arguments_rejects_bad_enums_and_ids() -> None:
    with pytest.raises(ValueError, match="scanner must be one of"):
        validate_tool_arguments("scan_quests", {"scanner": "lint"})
    with pytest.raises(ValueError, match="status must be one of"):
        validate_tool_arguments("quest_log", {"status": "archived"})
    with pytest.raises(ValueError, match="actor_id exceeds"):
        validate_tool_arguments("player_stats", {"actor_id": "a" * 201})


def test_bridge_runs_scan_accept_verify(tmp_path: Path, monkeypatch) -> None:  # type: ignore[no-untyped-def]
    bridge = _bridge(tmp_path, monkeypatch)

    board = _text(bridge.call_tool("scan_quests", {}))
    assert "QUEST BOARD: 1 quest found!" in board
    assert "support nested brackets" in board

    accepted = _text(bridge.call_tool("accept_quest", {"quest_number": 1}))
    assert "Quest Accepted" in accepted

    _write(bridge.service.root / "src" / "parser.js", "const depth = 0;")
    verified = _text(bridge.call_tool("verify_quest", {"quest_number": 1}))
    assert "QUEST COMPLETE" in verified
    assert "+15 XP earned!" in verified

    stats = _text(bridge.call_tool("player_stats", {}))
    assert "Quests Completed: 1" in stats

    log = _text(bridge.call_tool("quest_log", {"status": "completed"}))
    assert "todo-hunter-src-parser-js-1" in log


def test_rejections_are_text_results(tmp_path: Path, monkeypatch) -> None:  # type: ignore[no-untyped-def]
    bridge = _bridge(tmp_path, monkeypatch)

    result = bridge.call_tool("verify_quest", {"quest_number": 3})

    assert result["isError"] is True
    assert "No active quest #3." in _text(result)


def test_serve_stdio_round_trip(tmp_path: Path, monkeypatch, capsys) -> None:  # type: ignore[no-untyped-def]
    bridge = _bridge(tmp_path, monkeypatch)
    requests = [
        {"jsonrpc": "2.0", "id": 1, "method": "initialize"},
        {"jsonrpc": "2.0", "id": 2, "method": "tools/list"},
        {"jsonrpc": "2.0", "id": 3, "method": "tools/call", "params": {"name": "scan_quests", "arguments": {}}},
        {"jsonrpc": "2.0", "id": 4, "method": "tools/call", "params": {"name": "accept_quest", "arguments": {}}},
        {"jsonrpc": "2.0", "id": 5, "method": "resources/list"},
    ]
    stdin_text = "\n".join(json.dumps(item) for item in requests) + "\nnot json\n"
    monkeypatch.setattr(sys, "stdin", io.StringIO(stdin_text))

    assert serve_stdio(bridge) == 0

    responses = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
    assert responses[0]["result"]["server"] == "git-quest"
    assert len(responses[1]["result"]["tools"]) == 5
    assert "QUEST BOARD" in responses[2]["result"]["content"][0]["text"]
    assert "quest_number is required" in responses[3]["error"]["message"]
    assert "Unsupported method" in responses[4]["error"]["message"]
    assert responses[5] == {"jsonrpc": "2.0", "id": None, "error": {"message": "Invalid JSON input."}}


def test_main_reports_invalid_project_config(tmp_path: Path, monkeypatch, capsys) -> None:  # type: ignore[no-untyped-def]
    root = tmp_path / "project"
    root.mkdir()
    (root / ".git-quest.yaml").write_text("scanners: [lint]\n", encoding="utf-8")
    monkeypatch.setenv("GITQUEST_HOME", str(tmp_path / "home"))
    monkeypatch.setattr(sys, "argv", ["gitquest-mcp", "--root", str(root), "--tool", "player_stats"])

    assert server.main() == 2
    captured = capsys.readouterr()
    assert "Invalid project config" in captured.err
    assert captured.out == ""
