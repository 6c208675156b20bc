#!/usr/bin/env python3
"""Local smoke test for the quest API + MCP stdio server against a throwaway project."""

from __future__ import annotations

import argparse
import json
import os
import subprocess
import sys
import tempfile
import time
from pathlib import Path
from urllib.error import URLError
from urllib.request import Request, urlopen


SAMPLE_SOURCE = """\
export function login(user: string) {
  // TODO: handle lockout after repeated failures
  return user.length > 0;
}
"""
SAMPLE_TEST = """\
import { login } from "./auth";
test("login", () => expect(login("a")).toBe(true));
"""


def _wait_for_health(api_base: str, timeout_seconds: float = 15.0) -> None:
    deadline = time.time() + timeout_seconds
    url = f"{api_base}/v1/health"
    while time.time() < deadline:
        try:
            with urlopen(url, timeout=1) as response:  # nosec B310
                payload = json.loads(response.read().decode("utf-8"))
                if payload.get("status") == "ok":
                    return
        except URLError:
            pass
        time.sleep(0.25)
    raise RuntimeError("Quest API did not become healthy in time.")


def _post(api_base: str, path: str, body: dict) -> dict:
    request = Request(
        url=f"{api_base}{path}",
        method="POST",
        headers={"Content-Type": "application/json"},
        data=json.dumps(body).encode("utf-8"),
    )
    with urlopen(request, timeout=10) as response:  # nosec B310
        return json.loads(response.read().decode("utf-8"))


def _rpc(proc: subprocess.Popen[str], request_id: int, method: str, params: dict | None = None) -> dict:
    if proc.stdin is None or proc.stdout is None:
        raise RuntimeError("MCP process stdio is unavailable.")
    message = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        message["params"] = params
    proc.stdin.write(json.dumps(message) + "\n")
    proc.stdin.flush()

    line = proc.stdout.readline()
    if not line:
        stderr_output = proc.stderr.read() if proc.stderr else ""
        raise RuntimeError(f"No response from MCP process. stderr: {stderr_output}")
    payload = json.loads(line)
    if payload.get("error"):
        raise RuntimeError(payload["error"].get("message", "Unknown MCP error"))
    return payload


def _stop(proc: subprocess.Popen[str] | None) -> None:
    if proc is None or proc.poll() is not None:
        return
    proc.terminate()
    try:
        proc.wait(timeout=5)
    except subprocess.TimeoutExpired:
        proc.kill()


def main() -> int:
    parser = argparse.ArgumentParser(description="Smoke test quest API + MCP server")
    parser.add_argument("--port", type=int, default=8011)
    args = parser.parse_args()

    repo_root = Path(__file__).resolve().parents[1]
    api_base = f"http://127.0.0.1:{args.port}"

    with tempfile.TemporaryDirectory(prefix="gitquest-smoke-") as tmp:
        project = Path(tmp) / "project"
        (project / "src").mkdir(parents=True)
        (project / "src" / "auth.ts").write_text(SAMPLE_SOURCE, encoding="utf-8")
        (project / "src" / "auth.test.ts").write_text(SAMPLE_TEST, encoding="utf-8")

        env = os.environ.copy()
        env["GITQUEST_HOME"] = str(Path(tmp) / "home")
        env["GITQUEST_ROOT"] = str(project)

        api_proc = subprocess.Popen(  # noqa: S603
            [sys.executable, "-m", "gitquest_runner.cli", "api", "--host", "127.0.0.1", "--port", str(args.port)],
            cwd=repo_root,
            env=env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
        mcp_proc: subprocess.Popen[str] | None = None
        try:
            _wait_for_health(api_base)
            board = _post(api_base, "/v1/scan", {})
            if board.get("count") != 3:
                raise RuntimeError(f"Expected 3 quests from the API scan, got {board.get('count')}.")

            mcp_proc = subprocess.Popen(  # noqa: S603
                [sys.executable, "-m", "gitquest_mcp.server"],
                cwd=repo_root,
                env=env,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
            _rpc(mcp_proc, 1, "initialize")
            accepted = _rpc(mcp_proc, 2, "tools/call", {"name": "accept_quest", "arguments": {"quest_number": 1}})
            text = accepted.get("result", {}).get("content", [{}])[0].get("text", "")
            if "Quest Accepted" not in text:
                raise RuntimeError(f"accept_quest returned unexpected text: {text!r}")
            print("MCP smoke test passed.")
            return 0
        finally:
            _stop(mcp_proc)
            _stop(api_proc)


if __name__ == "__main__":
    raise SystemExit(main())
