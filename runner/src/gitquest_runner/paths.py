from __future__ import annotations

import os
from pathlib import Path


STATE_FILE_NAME = ".git-quest.json"
CONFIG_FILE_NAME = ".git-quest.yaml"
PROJECT_MARKERS = (".git", STATE_FILE_NAME, "package.json")


def discover_project_root(start: Path | None = None) -> Path:
    configured = os.environ.get("GITQUEST_ROOT")
    if configured:
        return Path(configured).expanduser().resolve()
    start_path = (start or Path.cwd()).resolve()
    for candidate in [start_path, *start_path.parents]:
        if any((candidate / marker).exists() for marker in PROJECT_MARKERS):
            return candidate
    return start_path


def gitquest_home() -> Path:
    configured = os.environ.get("GITQUEST_HOME")
    if configured:
        return Path(configured).expanduser().resolve()
    return Path.home() / ".gitquest"


def ensure_home_dirs(base: Path) -> dict[str, Path]:
    telemetry = base / "telemetry"
    for path in (base, telemetry):
        path.mkdir(parents=True, exist_ok=True)
    return {"base": base, "telemetry": telemetry}
