from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable


EXCLUDED_DIRS = {"node_modules", "dist", ".git", "coverage", "__tests__", ".next", ".nuxt"}
EXCLUDED_NAME_PATTERNS = [re.compile(r"\.test\."), re.compile(r"\.spec\."), re.compile(r"\.d\.ts$")]


def _excluded_dir(name: str, extra: set[str]) -> bool:
    return name.startswith(".") or name in EXCLUDED_DIRS or name in extra


def _excluded_file(name: str) -> bool:
    return any(pattern.search(name) for pattern in EXCLUDED_NAME_PATTERNS)


def walk_files(root: Path, extensions: Iterable[str], extra_excluded_dirs: Iterable[str] = ()) -> list[str]:
    """List source files under `root` as sorted relative POSIX paths."""

    wanted = set(extensions)
    extra = set(extra_excluded_dirs)
    results: list[str] = []
    pending = [root]
    while pending:
        current = pending.pop()
        try:
            entries = list(current.iterdir())
        except OSError:
            continue
        for entry in entries:
            if entry.is_dir():
                if not _excluded_dir(entry.name, extra):
                    pending.append(entry)
                continue
            if not entry.is_file():
                continue
            if "." not in entry.name:
                continue
            suffix = "." + entry.name.rsplit(".", 1)[1]
            if suffix in wanted and not _excluded_file(entry.name):
                results.append(entry.relative_to(root).as_posix())
    results.sort()
    return results
