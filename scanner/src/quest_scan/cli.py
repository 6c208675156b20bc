from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .models import DETECTOR_TAGS
from .scan import quests_to_json, quests_to_text, scan_tree


def main() -> int:
    parser = argparse.ArgumentParser(description="List git-quest quests for a source tree without touching game state.")
    parser.add_argument("path", nargs="?", default=".", help="Root directory to scan recursively.")
    parser.add_argument("--scanner", choices=["all", *DETECTOR_TAGS], default="all", help="Detector to run.")
    parser.add_argument("--format", choices=["text", "json"], default="text", help="Output format.")
    parser.add_argument(
        "--fail-on-quests",
        action="store_true",
        help="Exit non-zero when any quest is found.",
    )
    args = parser.parse_args()

    root = Path(args.path).resolve()
    if not root.is_dir():
        print(f"Not a directory: {root}", file=sys.stderr)
        return 2
    scanners = DETECTOR_TAGS if args.scanner == "all" else (args.scanner,)
    quests = scan_tree(root, scanners)

    if args.format == "json":
        print(quests_to_json(quests))
    else:
        print(quests_to_text(quests))

    if args.fail_on_quests and quests:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
