from __future__ import annotations

"""Line-level heuristics shared by the detectors and the verification engine."""

import re
from pathlib import Path


EXPORT_DECLARATION_PATTERN = re.compile(r"^export\s+(?:async\s+)?(?:function|class|const|let)\s+(\w+)")
ANY_EXPORT_PATTERN = re.compile(r"^export\s+")
MARKER_PATTERN = re.compile(r"//\s*(TODO|FIXME|HACK|XXX)\s*:?\s*(.+)", re.IGNORECASE)
TEST_CALL_PATTERN = re.compile(r"\b(test|it|describe)\s*\(")
DOC_TAG_MARKERS = ("@param", "@returns")
DOC_DECORATION_PATTERN = re.compile(r"/\*\*|\*/|\*")

SOURCE_EXTENSIONS = (".ts", ".js")
TEST_FILE_SKIP_PATTERNS = [
    re.compile(r"\.test\."),
    re.compile(r"\.spec\."),
    re.compile(r"^index\."),
    re.compile(r"\.d\.ts$"),
    re.compile(r"^types\."),
]

# Offsets around a recorded line that verification searches, to tolerate drift.
WINDOW_BEFORE = 10
WINDOW_AFTER = 15


def read_lines(path: Path) -> list[str] | None:
    """Return the file's lines, or None when it cannot be read as UTF-8 text."""

    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None
    return [line.rstrip("\r") for line in text.split("\n")]


def search_window(line: int, line_count: int) -> range:
    target = line - 1
    return range(max(0, target - WINDOW_BEFORE), min(line_count, target + WINDOW_AFTER))


def has_doc_block_above(lines: list[str], index: int) -> bool:
    """True when a non-empty `/** ... */` block sits above `lines[index]`.

    Blank lines between the block and the declaration are allowed. The block
    counts only if it carries a tag marker or some text once its comment
    decoration is stripped.
    """

    i = index - 1
    while i >= 0 and not lines[i].strip():
        i -= 1
    if i < 0 or not lines[i].strip().endswith("*/"):
        return False
    closing = i
    while i >= 0 and "/*" not in lines[i]:
        i -= 1
    if i < 0 or "/**" not in lines[i]:
        return False
    block = "\n".join(lines[i : closing + 1])
    if any(marker in block for marker in DOC_TAG_MARKERS):
        return True
    return bool(DOC_DECORATION_PATTERN.sub("", block).strip())


def find_markers(line: str) -> list[tuple[str, str]]:
    """Return `(MARKER, remark)` pairs for attention comments on one line."""

    return [(match.group(1).upper(), match.group(2).strip()) for match in MARKER_PATTERN.finditer(line)]


def split_source_name(file_name: str) -> tuple[str, str]:
    ext = ".ts" if ".ts" in file_name else ".js"
    stem = re.sub(r"\.(ts|js)$", "", file_name)
    return stem, ext


def is_test_exempt(file_name: str) -> bool:
    return any(pattern.search(file_name) for pattern in TEST_FILE_SKIP_PATTERNS)


def candidate_test_paths(root: Path, file_path: str) -> list[Path]:
    """Locations where a test for `file_path` may live, own extension first."""

    relative = Path(file_path)
    stem, own_ext = split_source_name(relative.name)
    directory = root / relative.parent
    extensions = [own_ext] + [ext for ext in SOURCE_EXTENSIONS if ext != own_ext]
    candidates: list[Path] = []
    for ext in extensions:
        candidates.extend(
            [
                directory / f"{stem}.test{ext}",
                directory / f"{stem}.spec{ext}",
                directory / "__tests__" / f"{stem}.test{ext}",
                directory / "__tests__" / f"{stem}.spec{ext}",
                root / "test" / f"{stem}.test{ext}",
                root / "tests" / f"{stem}.test{ext}",
                root / "test" / f"{stem}.spec{ext}",
                root / "tests" / f"{stem}.spec{ext}",
            ]
        )
    return candidates
