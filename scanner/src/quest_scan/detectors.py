from __future__ import annotations

"""Heuristic detectors that turn source files into quest definitions."""

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Protocol

from .matching import (
    EXPORT_DECLARATION_PATTERN,
    candidate_test_paths,
    find_markers,
    has_doc_block_above,
    is_test_exempt,
    read_lines,
    split_source_name,
)
from .models import MISSING_DOCS, MISSING_TESTS, TODO_HUNTER, QuestDefinition, path_slug
from .walker import walk_files


REMARK_TITLE_CHARS = 50

DOC_TITLE_TEMPLATES: list[Callable[[str], str]] = [
    lambda name: f"The Undocumented {name}",
    lambda name: f"Scrolls of {name}",
    lambda name: f"Lost Documentation of {name}",
    lambda name: f"Chronicle the {name}",
]

MARKER_TITLE_TEMPLATES: dict[str, Callable[[str], str]] = {
    "TODO": lambda remark: f"The Forgotten Task: {remark}",
    "FIXME": lambda remark: f"The Broken Artifact: {remark}",
    "HACK": lambda remark: f"The Cursed Workaround: {remark}",
    "XXX": lambda remark: f"The Dark Mark: {remark}",
}

TEST_TITLE_TEMPLATES: list[Callable[[str], str]] = [
    lambda name: f"The Untested Dragon: {name}",
    lambda name: f"Uncharted Territory: {name}",
    lambda name: f"Dragon of {name}",
]


def truncate(text: str, max_chars: int) -> str:
    trimmed = text.strip()
    if len(trimmed) > max_chars:
        return f"{trimmed[:max_chars]}…"
    return trimmed


class Detector(Protocol):
    name: str

    def scan(self, root: Path, extra_excluded_dirs: Iterable[str] = ()) -> list[QuestDefinition]: ...


@dataclass
class MissingDocsDetector:
    """Exported declarations without a documentation block above them."""

    name: str = MISSING_DOCS
    extensions: tuple[str, ...] = (".ts", ".js")

    def scan(self, root: Path, extra_excluded_dirs: Iterable[str] = ()) -> list[QuestDefinition]:
        results: list[QuestDefinition] = []
        for file_path in walk_files(root, self.extensions, extra_excluded_dirs):
            lines = read_lines(root / file_path)
            if lines is None:
                continue
            for index, line in enumerate(lines):
                match = EXPORT_DECLARATION_PATTERN.match(line)
                if not match or has_doc_block_above(lines, index):
                    continue
                symbol = match.group(1)
                template = DOC_TITLE_TEMPLATES[len(results) % len(DOC_TITLE_TEMPLATES)]
                results.append(
                    QuestDefinition(
                        id=f"{self.name}-{path_slug(file_path)}-{symbol}",
                        title=template(symbol),
                        description=f"Add JSDoc documentation to `{symbol}` in {file_path}",
                        file_path=file_path,
                        line=index + 1,
                        scanner=self.name,
                        difficulty=1,
                        xp=10,
                        hint="Add JSDoc documentation with @param and @returns tags",
                    )
                )
        return results


@dataclass
class TodoHunterDetector:
    """Inline TODO/FIXME/HACK/XXX comments, one quest per occurrence."""

    name: str = TODO_HUNTER
    extensions: tuple[str, ...] = (".ts", ".js", ".tsx", ".jsx")

    def scan(self, root: Path, extra_excluded_dirs: Iterable[str] = ()) -> list[QuestDefinition]:
        results: list[QuestDefinition] = []
        for file_path in walk_files(root, self.extensions, extra_excluded_dirs):
            lines = read_lines(root / file_path)
            if lines is None:
                continue
            for index, line in enumerate(lines):
                for marker, remark in find_markers(line):
                    title_for = MARKER_TITLE_TEMPLATES.get(marker, MARKER_TITLE_TEMPLATES["TODO"])
                    results.append(
                        QuestDefinition(
                            id=f"{self.name}-{path_slug(file_path)}-{index + 1}",
                            title=title_for(truncate(remark, REMARK_TITLE_CHARS)),
                            description=f"{marker}: {remark} ({file_path}:{index + 1})",
                            file_path=file_path,
                            line=index + 1,
                            scanner=self.name,
                            difficulty=2,
                            xp=15,
                            hint="Implement the change described in the comment, then remove the TODO/FIXME comment",
                        )
                    )
        return results


@dataclass
class MissingTestsDetector:
    """Source files with no test file at any conventional location."""

    name: str = MISSING_TESTS
    extensions: tuple[str, ...] = (".ts", ".js")

    def scan(self, root: Path, extra_excluded_dirs: Iterable[str] = ()) -> list[QuestDefinition]:
        results: list[QuestDefinition] = []
        for file_path in walk_files(root, self.extensions, extra_excluded_dirs):
            file_name = Path(file_path).name
            if is_test_exempt(file_name):
                continue
            if any(candidate.is_file() for candidate in candidate_test_paths(root, file_path)):
                continue
            stem, _ = split_source_name(file_name)
            template = TEST_TITLE_TEMPLATES[len(results) % len(TEST_TITLE_TEMPLATES)]
            results.append(
                QuestDefinition(
                    id=f"{self.name}-{path_slug(file_path)}",
                    title=template(stem),
                    description=f"{file_path} has no corresponding test file",
                    file_path=file_path,
                    scanner=self.name,
                    difficulty=3,
                    xp=25,
                    hint="Create a test file with at least one test case using describe/it or test blocks",
                )
            )
        return results


DETECTORS: dict[str, Detector] = {
    MISSING_DOCS: MissingDocsDetector(),
    TODO_HUNTER: TodoHunterDetector(),
    MISSING_TESTS: MissingTestsDetector(),
}


def run_detectors(root: Path, scanners: Iterable[str], extra_excluded_dirs: Iterable[str] = ()) -> list[QuestDefinition]:
    """Run the named detectors and order the union by difficulty, stably."""

    excluded = tuple(extra_excluded_dirs)
    quests: list[QuestDefinition] = []
    for name in scanners:
        detector = DETECTORS.get(name)
        if detector is None:
            raise KeyError(name)
        quests.extend(detector.scan(root, excluded))
    quests.sort(key=lambda quest: quest.difficulty)
    return quests
