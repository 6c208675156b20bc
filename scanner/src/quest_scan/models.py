from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


MISSING_DOCS = "missing-docs"
TODO_HUNTER = "todo-hunter"
MISSING_TESTS = "missing-tests"
BOSS = "boss"

DETECTOR_TAGS = (MISSING_DOCS, TODO_HUNTER, MISSING_TESTS)
ALL_TAGS = (*DETECTOR_TAGS, BOSS)


def path_slug(file_path: str) -> str:
    return file_path.replace("/", "-").replace("\\", "-").replace(".", "-")


@dataclass(frozen=True)
class QuestDefinition:
    """One detected or synthesized code-improvement opportunity."""

    id: str
    title: str
    description: str
    file_path: str
    scanner: str
    difficulty: int
    xp: int
    hint: str
    line: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QuestDefinition":
        line = data.get("line")
        return cls(
            id=str(data["id"]),
            title=str(data.get("title", "")),
            description=str(data.get("description", "")),
            file_path=str(data["file_path"]),
            scanner=str(data["scanner"]),
            difficulty=int(data.get("difficulty", 1)),
            xp=int(data.get("xp", 0)),
            hint=str(data.get("hint", "")),
            line=int(line) if line is not None else None,
        )
