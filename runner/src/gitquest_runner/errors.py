from __future__ import annotations

from typing import Any


class QuestRequestError(ValueError):
    """Structured rejection of a user request; no state is mutated."""

    def __init__(self, code: str, message: str, *, hint: str | None = None, **context: Any) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.hint = hint
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.hint:
            payload["hint"] = self.hint
        for key, value in self.context.items():
            if value is not None:
                payload[key] = value
        return payload


class StateConflictError(QuestRequestError):
    def __init__(self, expected: int, found: int) -> None:
        super().__init__(
            "STATE_CONFLICT",
            f"Game state changed on disk (revision {found}, expected {expected}).",
            hint="Another session updated the quest log. Re-run the command.",
            expected_revision=expected,
            found_revision=found,
        )


class UnknownScannerError(QuestRequestError):
    def __init__(self, scanner: str) -> None:
        super().__init__("SCANNER_UNKNOWN", f"No verifier or detector found for scanner: {scanner}", scanner=scanner)


class DuplicateCompletionError(RuntimeError):
    """A quest id was completed twice."""
