from __future__ import annotations

"""Optional per-project settings read from `.git-quest.yaml`."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft202012Validator

from quest_scan.models import DETECTOR_TAGS

from .paths import CONFIG_FILE_NAME


CONFIG_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "properties": {
        "exclude_dirs": {
            "type": "array",
            "items": {"type": "string", "minLength": 1, "pattern": "^[^/\\\\]+$"},
            "uniqueItems": True,
        },
        "scanners": {
            "type": "array",
            "items": {"enum": list(DETECTOR_TAGS)},
            "minItems": 1,
            "uniqueItems": True,
        },
    },
    "additionalProperties": False,
}


class ConfigError(ValueError):
    """Project configuration could not be read or failed validation."""


@dataclass(frozen=True)
class ProjectConfig:
    exclude_dirs: tuple[str, ...] = ()
    scanners: tuple[str, ...] = DETECTOR_TAGS
    source: Path | None = field(default=None, compare=False)


def _error_path(error: Any) -> str:
    parts = ["$"]
    for item in error.absolute_path:
        parts.append(f"[{item}]" if isinstance(item, int) else f".{item}")
    return "".join(parts)


def load_project_config(root: Path) -> ProjectConfig:
    """Load and validate the project config, falling back to defaults when absent."""

    path = root / CONFIG_FILE_NAME
    if not path.exists():
        return ProjectConfig()
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Could not read {path}: {exc}") from exc
    if payload is None:
        return ProjectConfig(source=path)
    if not isinstance(payload, dict):
        raise ConfigError(f"{path} must contain a mapping.")

    validator = Draft202012Validator(CONFIG_SCHEMA)
    errors = sorted(validator.iter_errors(payload), key=lambda err: list(err.absolute_path))
    if errors:
        first = errors[0]
        raise ConfigError(f"{path} {_error_path(first)}: {first.message}")

    scanners = payload.get("scanners")
    return ProjectConfig(
        exclude_dirs=tuple(payload.get("exclude_dirs", [])),
        scanners=tuple(scanners) if scanners else DETECTOR_TAGS,
        source=path,
    )
