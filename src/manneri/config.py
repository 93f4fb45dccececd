"""Detector configuration loading with schema validation."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import jsonschema
import yaml
from pydantic import ValidationError

from .exceptions import ConfigValidationError, ManneriError
from .models import ManneriConfig

CONFIG_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Manneri Detector Configuration",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "similarity_threshold": {"type": "number", "minimum": 0, "maximum": 1},
        "repetition_limit": {"type": "integer", "minimum": 1},
        "lookback_window": {"type": "integer", "minimum": 1},
        "intervention_cooldown": {
            "description": "Seconds, or an ISO 8601 duration",
            "type": ["number", "string"],
        },
        "min_message_length": {"type": "integer", "minimum": 0},
        "exclude_keywords": {"type": "array", "items": {"type": "string"}},
        "enable_topic_tracking": {"type": "boolean"},
        "enable_keyword_analysis": {"type": "boolean"},
        "debug_mode": {"type": "boolean"},
        "language": {"type": "string"},
        "custom_prompts": {
            "type": ["object", "null"],
            "additionalProperties": {
                "type": "object",
                "required": ["intervention"],
                "properties": {
                    "intervention": {"type": "array", "items": {"type": "string"}},
                },
            },
        },
    },
}


def validate_config_data(data: dict[str, Any]) -> ManneriConfig:
    """Validate raw configuration data against the schema and the model.

    Raises:
        ConfigValidationError: If validation fails
    """
    try:
        jsonschema.validate(data, CONFIG_SCHEMA)
    except jsonschema.ValidationError as e:
        msg = f"Schema validation failed: {e.message}"
        raise ConfigValidationError(
            msg,
            details={"path": list(e.absolute_path)},
        ) from e

    try:
        return ManneriConfig.model_validate(data)
    except ValidationError as e:
        msg = f"Configuration validation failed: {e}"
        raise ConfigValidationError(msg) from e


def load_config(path: Path) -> ManneriConfig:
    """Load a detector configuration from a YAML file.

    Args:
        path: YAML file with configuration overrides

    Returns:
        Validated configuration, defaults for omitted fields

    Raises:
        ManneriError: If the file cannot be read or parsed
        ConfigValidationError: If validation fails
    """
    path = Path(path)
    if not path.exists():
        msg = f"Config file not found: {path}"
        raise ManneriError(msg)

    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        msg = f"Failed to parse config YAML: {e}"
        raise ManneriError(msg) from e
    except OSError as e:
        msg = f"Failed to read config file: {e}"
        raise ManneriError(msg) from e

    return validate_config_data(data or {})


def dump_config(config: ManneriConfig, path: Path) -> None:
    """Write a configuration as YAML, cooldown in seconds."""
    data = config.model_dump(mode="json")
    data["intervention_cooldown"] = config.intervention_cooldown.total_seconds()
    Path(path).write_text(
        yaml.safe_dump(data, allow_unicode=True, sort_keys=False),
        encoding="utf-8",
    )
