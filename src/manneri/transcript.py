"""Conversation transcript reader.

Reads JSON Lines (one message object per line) or a JSON array of message
objects with ``role``, ``content`` and an optional ``timestamp`` (ISO 8601
string or epoch seconds/milliseconds).
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from .exceptions import TranscriptError
from .models import Message, MessageRole

# Threshold for detecting millisecond timestamps (timestamps after year ~2001 in ms)
MILLISECOND_TIMESTAMP_THRESHOLD = 1e12


def _parse_timestamp(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > MILLISECOND_TIMESTAMP_THRESHOLD else value
        return datetime.fromtimestamp(seconds, tz=UTC)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def message_from_dict(entry: dict[str, Any]) -> Message:
    """Build a message from a transcript entry.

    Raises:
        TranscriptError: If the role is missing or unknown
    """
    try:
        role = MessageRole(entry.get("role"))
    except ValueError as e:
        msg = f"Unknown message role: {entry.get('role')!r}"
        raise TranscriptError(msg) from e

    content = entry.get("content")
    return Message(
        role=role,
        content=content if isinstance(content, str) else "",
        timestamp=_parse_timestamp(entry.get("timestamp")),
    )


def read_transcript(path: Path) -> list[Message]:
    """Read a transcript file into messages, oldest first.

    Raises:
        TranscriptError: If the file cannot be read or parsed
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        msg = f"Failed to read transcript: {e}"
        raise TranscriptError(msg, details={"path": str(path)}) from e

    try:
        if path.suffix == ".jsonl":
            entries = [json.loads(line) for line in text.splitlines() if line.strip()]
        else:
            entries = json.loads(text) if text.strip() else []
    except json.JSONDecodeError as e:
        msg = f"Failed to parse transcript: {e}"
        raise TranscriptError(msg, details={"path": str(path)}) from e

    if not isinstance(entries, list):
        msg = "Transcript must be a list of messages"
        raise TranscriptError(msg, details={"path": str(path)})

    return [message_from_dict(e) for e in entries if isinstance(e, dict)]
