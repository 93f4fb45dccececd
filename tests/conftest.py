"""Shared fixtures for Manneri tests."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from manneri.models import Message, MessageRole

START = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    """Clock frozen at a fixed instant."""
    return FakeClock()


def user(content: str, minutes: float | None = None) -> Message:
    """User message, optionally timestamped minutes after START."""
    timestamp = START + timedelta(minutes=minutes) if minutes is not None else None
    return Message(role=MessageRole.USER, content=content, timestamp=timestamp)


def assistant(content: str, minutes: float | None = None) -> Message:
    """Assistant message, optionally timestamped minutes after START."""
    timestamp = START + timedelta(minutes=minutes) if minutes is not None else None
    return Message(role=MessageRole.ASSISTANT, content=content, timestamp=timestamp)
