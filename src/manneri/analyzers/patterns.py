"""Recurring message pattern tracking.

Heuristic pattern identity: the normalized, keyword-reduced message text is
hashed into a stable id. No ML, no embeddings.
"""

from __future__ import annotations

import hashlib
from collections import deque
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from ..models import ConversationPattern, Message, TextAnalysisOptions, utc_now
from .text import normalize_text, tokenize

if TYPE_CHECKING:
    from collections.abc import Iterable

# Maximum example messages kept per pattern
MAX_MESSAGES_PER_PATTERN = 5
MAX_PATTERNS = 100


def pattern_id(signature: str) -> str:
    """Stable identifier for a pattern signature."""
    return hashlib.sha1(signature.encode("utf-8")).hexdigest()[:16]


@dataclass(frozen=True)
class PatternStatistics:
    """Summary of the pattern table."""

    total_patterns: int
    average_frequency: float
    most_frequent: ConversationPattern | None
    oldest: ConversationPattern | None


class PatternDetector:
    """Tracks recurring message signatures across a conversation.

    Lifetime frequency is kept per pattern, but a pattern only counts toward
    intervention ("active") when it recurred at least ``repetition_limit``
    times within the last ``lookback_window`` observed messages.
    """

    def __init__(
        self,
        repetition_limit: int = 3,
        lookback_window: int = 10,
        exclude_keywords: Iterable[str] = (),
        options: TextAnalysisOptions | None = None,
        max_patterns: int = MAX_PATTERNS,
    ) -> None:
        """Initialize the pattern detector.

        Args:
            repetition_limit: Recent occurrences before a pattern is active
            lookback_window: Number of observed messages counted as recent
            exclude_keywords: Keywords dropped from signatures
            options: Tokenizer options, uses defaults if not provided
            max_patterns: Maximum patterns retained
        """
        self.repetition_limit = repetition_limit
        self.lookback_window = lookback_window
        self.exclude_keywords = frozenset(k.lower() for k in exclude_keywords)
        self.options = options or TextAnalysisOptions()
        self.max_patterns = max_patterns
        self._patterns: dict[str, ConversationPattern] = {}
        self._recent: dict[str, deque[int]] = {}
        self._position = -1

    def signature(self, text: str) -> str:
        """Normalized, keyword-reduced form of a message.

        Falls back to the normalized text when every token is filtered out,
        so short greetings still form patterns. Empty for empty input.
        """
        tokens = [
            t for t in tokenize(text, self.options)
            if t.lower() not in self.exclude_keywords
        ]
        if tokens:
            return " ".join(tokens)
        normalized = normalize_text(text, case_sensitive=self.options.case_sensitive)
        if normalized.lower() in self.exclude_keywords:
            return ""
        return normalized

    def observe(self, message: Message, now: datetime | None = None) -> ConversationPattern | None:
        """Record a message and update its pattern.

        Args:
            message: The newest message
            now: Time used when the message carries no timestamp

        Returns:
            The updated pattern, or None for inert messages
        """
        self._position += 1
        signature = self.signature(message.content)
        if not signature:
            return None

        seen_at = message.timestamp or now or utc_now()
        key = pattern_id(signature)
        pattern = self._patterns.get(key)
        if pattern is None:
            self._evict_overflow()
            pattern = ConversationPattern(
                id=key,
                pattern=signature,
                frequency=1,
                first_seen=seen_at,
                last_seen=seen_at,
                messages=[message],
            )
            self._patterns[key] = pattern
        else:
            pattern.frequency += 1
            pattern.last_seen = max(pattern.last_seen, seen_at)
            pattern.messages.append(message)
            del pattern.messages[:-MAX_MESSAGES_PER_PATTERN]

        self._recent.setdefault(key, deque(maxlen=self.lookback_window)).append(
            self._position,
        )
        return pattern

    def recent_frequency(self, key: str) -> int:
        """Occurrences of a pattern within the lookback window."""
        oldest = self._position - self.lookback_window
        return sum(1 for p in self._recent.get(key, ()) if p > oldest)

    def is_active(self, key: str) -> bool:
        """Check if a pattern recurred often enough recently."""
        return self.recent_frequency(key) >= self.repetition_limit

    def get(self, key: str) -> ConversationPattern | None:
        """Look up a pattern by id."""
        return self._patterns.get(key)

    def _ranked(self, patterns: Iterable[ConversationPattern]) -> list[ConversationPattern]:
        # frequency desc, then last_seen desc, then id asc
        by_id = sorted(patterns, key=lambda p: p.id)
        by_recency = sorted(by_id, key=lambda p: p.last_seen, reverse=True)
        return sorted(by_recency, key=lambda p: p.frequency, reverse=True)

    def top_patterns(self, n: int = 10) -> list[ConversationPattern]:
        """Most frequent patterns; ties broken by recency, then id."""
        return self._ranked(self._patterns.values())[:n]

    def active_patterns(self) -> list[ConversationPattern]:
        """Patterns that currently count toward intervention."""
        return self._ranked(p for p in self._patterns.values() if self.is_active(p.id))

    def snapshot(self) -> list[ConversationPattern]:
        """Detached copies of all patterns, ranked."""
        return [
            replace(p, messages=list(p.messages))
            for p in self._ranked(self._patterns.values())
        ]

    def load(self, patterns: Iterable[ConversationPattern]) -> None:
        """Seed the table from persisted patterns.

        Loaded patterns keep their lifetime frequency but have no recent
        occurrences, so they are not active until they recur.
        """
        for pattern in patterns:
            self._patterns[pattern.id] = replace(
                pattern,
                messages=list(pattern.messages[-MAX_MESSAGES_PER_PATTERN:]),
            )
        self._evict_overflow(limit=self.max_patterns)

    def reconfigure(
        self,
        repetition_limit: int,
        lookback_window: int,
        exclude_keywords: Iterable[str],
    ) -> None:
        """Apply new thresholds without rescoring stored patterns."""
        self.repetition_limit = repetition_limit
        self.exclude_keywords = frozenset(k.lower() for k in exclude_keywords)
        if lookback_window != self.lookback_window:
            self.lookback_window = lookback_window
            self._recent = {
                key: deque(positions, maxlen=lookback_window)
                for key, positions in self._recent.items()
            }

    def cleanup(self, max_age: timedelta, now: datetime | None = None) -> int:
        """Drop patterns not seen within ``max_age``.

        Returns:
            Number of patterns removed
        """
        cutoff = (now or utc_now()) - max_age
        stale = [key for key, p in self._patterns.items() if p.last_seen < cutoff]
        for key in stale:
            self._remove(key)
        return len(stale)

    def _evict_overflow(self, limit: int | None = None) -> None:
        """Evict least recently seen patterns to make room."""
        limit = self.max_patterns - 1 if limit is None else limit
        while len(self._patterns) > limit:
            oldest = min(self._patterns.values(), key=lambda p: (p.last_seen, p.id))
            self._remove(oldest.id)

    def _remove(self, key: str) -> None:
        self._patterns.pop(key, None)
        self._recent.pop(key, None)

    def statistics(self) -> PatternStatistics:
        """Summarize the pattern table."""
        patterns = list(self._patterns.values())
        if not patterns:
            return PatternStatistics(0, 0.0, None, None)

        average = sum(p.frequency for p in patterns) / len(patterns)
        return PatternStatistics(
            total_patterns=len(patterns),
            average_frequency=round(average, 2),
            most_frequent=self._ranked(patterns)[0],
            oldest=min(patterns, key=lambda p: (p.first_seen, p.id)),
        )

    def clear(self) -> None:
        """Drop all patterns and recency tracking."""
        self._patterns.clear()
        self._recent.clear()
        self._position = -1

    def __len__(self) -> int:
        return len(self._patterns)
