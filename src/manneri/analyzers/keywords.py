"""Keyword and topic extraction over chat messages."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from ..models import Message, RepeatedKeyword, TextAnalysisOptions, TopicInfo, utc_now
from .text import tokenize

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

# Maximum context snippets kept per keyword
MAX_CONTEXTS = 5
MAX_CONTEXT_LENGTH = 100
MAX_TOPICS = 10
MAX_RELATED_KEYWORDS = 5
# Occurrences at which a topic reaches full confidence
FULL_CONFIDENCE_OCCURRENCES = 10

TOPIC_CATEGORIES = {
    "technology": [
        "技術", "プログラミング", "コード", "システム", "データベース", "サーバー",
        "api", "code", "programming", "software", "server", "database",
    ],
    "entertainment": [
        "ゲーム", "音楽", "映画", "アニメ", "スポーツ",
        "game", "music", "movie", "anime", "sports", "tv",
    ],
    "daily_life": [
        "食事", "天気", "仕事", "家族", "友達", "学校",
        "food", "weather", "work", "family", "friends", "school",
    ],
}


@dataclass
class KeywordFrequency:
    """Frequency and recency of a keyword across messages."""

    keyword: str
    frequency: int
    score: float
    first_seen: datetime
    last_seen: datetime
    contexts: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class TopicShift:
    """Keyword overlap between recent and historical messages."""

    has_shift: bool
    new_topics: tuple[str, ...]
    old_topics: tuple[str, ...]


class KeywordExtractor:
    """Extracts salient keywords and topics from messages.

    Stop words and configured exclude keywords are removed case-insensitively;
    remaining tokens are ranked by frequency, ties in order of appearance.
    """

    def __init__(
        self,
        options: TextAnalysisOptions | None = None,
        exclude_keywords: Iterable[str] = (),
        top_k: int = 10,
    ) -> None:
        """Initialize the keyword extractor.

        Args:
            options: Tokenizer options, uses defaults if not provided
            exclude_keywords: Keywords never reported
            top_k: Maximum keywords returned per text
        """
        self.options = options or TextAnalysisOptions()
        self.exclude_keywords = frozenset(k.lower() for k in exclude_keywords)
        self.top_k = top_k

    def extract(self, text: str) -> list[str]:
        """Extract the top keywords of a text, most frequent first."""
        tokens = [
            t for t in tokenize(text, self.options)
            if t.lower() not in self.exclude_keywords
        ]
        return [token for token, _ in Counter(tokens).most_common(self.top_k)]

    def extract_from_message(self, message: Message) -> list[str]:
        """Extract keywords from a single message."""
        return self.extract(message.content)

    def extract_from_messages(
        self,
        messages: Sequence[Message],
        limit: int = 20,
    ) -> list[str]:
        """Aggregate keywords over messages, ranked by how many messages use them."""
        counts: Counter[str] = Counter()
        for message in messages:
            counts.update(self.extract_from_message(message))
        return [keyword for keyword, _ in counts.most_common(limit)]

    def keyword_frequencies(
        self,
        messages: Sequence[Message],
        now: datetime | None = None,
    ) -> list[KeywordFrequency]:
        """Track frequency, recency and sample contexts per keyword.

        Args:
            messages: Messages to scan
            now: Reference time for recency and untimestamped messages

        Returns:
            Keyword records sorted by score, highest first
        """
        now = now or utc_now()
        data: dict[str, KeywordFrequency] = {}

        for message in messages:
            timestamp = message.timestamp or now
            context = message.content[:MAX_CONTEXT_LENGTH]
            for keyword in self.extract_from_message(message):
                entry = data.get(keyword)
                if entry is None:
                    entry = KeywordFrequency(
                        keyword=keyword,
                        frequency=1,
                        score=0.0,
                        first_seen=timestamp,
                        last_seen=timestamp,
                        contexts=[context],
                    )
                    entry.score = self._keyword_score(entry, now)
                    data[keyword] = entry
                    continue

                entry.frequency += 1
                entry.first_seen = min(entry.first_seen, timestamp)
                entry.last_seen = max(entry.last_seen, timestamp)
                entry.score = self._keyword_score(entry, now)
                if len(entry.contexts) < MAX_CONTEXTS and context not in entry.contexts:
                    entry.contexts.append(context)

        return sorted(data.values(), key=lambda k: (-k.score, k.keyword))

    def _keyword_score(self, entry: KeywordFrequency, now: datetime) -> float:
        """Frequency boosted by recency (last day) and persistence (last hours)."""
        recency = 1 - (now - entry.last_seen) / timedelta(days=1)
        persistence = (entry.last_seen - entry.first_seen) / timedelta(hours=1)
        return (
            entry.frequency
            * (1 + max(0.0, recency))
            * (1 + min(1.0, persistence / 24))
        )

    def topic_info(self, messages: Sequence[Message]) -> list[TopicInfo]:
        """Aggregate the window's keywords into ranked topics.

        Each topic is led by one keyword and carries the keywords that
        co-occur with it in at least two messages.
        """
        if not messages:
            return []

        per_message = [set(self.extract_from_message(m)) for m in messages]
        occurrences: Counter[str] = Counter()
        for keywords in per_message:
            occurrences.update(keywords)

        ranked = sorted(occurrences.items(), key=lambda item: (-item[1], item[0]))
        topics: list[TopicInfo] = []
        for keyword, count in ranked[:MAX_TOPICS]:
            co_occurring: Counter[str] = Counter()
            for keywords in per_message:
                if keyword in keywords:
                    co_occurring.update(keywords - {keyword})
            related = sorted(
                (k for k, c in co_occurring.items() if c >= 2),
                key=lambda k: (-co_occurring[k], k),
            )
            topic_keywords = (keyword, *related[: MAX_RELATED_KEYWORDS - 1])
            topics.append(TopicInfo(
                keywords=topic_keywords,
                score=count / len(messages),
                category=self.categorize(topic_keywords),
                confidence=min(count / FULL_CONFIDENCE_OCCURRENCES, 1.0),
            ))
        return topics

    def categorize(self, keywords: Iterable[str]) -> str:
        """Map keywords onto a coarse topic category."""
        lowered = [k.lower() for k in keywords]
        for category, category_keywords in TOPIC_CATEGORIES.items():
            if any(ck in k or k in ck for k in lowered for ck in category_keywords):
                return category
        return "other"

    def detect_topic_shift(
        self,
        recent: Sequence[Message],
        historical: Sequence[Message],
        threshold: float = 0.5,
    ) -> TopicShift:
        """Compare the keyword sets of two message spans."""
        recent_keywords = self.extract_from_messages(recent)
        historical_keywords = self.extract_from_messages(historical)
        recent_set, historical_set = set(recent_keywords), set(historical_keywords)

        union = recent_set | historical_set
        if not union:
            return TopicShift(has_shift=False, new_topics=(), old_topics=())

        overlap = len(recent_set & historical_set) / len(union)
        return TopicShift(
            has_shift=overlap < threshold,
            new_topics=tuple(k for k in recent_keywords if k not in historical_set),
            old_topics=tuple(k for k in historical_keywords if k not in recent_set),
        )

    def find_repeated_keywords(
        self,
        messages: Sequence[Message],
        min_repetitions: int = 3,
        window_size: int = 5,
    ) -> list[RepeatedKeyword]:
        """Find keywords that recur densely across nearby messages.

        Args:
            messages: Messages to scan, oldest first
            min_repetitions: Minimum messages mentioning the keyword
            window_size: Span of messages used to measure density

        Returns:
            Repeated keywords, densest first
        """
        positions: dict[str, list[int]] = {}
        for index, message in enumerate(messages):
            for keyword in self.extract_from_message(message):
                positions.setdefault(keyword, []).append(index)

        repeated: list[RepeatedKeyword] = []
        for keyword, hits in positions.items():
            if len(hits) < min_repetitions:
                continue
            density = self._density(hits, window_size)
            if density > 0.5:
                repeated.append(RepeatedKeyword(
                    keyword=keyword,
                    positions=tuple(hits),
                    density=density,
                ))

        return sorted(repeated, key=lambda r: (-r.density, r.keyword))

    @staticmethod
    def _density(positions: list[int], window_size: int) -> float:
        """Largest share of a window_size span covered by the keyword."""
        best = 0
        for i, start in enumerate(positions):
            count = sum(1 for p in positions[i:] if p - start < window_size)
            best = max(best, count)
        return best / window_size
