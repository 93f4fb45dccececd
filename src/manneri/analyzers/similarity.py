"""Lexical similarity of a message against recent conversation history."""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..models import Message, SimilarityResult, TextAnalysisOptions
from .text import generate_ngrams, jaccard_similarity, normalize_text, tokenize

if TYPE_CHECKING:
    from collections.abc import Sequence

DEFAULT_CACHE_SIZE = 1000


@dataclass(frozen=True)
class CacheStats:
    """Similarity cache counters."""

    size: int
    hits: int
    misses: int

    @property
    def hit_rate(self) -> float:
        """Share of lookups answered from the cache."""
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class SimilarityAnalyzer:
    """Scores messages against history with n-gram Jaccard similarity.

    Messages whose normalized text is shorter than ``min_message_length``
    carry too little signal: they score 0 and never match.
    """

    def __init__(
        self,
        options: TextAnalysisOptions | None = None,
        min_message_length: int = 10,
        ngram_size: int = 2,
        same_role_only: bool = True,
        cache_size: int = DEFAULT_CACHE_SIZE,
    ) -> None:
        """Initialize the similarity analyzer.

        Args:
            options: Tokenizer options, uses defaults if not provided
            min_message_length: Minimum normalized length for comparison
            ngram_size: Preferred n-gram size
            same_role_only: Only compare messages from the same sender role
            cache_size: Maximum cached text pairs
        """
        self.options = options or TextAnalysisOptions()
        self.min_message_length = min_message_length
        self.ngram_size = ngram_size
        self.same_role_only = same_role_only
        self.cache_size = cache_size
        self._cache: OrderedDict[tuple[str, str], float] = OrderedDict()
        self._hits = 0
        self._misses = 0

    def is_comparable(self, text: str) -> bool:
        """Check if a text is long enough to compare."""
        normalized = normalize_text(text, case_sensitive=self.options.case_sensitive)
        return bool(normalized) and len(normalized) >= self.min_message_length

    def ngram_similarity(self, text_a: str, text_b: str, n: int | None = None) -> float:
        """Jaccard similarity of the n-gram sets of two texts.

        Identical normalized texts score 1.0. The n-gram size shrinks to the
        shorter token count so short messages still compare. Empty input
        scores 0.0.
        """
        case_sensitive = self.options.case_sensitive
        normalized_a = normalize_text(text_a, case_sensitive=case_sensitive)
        normalized_b = normalize_text(text_b, case_sensitive=case_sensitive)
        if not normalized_a or not normalized_b:
            return 0.0
        if normalized_a == normalized_b:
            return 1.0

        tokens_a = tokenize(text_a, self.options)
        tokens_b = tokenize(text_b, self.options)
        if not tokens_a or not tokens_b:
            return 0.0

        size = min(n or self.ngram_size, len(tokens_a), len(tokens_b))
        return jaccard_similarity(
            generate_ngrams(tokens_a, size),
            generate_ngrams(tokens_b, size),
        )

    def calculate_similarity(self, text_a: str, text_b: str) -> float:
        """Cached, symmetric n-gram similarity."""
        key = (text_a, text_b) if text_a <= text_b else (text_b, text_a)
        if key in self._cache:
            self._hits += 1
            self._cache.move_to_end(key)
            return self._cache[key]

        self._misses += 1
        score = self.ngram_similarity(text_a, text_b)
        self._cache[key] = score
        if len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)
        return score

    def analyze(
        self,
        candidate: Message,
        history: Sequence[Message],
        threshold: float = 0.75,
    ) -> SimilarityResult:
        """Score a candidate message against prior messages.

        Args:
            candidate: The newest message
            history: Prior messages, oldest first
            threshold: Score at which a prior message counts as a repeat

        Returns:
            Maximum score, repetition flag and matches (most recent first)
        """
        if not history or not self.is_comparable(candidate.content):
            return SimilarityResult()

        best = 0.0
        matched: list[Message] = []
        for message in reversed(history):
            if self.same_role_only and message.role != candidate.role:
                continue
            if not self.is_comparable(message.content):
                continue

            score = self.calculate_similarity(candidate.content, message.content)
            best = max(best, score)
            if score >= threshold:
                matched.append(message)

        return SimilarityResult(
            score=best,
            is_repeated=best >= threshold,
            matched_messages=tuple(matched),
        )

    def find_similar_messages(
        self,
        target: Message,
        messages: Sequence[Message],
        threshold: float = 0.75,
        same_role_only: bool = True,
    ) -> list[Message]:
        """Find messages similar to a target, in their original order."""
        if not self.is_comparable(target.content):
            return []

        similar: list[Message] = []
        for message in messages:
            if message is target:
                continue
            if same_role_only and message.role != target.role:
                continue
            if not self.is_comparable(message.content):
                continue
            if self.calculate_similarity(target.content, message.content) >= threshold:
                similar.append(message)
        return similar

    def sequence_similarity(
        self,
        sequence_a: Sequence[Message],
        sequence_b: Sequence[Message],
    ) -> float:
        """Mean similarity of aligned same-role message pairs."""
        if len(sequence_a) != len(sequence_b):
            return 0.0

        scores = [
            self.calculate_similarity(a.content, b.content)
            for a, b in zip(sequence_a, sequence_b)
            if a.role == b.role
        ]
        return sum(scores) / len(scores) if scores else 0.0

    def cache_stats(self) -> CacheStats:
        """Get cache size and hit counters."""
        return CacheStats(size=len(self._cache), hits=self._hits, misses=self._misses)

    def clear_cache(self) -> None:
        """Drop all cached scores and counters."""
        self._cache.clear()
        self._hits = 0
        self._misses = 0
