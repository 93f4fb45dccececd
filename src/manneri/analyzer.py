"""Conversation analysis orchestrator."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, replace
from datetime import datetime
from typing import TYPE_CHECKING

from .analyzers import KeywordExtractor, PatternDetector, SimilarityAnalyzer
from .models import (
    AnalysisResult,
    ConversationPattern,
    InterventionReason,
    ManneriConfig,
    Message,
    SimilarityResult,
    TextAnalysisOptions,
    utc_now,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

# Mean pairwise similarity at which two back-to-back sequences form a loop
LOOP_SIMILARITY = 0.8
MIN_LOOP_MESSAGES = 4
# Span used to measure how densely a keyword recurs
KEYWORD_DENSITY_WINDOW = 5


@dataclass(frozen=True)
class LoopDetection:
    """A back-to-back repeated message sequence."""

    has_loop: bool = False
    loop_length: int = 0
    loop_start: int = -1
    confidence: float = 0.0


@dataclass(frozen=True)
class MessageFlow:
    """Shape of a conversation independent of its content."""

    average_length: int
    role_distribution: dict[str, int]
    rhythm: tuple[float, ...]
    engagement_score: int


class ConversationAnalyzer:
    """Runs similarity, keyword and pattern analysis over a sliding window.

    ``observe`` is the only step that mutates state (the pattern table);
    ``analyze`` is a query, so repeated calls over the same history give the
    same result.
    """

    def __init__(
        self,
        config: ManneriConfig | None = None,
        options: TextAnalysisOptions | None = None,
    ) -> None:
        """Initialize analyzers from a configuration snapshot.

        Args:
            config: Detector configuration, uses defaults if not provided
            options: Tokenizer options, uses defaults if not provided
        """
        self.config = config or ManneriConfig()
        self.options = options or TextAnalysisOptions()
        self.pattern_detector = PatternDetector(
            repetition_limit=self.config.repetition_limit,
            lookback_window=self.config.lookback_window,
            exclude_keywords=self.config.exclude_keywords,
            options=self.options,
        )
        self._build_text_analyzers()

    def _build_text_analyzers(self) -> None:
        self.similarity_analyzer = SimilarityAnalyzer(
            self.options,
            min_message_length=self.config.min_message_length,
        )
        self.keyword_extractor = KeywordExtractor(
            self.options,
            exclude_keywords=self.config.exclude_keywords,
        )

    def update_config(self, config: ManneriConfig) -> None:
        """Swap in a new configuration; stored patterns are not rescored."""
        self.config = config
        self._build_text_analyzers()
        self.pattern_detector.reconfigure(
            repetition_limit=config.repetition_limit,
            lookback_window=config.lookback_window,
            exclude_keywords=config.exclude_keywords,
        )

    def window(self, history: Sequence[Message]) -> list[Message]:
        """The most recent ``lookback_window`` messages."""
        return list(history)[-self.config.lookback_window :]

    def observe(self, message: Message, now: datetime | None = None) -> ConversationPattern | None:
        """Feed a new message into the pattern table."""
        return self.pattern_detector.observe(message, now)

    def analyze(
        self,
        history: Sequence[Message],
        *,
        last_intervention: datetime | None = None,
        now: datetime | None = None,
    ) -> AnalysisResult:
        """Analyze the newest message in the context of its window.

        Args:
            history: Conversation so far, oldest first
            last_intervention: When the previous prompt was emitted
            now: Reference time for the cooldown check

        Returns:
            Fresh analysis result
        """
        config = self.config
        window = self.window(history)

        similarity = SimilarityResult()
        if len(window) >= 2:
            similarity = self.similarity_analyzer.analyze(
                window[-1],
                window[:-1],
                config.similarity_threshold,
            )

        patterns = tuple(
            replace(p, messages=list(p.messages))
            for p in self.pattern_detector.active_patterns()
        )
        topics = (
            tuple(self.keyword_extractor.topic_info(window))
            if config.enable_topic_tracking
            else ()
        )
        repeated_keywords = (
            tuple(self.keyword_extractor.find_repeated_keywords(
                window,
                min_repetitions=config.repetition_limit,
                window_size=KEYWORD_DENSITY_WINDOW,
            ))
            if config.enable_keyword_analysis
            else ()
        )

        if similarity.is_repeated:
            reason = InterventionReason.SIMILARITY
        elif patterns:
            reason = InterventionReason.PATTERN
        else:
            reason = InterventionReason.NONE

        return AnalysisResult(
            similarity=similarity,
            topics=topics,
            patterns=patterns,
            should_intervene=(
                reason != InterventionReason.NONE
                and self.cooldown_elapsed(last_intervention, now)
            ),
            intervention_reason=reason,
            last_intervention=last_intervention,
            repeated_keywords=repeated_keywords,
        )

    def cooldown_elapsed(
        self,
        last_intervention: datetime | None,
        now: datetime | None = None,
    ) -> bool:
        """Check if enough time passed since the previous intervention."""
        if last_intervention is None:
            return True
        return (now or utc_now()) - last_intervention >= self.config.intervention_cooldown

    def detect_loops(self, messages: Sequence[Message]) -> LoopDetection:
        """Find the shortest sequence immediately repeated by the next one."""
        if len(messages) < MIN_LOOP_MESSAGES:
            return LoopDetection()

        for length in range(2, len(messages) // 2 + 1):
            for start in range(len(messages) - length * 2 + 1):
                first = messages[start : start + length]
                second = messages[start + length : start + length * 2]
                score = self.similarity_analyzer.sequence_similarity(first, second)
                if score > LOOP_SIMILARITY:
                    return LoopDetection(
                        has_loop=True,
                        loop_length=length,
                        loop_start=start,
                        confidence=score,
                    )
        return LoopDetection()

    def message_flow(self, messages: Sequence[Message]) -> MessageFlow:
        """Summarize message lengths, roles, pacing and vocabulary."""
        if not messages:
            return MessageFlow(0, {}, (), 0)

        average_length = sum(len(m.content) for m in messages) / len(messages)
        roles = Counter(m.role.value for m in messages)

        rhythm = tuple(
            (current.timestamp - previous.timestamp).total_seconds()
            for previous, current in zip(messages, messages[1:])
            if previous.timestamp and current.timestamp
        )

        vocabulary = {word.lower() for m in messages for word in m.content.split()}
        diversity = len(vocabulary) / len(messages)
        length_score = min(average_length / 100, 1.0)

        return MessageFlow(
            average_length=round(average_length),
            role_distribution=dict(roles),
            rhythm=rhythm,
            engagement_score=round((diversity + length_score) * 50),
        )

    def clear(self) -> None:
        """Drop cached scores and the pattern table."""
        self.similarity_analyzer.clear_cache()
        self.pattern_detector.clear()
