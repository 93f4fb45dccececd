"""Top-level repetition detector and intervention policy."""

from __future__ import annotations

import random
from collections import deque
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from loguru import logger
from pydantic import ValidationError

from .analyzer import ConversationAnalyzer
from .analyzers import CacheStats
from .events import (
    CleanupCompleted,
    EventBus,
    EventHandler,
    EventType,
    LoadSuccess,
    SaveSuccess,
    SimilarityCalculated,
    StorageCleaned,
    StorageError,
    TopicChange,
)
from .exceptions import ConfigValidationError, PersistenceError
from .models import (
    AnalysisResult,
    DiversificationPrompt,
    InterventionReason,
    ManneriConfig,
    Message,
    PromptPriority,
    PromptType,
    StorageData,
    utc_now,
)
from .persistence import PersistenceProvider, SupportsCleanup
from .prompts import PromptGenerator

MAX_INTERVENTION_HISTORY = 100
DEFAULT_CLEANUP_AGE = timedelta(days=7)
# Leading topics compared to decide whether the topic changed
TRACKED_TOPICS = 3


class DetectorState(str, Enum):
    """Where the detector is between two messages."""

    IDLE = "idle"
    ANALYZING = "analyzing"
    INTERVENED = "intervened"


@dataclass(frozen=True)
class DetectorStatistics:
    """Summary of interventions and analysis state."""

    total_interventions: int
    average_interval: timedelta | None
    last_intervention: datetime | None
    similarity_threshold: float
    repetition_limit: int
    intervention_cooldown: timedelta
    pattern_count: int
    cache: CacheStats


def _coerce_config(config: ManneriConfig | Mapping[str, Any] | None) -> ManneriConfig:
    if isinstance(config, ManneriConfig):
        return config
    try:
        return ManneriConfig().merged(config or {})
    except ValidationError as e:
        msg = f"Invalid detector configuration: {e}"
        raise ConfigValidationError(msg, details={"fields": sorted(config or {})}) from e


class ManneriDetector:
    """Watches a conversation and decides when to ask for a change of direction.

    Each ``process`` call is one synchronous transition:
    idle/intervened -> analyzing -> idle or intervened. Calls for one
    instance must be serialized by the caller; run one detector per chat
    session.
    """

    def __init__(
        self,
        config: ManneriConfig | Mapping[str, Any] | None = None,
        *,
        persistence: PersistenceProvider | None = None,
        events: EventBus | None = None,
        clock: Callable[[], datetime] | None = None,
        rng: random.Random | None = None,
        auto_save: bool = False,
        load_on_start: bool = True,
    ) -> None:
        """Initialize the detector.

        Args:
            config: Configuration snapshot or partial overrides of the defaults
            persistence: Provider mirroring detector state
            events: Event bus to publish on, a private one is created if not provided
            clock: Source of the current time
            rng: Random source for template selection
            auto_save: Save a snapshot after every intervention
            load_on_start: Seed state from the provider during construction;
                settings stored in the snapshot replace ``config``. Pass False
                and call ``load()`` then ``update_config()`` to keep explicit
                settings

        Raises:
            ConfigValidationError: If the configuration is invalid
        """
        self._config = _coerce_config(config)
        self.persistence = persistence
        self.events = events or EventBus()
        self.auto_save = auto_save
        self._clock = clock or utc_now
        self._rng = rng
        self.analyzer = ConversationAnalyzer(self._config)
        self.prompt_generator = self._build_prompt_generator()
        self.state = DetectorState.IDLE

        self._history: deque[Message] = deque(maxlen=self._config.lookback_window)
        self._interventions: list[datetime] = []
        self._last_result: AnalysisResult | None = None
        self._lead_topics: tuple[str, ...] = ()
        self._last_cleanup = self._clock()

        if persistence is not None and load_on_start:
            self.load()

    def _build_prompt_generator(self) -> PromptGenerator:
        return PromptGenerator(
            language=self._config.language,
            custom_prompts=self._config.custom_prompts,
            rng=self._rng,
        )

    @property
    def config(self) -> ManneriConfig:
        """Current configuration snapshot."""
        return self._config

    @property
    def history(self) -> tuple[Message, ...]:
        """Messages in the current window, oldest first."""
        return tuple(self._history)

    @property
    def interventions(self) -> tuple[datetime, ...]:
        """Instants of past interventions, oldest first."""
        return tuple(self._interventions)

    @property
    def last_intervention(self) -> datetime | None:
        """Instant of the most recent intervention."""
        return self._interventions[-1] if self._interventions else None

    @property
    def last_result(self) -> AnalysisResult | None:
        """Analysis produced by the most recent ``process`` call."""
        return self._last_result

    def in_cooldown(self, now: datetime | None = None) -> bool:
        """Check if an intervention would currently be suppressed."""
        return not self.analyzer.cooldown_elapsed(self.last_intervention, now or self._clock())

    def on(self, event: EventType | str, handler: EventHandler) -> None:
        """Subscribe to an event."""
        self.events.subscribe(event, handler)

    def off(self, event: EventType | str, handler: EventHandler) -> None:
        """Unsubscribe from an event."""
        self.events.unsubscribe(event, handler)

    def _emit(self, event: EventType, payload: Any) -> None:
        if self._config.debug_mode:
            logger.debug(f"[Manneri] Event: {event.value} {payload!r}")
        self.events.emit(event, payload)

    def process(self, message: Message) -> DiversificationPrompt | None:
        """Consume a new message and intervene if the conversation is stuck.

        Args:
            message: The newest message

        Returns:
            The emitted prompt, or None when no intervention is due

        Raises:
            TypeError: If ``message`` is not a Message
        """
        if not isinstance(message, Message):
            msg = f"Expected Message, got {type(message).__name__}"
            raise TypeError(msg)

        now = self._clock()
        self.state = DetectorState.ANALYZING
        self._history.append(message)
        self.analyzer.observe(message, now)

        result = self.analyzer.analyze(
            self._history,
            last_intervention=self.last_intervention,
            now=now,
        )
        self._last_result = result

        self._emit(
            EventType.SIMILARITY_CALCULATED,
            SimilarityCalculated(
                score=result.similarity.score,
                threshold=self._config.similarity_threshold,
            ),
        )
        self._track_topics(result)
        if result.repetition_detected:
            self._emit(EventType.PATTERN_DETECTED, result)

        if not result.should_intervene:
            if result.repetition_detected and self._config.debug_mode:
                remaining = self._config.intervention_cooldown - (now - self.last_intervention)
                logger.debug(f"[Manneri] Intervention skipped, cooldown remaining: {remaining}")
            self.state = DetectorState.INTERVENED if self.in_cooldown(now) else DetectorState.IDLE
            return None

        prompt = self._build_prompt(result)
        self._record_intervention(now)
        self.state = DetectorState.INTERVENED
        logger.info(
            f"Intervention triggered ({result.intervention_reason.value}, "
            f"priority={prompt.priority.value})",
        )
        self._emit(EventType.INTERVENTION_TRIGGERED, prompt)

        if self.auto_save and self.persistence is not None:
            self.save()
        return prompt

    def analyze(self, messages: Sequence[Message] | None = None) -> AnalysisResult:
        """Analyze the current window (or a given history) without changing state."""
        history = self._history if messages is None else messages
        return self.analyzer.analyze(
            history,
            last_intervention=self.last_intervention,
            now=self._clock(),
        )

    def _track_topics(self, result: AnalysisResult) -> None:
        if not self._config.enable_topic_tracking:
            return

        lead = tuple(topic.keywords[0] for topic in result.topics[:TRACKED_TOPICS])
        if self._lead_topics and lead and set(lead) != set(self._lead_topics):
            self._emit(
                EventType.TOPIC_CHANGED,
                TopicChange(old_topics=self._lead_topics, new_topics=lead),
            )
        if lead:
            self._lead_topics = lead

    def _build_prompt(self, result: AnalysisResult) -> DiversificationPrompt:
        both_fired = result.similarity.is_repeated and bool(result.patterns)
        prompt_type = None
        if result.intervention_reason == InterventionReason.PATTERN and result.repeated_keywords:
            prompt_type = PromptType.KEYWORD_SHIFT

        return self.prompt_generator.generate(
            result.intervention_reason,
            self._config.language,
            priority=PromptPriority.HIGH if both_fired else PromptPriority.MEDIUM,
            prompt_type=prompt_type,
            context=self._describe(result),
        )

    def _describe(self, result: AnalysisResult) -> str:
        parts = [
            result.intervention_reason.value,
            f"similarity {result.similarity.score:.2f}",
        ]
        if result.patterns:
            top = result.patterns[0]
            parts.append(f"pattern '{top.pattern}' seen {top.frequency} times")
        if result.repeated_keywords:
            keywords = ", ".join(k.keyword for k in result.repeated_keywords[:3])
            parts.append(f"repeated keywords: {keywords}")
        parts.append(f"window of {len(self._history)} messages")
        return "; ".join(parts)

    def _record_intervention(self, now: datetime) -> None:
        self._interventions.append(now)
        del self._interventions[:-MAX_INTERVENTION_HISTORY]

    def update_config(self, partial: Mapping[str, Any]) -> ManneriConfig:
        """Merge overrides into the live configuration.

        Already stored patterns are not rescored. On validation failure the
        previous configuration stays in effect.

        Args:
            partial: Field overrides

        Returns:
            The new configuration

        Raises:
            ConfigValidationError: If the merged configuration is invalid
        """
        try:
            new_config = self._config.merged(partial)
        except ValidationError as e:
            msg = f"Invalid configuration update: {e}"
            raise ConfigValidationError(msg, details={"fields": sorted(partial)}) from e

        old_config = self._config
        self._config = new_config
        self.analyzer.update_config(new_config)
        if new_config.lookback_window != old_config.lookback_window:
            self._history = deque(self._history, maxlen=new_config.lookback_window)
        if (
            new_config.language != old_config.language
            or new_config.custom_prompts != old_config.custom_prompts
        ):
            self.prompt_generator = self._build_prompt_generator()

        self._emit(EventType.CONFIG_UPDATED, dict(partial))
        return new_config

    def clear_history(self) -> None:
        """Drop the message window and the pattern table."""
        self._history.clear()
        self.analyzer.clear()
        self._last_result = None
        self._lead_topics = ()
        self.state = DetectorState.IDLE

    def reset(self, clear_storage: bool = False) -> None:
        """Return to a fresh session.

        Args:
            clear_storage: Also remove the persisted snapshot
        """
        self.clear_history()
        self._interventions.clear()
        self.prompt_generator.clear_history()
        if clear_storage:
            self.clear_storage()

    def statistics(self) -> DetectorStatistics:
        """Summarize interventions and analysis state."""
        intervals = [
            later - earlier
            for earlier, later in zip(self._interventions, self._interventions[1:])
        ]
        average = sum(intervals, timedelta(0)) / len(intervals) if intervals else None
        return DetectorStatistics(
            total_interventions=len(self._interventions),
            average_interval=average,
            last_intervention=self.last_intervention,
            similarity_threshold=self._config.similarity_threshold,
            repetition_limit=self._config.repetition_limit,
            intervention_cooldown=self._config.intervention_cooldown,
            pattern_count=len(self.analyzer.pattern_detector),
            cache=self.analyzer.similarity_analyzer.cache_stats(),
        )

    def export_data(self) -> StorageData:
        """Full snapshot of the state a provider should mirror."""
        return StorageData(
            patterns=self.analyzer.pattern_detector.snapshot(),
            interventions=list(self._interventions),
            settings=self._config.model_dump(mode="json"),
            last_cleanup=self._last_cleanup,
        )

    def import_data(self, data: StorageData) -> None:
        """Seed patterns, interventions and settings from a snapshot."""
        self.analyzer.pattern_detector.load(data.patterns)
        self._interventions = sorted(data.interventions)[-MAX_INTERVENTION_HISTORY:]
        self._last_cleanup = data.last_cleanup
        if data.settings:
            try:
                self.update_config(data.settings)
            except ConfigValidationError as e:
                logger.warning(f"Ignoring stored settings: {e}")

    def save(self) -> bool:
        """Mirror the current state through the persistence provider.

        Failures are reported through ``save_error`` and never raised.
        """
        if self.persistence is None:
            logger.warning("ManneriDetector: no persistence provider configured")
            return False

        try:
            saved = bool(self.persistence.save(self.export_data()))
        except Exception as e:
            logger.warning(f"Failed to save detector state: {e}")
            self._emit(EventType.SAVE_ERROR, StorageError(error=e))
            return False

        if saved:
            self._emit(EventType.SAVE_SUCCESS, SaveSuccess(timestamp=self._clock()))
        else:
            error = PersistenceError("Persistence provider did not store the snapshot")
            self._emit(EventType.SAVE_ERROR, StorageError(error=error))
        return saved

    def load(self) -> bool:
        """Seed state from the persistence provider.

        Failures are reported through ``load_error`` and never raised.

        Returns:
            True if a snapshot was loaded
        """
        if self.persistence is None:
            logger.warning("ManneriDetector: no persistence provider configured")
            return False

        try:
            data = self.persistence.load()
        except Exception as e:
            logger.warning(f"Failed to load detector state: {e}")
            self._emit(EventType.LOAD_ERROR, StorageError(error=e))
            return False

        if data is None:
            return False

        self.import_data(data)
        self._emit(EventType.LOAD_SUCCESS, LoadSuccess(data=data, timestamp=self._clock()))
        return True

    def cleanup(self, max_age: timedelta = DEFAULT_CLEANUP_AGE) -> int:
        """Drop patterns and interventions older than ``max_age``.

        In-memory state is pruned first; the provider is then asked to prune
        its snapshot if it supports cleanup.

        Returns:
            Total number of items removed
        """
        now = self._clock()
        cutoff = now - max_age

        kept = [t for t in self._interventions if t > cutoff]
        removed = len(self._interventions) - len(kept)
        self._interventions = kept
        removed += self.analyzer.pattern_detector.cleanup(max_age, now)
        self._last_cleanup = now
        if removed:
            self._emit(EventType.STORAGE_CLEANED, StorageCleaned(removed_items=removed))

        provider_removed = 0
        if isinstance(self.persistence, SupportsCleanup):
            try:
                provider_removed = self.persistence.cleanup(max_age)
            except Exception as e:
                logger.warning(f"Failed to clean up stored state: {e}")
                self._emit(EventType.CLEANUP_ERROR, StorageError(error=e))
                return removed

        total = removed + provider_removed
        if total:
            self._emit(
                EventType.CLEANUP_COMPLETED,
                CleanupCompleted(removed_items=total, timestamp=now),
            )
        return total

    def clear_storage(self) -> bool:
        """Remove the persisted snapshot; in-memory state is untouched."""
        if self.persistence is None:
            logger.warning("ManneriDetector: no persistence provider configured")
            return False

        try:
            return bool(self.persistence.clear())
        except Exception as e:
            logger.warning(f"Failed to clear stored state: {e}")
            self._emit(EventType.CLEANUP_ERROR, StorageError(error=e))
            return False
