"""Core data models for the Manneri repetition detector.

Analysis records are plain dataclasses; the configuration snapshot and the
persisted storage payload are pydantic models so they can be validated and
serialized at the boundary.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_EXCLUDE_KEYWORDS = (
    "はい",
    "そうですね",
    "そうです",
    "いいえ",
    "yes",
    "no",
    "ok",
    "okay",
)


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(tz=UTC)


class MessageRole(str, Enum):
    """Role of the message sender."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True)
class Message:
    """A single chat message."""

    role: MessageRole
    content: str
    timestamp: datetime | None = None

    def __post_init__(self) -> None:
        """Ensure role is MessageRole enum, content is text and timestamp is aware."""
        if not isinstance(self.role, MessageRole):
            object.__setattr__(self, "role", MessageRole(self.role))
        if not isinstance(self.content, str):
            object.__setattr__(self, "content", "")
        if self.timestamp is not None and self.timestamp.tzinfo is None:
            # Naive timestamps are taken as UTC
            object.__setattr__(self, "timestamp", self.timestamp.replace(tzinfo=UTC))


@dataclass
class TextAnalysisOptions:
    """Options shared by the tokenizer and the text analyzers."""

    min_word_length: int = 2
    max_ngrams: int = 3
    include_stop_words: bool = False
    case_sensitive: bool = False
    language: Literal["ja", "en", "auto"] = "auto"


class PromptTemplates(BaseModel):
    """Intervention templates for a single language."""

    intervention: list[str] = Field(
        default_factory=list,
        description="Diversification prompt templates",
    )


class ManneriConfig(BaseModel):
    """Immutable detector configuration snapshot."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    similarity_threshold: float = Field(
        default=0.75,
        description="Similarity score at which a message counts as repeated",
    )
    repetition_limit: int = Field(
        default=3,
        description="Recent occurrences before a pattern becomes active",
    )
    lookback_window: int = Field(
        default=10,
        description="Number of most recent messages considered",
    )
    intervention_cooldown: timedelta = Field(
        default=timedelta(minutes=5),
        description="Minimum time between two interventions",
    )
    min_message_length: int = Field(
        default=10,
        ge=0,
        description="Messages shorter than this never match",
    )
    exclude_keywords: list[str] = Field(
        default_factory=lambda: list(DEFAULT_EXCLUDE_KEYWORDS),
        description="Keywords ignored during analysis",
    )
    enable_topic_tracking: bool = Field(default=True)
    enable_keyword_analysis: bool = Field(default=True)
    debug_mode: bool = Field(default=False)
    language: str = Field(default="ja", description="Prompt language")
    custom_prompts: dict[str, PromptTemplates] | None = Field(
        default=None,
        description="Per-language prompt overrides",
    )

    @field_validator("similarity_threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        """Validate the threshold is a ratio."""
        if not 0.0 <= v <= 1.0:
            msg = "Similarity threshold must be between 0 and 1"
            raise ValueError(msg)
        return v

    @field_validator("repetition_limit", "lookback_window")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate counts are positive integers."""
        if v < 1:
            msg = "Repetition limit and lookback window must be at least 1"
            raise ValueError(msg)
        return v

    @field_validator("intervention_cooldown")
    @classmethod
    def validate_cooldown(cls, v: timedelta) -> timedelta:
        """Validate the cooldown is not negative."""
        if v < timedelta(0):
            msg = "Intervention cooldown must not be negative"
            raise ValueError(msg)
        return v

    def merged(self, partial: Mapping[str, Any]) -> ManneriConfig:
        """Return a new validated snapshot with ``partial`` applied.

        Args:
            partial: Field overrides

        Returns:
            Merged configuration

        Raises:
            pydantic.ValidationError: If the merged values are invalid
        """
        data = self.model_dump()
        data.update(partial)
        return ManneriConfig.model_validate(data)


@dataclass(frozen=True)
class SimilarityResult:
    """Similarity of the newest message against recent history."""

    score: float = 0.0
    is_repeated: bool = False
    matched_messages: tuple[Message, ...] = ()


@dataclass
class ConversationPattern:
    """A recurring normalized message signature."""

    id: str
    pattern: str
    frequency: int
    first_seen: datetime
    last_seen: datetime
    messages: list[Message] = field(default_factory=list)


@dataclass(frozen=True)
class TopicInfo:
    """A topic aggregated from the keywords of the analysis window."""

    keywords: tuple[str, ...]
    score: float
    category: str
    confidence: float


@dataclass(frozen=True)
class RepeatedKeyword:
    """A keyword whose occurrences cluster densely in the window."""

    keyword: str
    positions: tuple[int, ...]
    density: float


class InterventionReason(str, Enum):
    """Which repetition condition fired."""

    SIMILARITY = "similarity_threshold_exceeded"
    PATTERN = "pattern_frequency_exceeded"
    NONE = "none"


@dataclass(frozen=True)
class AnalysisResult:
    """Unified result of one conversation analysis."""

    similarity: SimilarityResult
    topics: tuple[TopicInfo, ...] = ()
    patterns: tuple[ConversationPattern, ...] = ()
    should_intervene: bool = False
    intervention_reason: InterventionReason = InterventionReason.NONE
    last_intervention: datetime | None = None
    repeated_keywords: tuple[RepeatedKeyword, ...] = ()

    @property
    def repetition_detected(self) -> bool:
        """Check if any repetition condition fired, ignoring cooldown."""
        return self.intervention_reason != InterventionReason.NONE


class PromptType(str, Enum):
    """Kind of diversification requested."""

    TOPIC_CHANGE = "topic_change"
    PATTERN_BREAK = "pattern_break"
    KEYWORD_SHIFT = "keyword_shift"


class PromptPriority(str, Enum):
    """Urgency of a diversification prompt."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class DiversificationPrompt:
    """An instruction for the external reply generator."""

    content: str
    type: PromptType
    priority: PromptPriority
    context: str


class StorageData(BaseModel):
    """Full snapshot of detector state mirrored by a persistence provider."""

    patterns: list[ConversationPattern] = Field(default_factory=list)
    interventions: list[datetime] = Field(default_factory=list)
    settings: dict[str, Any] = Field(
        default_factory=dict,
        description="Partial configuration snapshot (JSON-compatible)",
    )
    last_cleanup: datetime = Field(default_factory=utc_now)
