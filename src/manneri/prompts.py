"""Localized diversification prompt templates and selection."""

from __future__ import annotations

import random
from typing import TYPE_CHECKING

from .models import (
    DiversificationPrompt,
    InterventionReason,
    PromptPriority,
    PromptTemplates,
    PromptType,
)

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

FALLBACK_LANGUAGE = "en"
FALLBACK_PROMPT = "Please change the topic and talk about something new."
MAX_PROMPT_HISTORY = 50

DEFAULT_PROMPTS: dict[str, PromptTemplates] = {
    "ja": PromptTemplates(intervention=[
        "話題を変えて、新しい内容について話してください。",
        "別の角度から話題を展開してみましょう。",
        "新しいテーマで会話を続けてください。",
        "会話に変化をもたらすため、違う話題にしてみませんか？",
    ]),
    "en": PromptTemplates(intervention=[
        "Please change the topic and talk about something new.",
        "Let's explore the topic from a different angle.",
        "Please continue the conversation with a new theme.",
        "How about changing to a different topic to bring variety to the conversation?",
    ]),
}

REASON_TO_TYPE = {
    InterventionReason.SIMILARITY: PromptType.PATTERN_BREAK,
    InterventionReason.PATTERN: PromptType.TOPIC_CHANGE,
}


def override_prompts(
    defaults: Mapping[str, PromptTemplates],
    custom: Mapping[str, PromptTemplates] | None = None,
) -> dict[str, PromptTemplates]:
    """Overlay custom templates on the defaults, per language.

    A language is overridden only when the custom entry has templates.
    """
    merged = dict(defaults)
    for language, templates in (custom or {}).items():
        if templates.intervention:
            merged[language] = templates
    return merged


class PromptGenerator:
    """Selects non-repeating intervention templates.

    The used-template set belongs to this instance; it is bounded by
    ``max_prompt_history`` and cleared when a language's pool is exhausted.
    """

    def __init__(
        self,
        language: str = "ja",
        custom_prompts: Mapping[str, PromptTemplates] | None = None,
        max_prompt_history: int = MAX_PROMPT_HISTORY,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize the prompt generator.

        Args:
            language: Default prompt language
            custom_prompts: Per-language template overrides
            max_prompt_history: Capacity of the used-template set
            rng: Random source, a private one is created if not provided
        """
        self.language = language
        self.prompts = override_prompts(DEFAULT_PROMPTS, custom_prompts)
        self.max_prompt_history = max_prompt_history
        self._rng = rng or random.Random()
        # dict keeps insertion order, so the oldest entry is evicted first
        self._used: dict[str, None] = {}

    def templates_for(self, language: str | None = None) -> list[str]:
        """Templates for a language, falling back to English."""
        templates = self.prompts.get(language or self.language)
        if templates is None or not templates.intervention:
            templates = self.prompts.get(FALLBACK_LANGUAGE)
        return list(templates.intervention) if templates else []

    def generate(
        self,
        reason: InterventionReason = InterventionReason.PATTERN,
        language: str | None = None,
        *,
        priority: PromptPriority = PromptPriority.MEDIUM,
        prompt_type: PromptType | None = None,
        context: str = "",
    ) -> DiversificationPrompt:
        """Build a diversification prompt.

        Args:
            reason: Which repetition condition fired
            language: Prompt language, defaults to the generator's language
            priority: Urgency of the intervention
            prompt_type: Explicit prompt type, derived from reason if omitted
            context: Free-form description of the triggering situation

        Returns:
            Prompt with a template not used since the pool was last reset
        """
        templates = self.templates_for(language)
        content = self._select(templates) if templates else FALLBACK_PROMPT

        return DiversificationPrompt(
            content=content,
            type=prompt_type or REASON_TO_TYPE.get(reason, PromptType.TOPIC_CHANGE),
            priority=priority,
            context=context or f"reason: {reason.value}",
        )

    def _select(self, templates: Sequence[str]) -> str:
        available = [t for t in templates if t not in self._used]
        if not available:
            last = next(reversed(self._used), None)
            self._used.clear()
            # Avoid repeating the previous template right after the reset
            available = [t for t in templates if t != last] or list(templates)

        selected = self._rng.choice(available)
        self._used[selected] = None
        while len(self._used) > self.max_prompt_history:
            del self._used[next(iter(self._used))]
        return selected

    @property
    def used_templates(self) -> list[str]:
        """Templates used since the last reset, oldest first."""
        return list(self._used)

    def clear_history(self) -> None:
        """Forget which templates were used."""
        self._used.clear()
