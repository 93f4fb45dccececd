"""Tests for diversification prompt generation."""

import random

from manneri.models import InterventionReason, PromptPriority, PromptTemplates, PromptType
from manneri.prompts import (
    DEFAULT_PROMPTS,
    FALLBACK_PROMPT,
    PromptGenerator,
    override_prompts,
)


class TestPromptGenerator:
    """Test template selection."""

    def test_default_language_is_japanese(self) -> None:
        """Test prompts come from the Japanese templates by default."""
        prompt = PromptGenerator(rng=random.Random(1)).generate()
        assert prompt.content in DEFAULT_PROMPTS["ja"].intervention

    def test_no_repeat_until_pool_exhausted(self) -> None:
        """Test every template is used once before any repeats."""
        generator = PromptGenerator(language="en", rng=random.Random(7))
        templates = DEFAULT_PROMPTS["en"].intervention

        contents = [generator.generate().content for _ in templates]

        assert sorted(contents) == sorted(templates)

    def test_no_consecutive_repeat(self) -> None:
        """Test the same template is never emitted twice in a row."""
        generator = PromptGenerator(language="en", rng=random.Random(3))

        contents = [generator.generate().content for _ in range(25)]

        assert all(a != b for a, b in zip(contents, contents[1:]))

    def test_unknown_language_falls_back_to_english(self) -> None:
        """Test languages without templates use English."""
        generator = PromptGenerator(rng=random.Random(1))
        prompt = generator.generate(language="fr")
        assert prompt.content in DEFAULT_PROMPTS["en"].intervention

    def test_fallback_prompt_without_templates(self) -> None:
        """Test the built-in prompt when no templates exist at all."""
        generator = PromptGenerator()
        generator.prompts = {}
        assert generator.generate().content == FALLBACK_PROMPT

    def test_custom_prompts(self) -> None:
        """Test custom templates replace the defaults for their language."""
        custom = {"en": PromptTemplates(intervention=["Switch it up.", "Try a new topic."])}
        generator = PromptGenerator(language="en", custom_prompts=custom, rng=random.Random(2))

        contents = {generator.generate().content for _ in range(2)}

        assert contents == {"Switch it up.", "Try a new topic."}
        assert generator.templates_for("ja") == DEFAULT_PROMPTS["ja"].intervention

    def test_single_template(self) -> None:
        """Test a single-template language still produces prompts."""
        custom = {"en": PromptTemplates(intervention=["Only one."])}
        generator = PromptGenerator(language="en", custom_prompts=custom)
        assert [generator.generate().content for _ in range(3)] == ["Only one."] * 3

    def test_type_follows_reason(self) -> None:
        """Test the prompt type is derived from the reason."""
        generator = PromptGenerator(rng=random.Random(1))
        assert generator.generate(InterventionReason.SIMILARITY).type == PromptType.PATTERN_BREAK
        assert generator.generate(InterventionReason.PATTERN).type == PromptType.TOPIC_CHANGE

    def test_explicit_type_priority_and_context(self) -> None:
        """Test explicit prompt attributes are kept."""
        prompt = PromptGenerator(rng=random.Random(1)).generate(
            InterventionReason.PATTERN,
            priority=PromptPriority.HIGH,
            prompt_type=PromptType.KEYWORD_SHIFT,
            context="repeated keywords: genki",
        )
        assert prompt.type == PromptType.KEYWORD_SHIFT
        assert prompt.priority == PromptPriority.HIGH
        assert prompt.context == "repeated keywords: genki"

    def test_default_context(self) -> None:
        """Test the context names the reason when none is given."""
        prompt = PromptGenerator(rng=random.Random(1)).generate(InterventionReason.SIMILARITY)
        assert prompt.context == "reason: similarity_threshold_exceeded"

    def test_used_templates_bounded(self) -> None:
        """Test the used-template set never exceeds its capacity."""
        custom = {"en": PromptTemplates(intervention=[f"Prompt {i}" for i in range(5)])}
        generator = PromptGenerator(
            language="en",
            custom_prompts=custom,
            max_prompt_history=2,
            rng=random.Random(4),
        )

        for _ in range(3):
            generator.generate()

        assert len(generator.used_templates) == 2

    def test_instances_do_not_share_history(self) -> None:
        """Test each generator tracks its own used templates."""
        first = PromptGenerator(language="en", rng=random.Random(1))
        second = PromptGenerator(language="en", rng=random.Random(1))
        first.generate()
        assert second.used_templates == []

    def test_clear_history(self) -> None:
        """Test forgetting used templates."""
        generator = PromptGenerator(rng=random.Random(1))
        generator.generate()
        generator.clear_history()
        assert generator.used_templates == []


class TestOverridePrompts:
    """Test template overlays."""

    def test_empty_override_ignored(self) -> None:
        """Test a language with no custom templates keeps the defaults."""
        merged = override_prompts(DEFAULT_PROMPTS, {"en": PromptTemplates(intervention=[])})
        assert merged["en"] == DEFAULT_PROMPTS["en"]

    def test_new_language(self) -> None:
        """Test custom templates can add a language."""
        merged = override_prompts(DEFAULT_PROMPTS, {"fr": PromptTemplates(intervention=["Changeons de sujet."])})
        assert merged["fr"].intervention == ["Changeons de sujet."]
        assert set(DEFAULT_PROMPTS) == {"ja", "en"}
