"""Tests for text normalization, tokenization and similarity primitives."""

import pytest

from manneri.analyzers.text import (
    contains_japanese,
    cosine_similarity,
    extract_keywords,
    generate_ngrams,
    is_stop_word,
    jaccard_similarity,
    normalize_text,
    term_frequencies,
    text_similarity,
    tokenize,
)
from manneri.models import TextAnalysisOptions


class TestNormalization:
    """Test text normalization."""

    def test_punctuation_case_and_whitespace(self) -> None:
        """Test punctuation is stripped and whitespace collapsed."""
        assert normalize_text("  Hello,   World!  ") == "hello world"

    def test_japanese_punctuation(self) -> None:
        """Test full-width punctuation is stripped."""
        assert normalize_text("元気？") == "元気"

    def test_case_sensitive(self) -> None:
        """Test case is kept when requested."""
        assert normalize_text("Hello World", case_sensitive=True) == "Hello World"

    def test_empty(self) -> None:
        """Test empty text normalizes to empty."""
        assert normalize_text("") == ""
        assert normalize_text("?!") == ""

    def test_contains_japanese(self) -> None:
        """Test script detection."""
        assert contains_japanese("こんにちは")
        assert contains_japanese("カタカナ")
        assert not contains_japanese("hello")


class TestTokenize:
    """Test tokenization."""

    def test_english_stop_words_removed(self) -> None:
        """Test English stop words are dropped by default."""
        assert tokenize("The quick brown fox") == ["quick", "brown", "fox"]

    def test_include_stop_words(self) -> None:
        """Test stop words are kept when requested."""
        options = TextAnalysisOptions(include_stop_words=True)
        assert tokenize("The quick brown fox", options) == ["the", "quick", "brown", "fox"]

    def test_min_word_length(self) -> None:
        """Test short tokens are dropped."""
        options = TextAnalysisOptions(min_word_length=3, include_stop_words=True)
        assert tokenize("a bb ccc", options) == ["ccc"]

    def test_japanese_mixed_script(self) -> None:
        """Test Japanese text is split into script runs."""
        tokens = tokenize("今日はAPIの話")
        assert "今日は" in tokens
        assert "api" in tokens

    def test_empty_text(self) -> None:
        """Test empty text has no tokens."""
        assert tokenize("") == []

    def test_is_stop_word(self) -> None:
        """Test stop word lookup per script."""
        assert is_stop_word("The", japanese=False)
        assert is_stop_word("です", japanese=True)
        assert not is_stop_word("weather", japanese=False)


class TestNgrams:
    """Test n-gram generation."""

    def test_bigrams(self) -> None:
        """Test contiguous bigrams."""
        assert generate_ngrams(["a", "b", "c"], 2) == ["a b", "b c"]

    def test_n_larger_than_tokens(self) -> None:
        """Test oversize n yields no n-grams."""
        assert generate_ngrams(["a", "b"], 3) == []

    @pytest.mark.parametrize("n", [0, -1])
    def test_non_positive_n(self, n: int) -> None:
        """Test non-positive n is rejected."""
        with pytest.raises(ValueError, match="must be positive"):
            generate_ngrams(["a"], n)


class TestSimilarityMeasures:
    """Test set and vector similarity measures."""

    def test_jaccard_identical(self) -> None:
        """Test identical sets score 1."""
        assert jaccard_similarity(["a", "b"], ["b", "a"]) == 1.0

    def test_jaccard_disjoint(self) -> None:
        """Test disjoint sets score 0."""
        assert jaccard_similarity(["a"], ["b"]) == 0.0

    def test_jaccard_partial(self) -> None:
        """Test partial overlap."""
        assert jaccard_similarity(["a", "b"], ["b", "c"]) == pytest.approx(1 / 3)

    def test_jaccard_both_empty(self) -> None:
        """Test two empty sets are identical."""
        assert jaccard_similarity([], []) == 1.0

    def test_cosine(self) -> None:
        """Test cosine similarity of term-frequency vectors."""
        vec = term_frequencies(["x", "y", "y"])
        assert cosine_similarity(vec, vec) == pytest.approx(1.0)
        assert cosine_similarity(vec, term_frequencies(["z"])) == 0.0
        assert cosine_similarity(vec, {}) == 0.0

    @pytest.mark.parametrize(
        ("text_a", "text_b"),
        [
            ("Hello World!", "hello world"),
            ("Good MORNING", "good morning."),
            ("元気ですか？", "元気ですか"),
        ],
    )
    def test_identical_after_normalization(self, text_a: str, text_b: str) -> None:
        """Test texts equal after normalization score 1."""
        assert text_similarity(text_a, text_b) == 1.0

    def test_unrelated_texts(self) -> None:
        """Test unrelated texts score 0."""
        assert text_similarity("pasta recipe dinner", "football match score") == 0.0


class TestExtractKeywords:
    """Test keyword extraction."""

    def test_ranked_by_frequency(self) -> None:
        """Test the most frequent token comes first, ties in order of appearance."""
        assert extract_keywords("python code and python tests") == ["python", "code", "tests"]

    def test_limit(self) -> None:
        """Test the keyword limit."""
        assert extract_keywords("alpha beta gamma delta", limit=2) == ["alpha", "beta"]
