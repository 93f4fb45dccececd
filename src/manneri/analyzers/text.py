"""Text primitives: normalization, tokenization, n-grams and similarity.

Pure functions with no state. Japanese and English are handled; any other
language falls back to whitespace tokenization.
"""

from __future__ import annotations

import math
import re
from collections import Counter
from typing import TYPE_CHECKING

from ..models import TextAnalysisOptions

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

JAPANESE_CHARS = "\u3040-\u309f\u30a0-\u30ff\u4e00-\u9faf"
JAPANESE_PATTERN = re.compile(f"[{JAPANESE_CHARS}]")
JAPANESE_TOKEN_PATTERN = re.compile(f"[{JAPANESE_CHARS}]+|[a-zA-Z0-9]+")
PUNCTUATION_PATTERN = re.compile(r"[^\w\s]|_")
WHITESPACE_PATTERN = re.compile(r"\s+")

# Texts this short are compared with Jaccard only
MIN_TOKENS_FOR_COSINE = 5

JAPANESE_STOP_WORDS = frozenset({
    "は", "が", "を", "に", "で", "と", "から", "まで", "より", "の", "や",
    "か", "な", "だ", "である", "です", "ます", "した", "します", "する",
    "されて", "いる", "いた", "ある", "あり", "あった", "この", "その",
    "あの", "どの", "ここ", "そこ", "あそこ", "どこ", "こと", "もの",
    "はい", "いいえ", "そうです", "そうですね",
})

ENGLISH_STOP_WORDS = frozenset({
    "the", "is", "at", "which", "on", "and", "a", "an", "as", "are", "was",
    "were", "been", "be", "have", "has", "had", "do", "does", "did", "will",
    "would", "could", "should", "may", "might", "must", "can", "i", "you",
    "he", "she", "it", "we", "they", "me", "him", "her", "us", "them", "my",
    "your", "his", "its", "our", "their", "this", "that", "these", "those",
    "yes", "no", "ok", "okay",
})


def contains_japanese(text: str) -> bool:
    """Check if text contains hiragana, katakana or kanji."""
    return JAPANESE_PATTERN.search(text) is not None


def normalize_text(text: str, *, case_sensitive: bool = False) -> str:
    """Normalize text for comparison.

    Trims, lowercases (unless ``case_sensitive``), strips ASCII and Japanese
    punctuation and collapses runs of whitespace.
    """
    normalized = (text or "").strip()
    if not case_sensitive:
        normalized = normalized.lower()
    normalized = PUNCTUATION_PATTERN.sub(" ", normalized)
    return WHITESPACE_PATTERN.sub(" ", normalized).strip()


def _is_japanese_mode(text: str, language: str) -> bool:
    return language == "ja" or (language == "auto" and contains_japanese(text))


def is_stop_word(word: str, *, japanese: bool) -> bool:
    """Check if a word is a stop word for the given script."""
    stop_words = JAPANESE_STOP_WORDS if japanese else ENGLISH_STOP_WORDS
    return word.lower() in stop_words


def tokenize(text: str, options: TextAnalysisOptions | None = None) -> list[str]:
    """Split text into ordered tokens.

    Args:
        text: Raw message text
        options: Tokenizer options, uses defaults if not provided

    Returns:
        Tokens in order of appearance
    """
    opts = options or TextAnalysisOptions()
    normalized = normalize_text(text, case_sensitive=opts.case_sensitive)
    japanese = _is_japanese_mode(text or "", opts.language)

    if japanese:
        tokens = JAPANESE_TOKEN_PATTERN.findall(normalized)
    else:
        tokens = normalized.split()

    tokens = [t for t in tokens if len(t) >= opts.min_word_length]
    if not opts.include_stop_words:
        tokens = [t for t in tokens if not is_stop_word(t, japanese=japanese)]
    return tokens


def generate_ngrams(tokens: list[str], n: int) -> list[str]:
    """Generate contiguous n-grams joined by a single space.

    Raises:
        ValueError: If n is not positive
    """
    if n <= 0:
        msg = f"n-gram size must be positive, got {n}"
        raise ValueError(msg)
    if n > len(tokens):
        return []
    return [" ".join(tokens[i : i + n]) for i in range(len(tokens) - n + 1)]


def jaccard_similarity(set_a: Iterable[str], set_b: Iterable[str]) -> float:
    """Compute |A∩B| / |A∪B|.

    Two empty sets are defined as identical (1.0). Callers that must not
    report repetition on empty input guard against it before calling.
    """
    a, b = set(set_a), set(set_b)
    if not a and not b:
        return 1.0
    return len(a & b) / len(a | b)


def term_frequencies(tokens: Iterable[str]) -> Counter[str]:
    """Build a term-frequency vector."""
    return Counter(tokens)


def cosine_similarity(vec_a: Mapping[str, float], vec_b: Mapping[str, float]) -> float:
    """Cosine similarity of two sparse term-frequency vectors."""
    dot = sum(weight * vec_b.get(term, 0) for term, weight in vec_a.items())
    norm_a = math.sqrt(sum(w * w for w in vec_a.values()))
    norm_b = math.sqrt(sum(w * w for w in vec_b.values()))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def text_similarity(
    text_a: str,
    text_b: str,
    options: TextAnalysisOptions | None = None,
) -> float:
    """Blend of token Jaccard and term-frequency cosine similarity."""
    opts = options or TextAnalysisOptions()
    if normalize_text(text_a, case_sensitive=opts.case_sensitive) == normalize_text(
        text_b, case_sensitive=opts.case_sensitive,
    ):
        return 1.0

    tokens_a = tokenize(text_a, opts)
    tokens_b = tokenize(text_b, opts)
    if not tokens_a and not tokens_b:
        return 1.0
    if not tokens_a or not tokens_b:
        return 0.0

    jaccard = jaccard_similarity(tokens_a, tokens_b)
    if (
        len(tokens_a) < MIN_TOKENS_FOR_COSINE
        or len(tokens_b) < MIN_TOKENS_FOR_COSINE
        or jaccard > 0.9
    ):
        return jaccard

    cosine = cosine_similarity(term_frequencies(tokens_a), term_frequencies(tokens_b))
    return (jaccard + cosine) / 2


def extract_keywords(
    text: str,
    options: TextAnalysisOptions | None = None,
    limit: int = 10,
) -> list[str]:
    """Return the most frequent tokens of a text, ties in order of appearance."""
    counts = term_frequencies(tokenize(text, options))
    return [token for token, _ in counts.most_common(limit)]
