"""Text analyzers used by the conversation analyzer."""

from .keywords import KeywordExtractor, KeywordFrequency, TopicShift
from .patterns import PatternDetector, PatternStatistics, pattern_id
from .similarity import CacheStats, SimilarityAnalyzer

__all__ = [
    "CacheStats",
    "KeywordExtractor",
    "KeywordFrequency",
    "PatternDetector",
    "PatternStatistics",
    "SimilarityAnalyzer",
    "TopicShift",
    "pattern_id",
]
