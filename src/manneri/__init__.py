"""Manneri: conversation repetition detection for AI chat personas."""

__version__ = "0.1.0"
__author__ = "Manneri Contributors"
__description__ = "Conversation repetition detection for AI chat personas"

from .analyzer import ConversationAnalyzer
from .detector import DetectorState, ManneriDetector
from .events import EventBus, EventType
from .models import (
    AnalysisResult,
    DiversificationPrompt,
    ManneriConfig,
    Message,
    MessageRole,
    StorageData,
)
from .prompts import PromptGenerator

__all__ = [
    "AnalysisResult",
    "ConversationAnalyzer",
    "DetectorState",
    "DiversificationPrompt",
    "EventBus",
    "EventType",
    "ManneriConfig",
    "ManneriDetector",
    "Message",
    "MessageRole",
    "PromptGenerator",
    "StorageData",
]
