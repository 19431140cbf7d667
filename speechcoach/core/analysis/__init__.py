"""Transcript analysis package."""

from .cache import AnalysisCache
from .feedback import CoachingFeedback, FeedbackGoal, FeedbackThresholds, generate_feedback
from .transcript import AnalysisConfig, ClarityWeights, TranscriptMetricsAnalyzer, analyze_transcript

__all__ = [
    "AnalysisCache",
    "AnalysisConfig",
    "ClarityWeights",
    "CoachingFeedback",
    "FeedbackGoal",
    "FeedbackThresholds",
    "TranscriptMetricsAnalyzer",
    "analyze_transcript",
    "generate_feedback",
]
