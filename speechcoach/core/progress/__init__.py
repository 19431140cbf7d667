"""Progress tracking package."""

from .achievements import ACHIEVEMENTS, AchievementEvaluator, AchievementRules
from .aggregator import SessionMetricsAggregator, compare_sessions, iso_week_id

__all__ = [
    "ACHIEVEMENTS",
    "AchievementEvaluator",
    "AchievementRules",
    "SessionMetricsAggregator",
    "compare_sessions",
    "iso_week_id",
]
