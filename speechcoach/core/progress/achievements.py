"""Achievement rules evaluated against aggregated user metrics."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ...data.models import Achievement, UserMetrics
from ...logging import get_logger
from .aggregator import week_start

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class AchievementDefinition:
    id: str
    title: str
    description: str

    def to_achievement(self, at: datetime) -> Achievement:
        return Achievement(id=self.id, title=self.title, description=self.description, achieved_at=at)


ACHIEVEMENTS: Dict[str, AchievementDefinition] = {
    definition.id: definition
    for definition in (
        AchievementDefinition("session-5", "Getting Started", "Completed 5 practice sessions"),
        AchievementDefinition("session-10", "Regular Practice", "Completed 10 practice sessions"),
        AchievementDefinition("session-25", "Dedication", "Completed 25 practice sessions"),
        AchievementDefinition("filler-reduction", "Filler Eliminator", "Reduced filler words by 20% in a week"),
        AchievementDefinition("speed-improvement", "Speed Master", "Improved speaking pace by 20% in a week"),
        AchievementDefinition("clarity-improvement", "Crystal Clear", "Improved clarity score by 15% in a week"),
        AchievementDefinition("consistency", "Consistent Practice", "Practiced every week for 3 consecutive weeks"),
    )
}


@dataclass(frozen=True)
class AchievementRules:
    """Thresholds for the built-in achievements.

    Ratios compare the most recent week against the one before it.
    """

    session_milestones: Tuple[int, ...] = (5, 10, 25)
    filler_reduction_ratio: float = 0.8
    speed_improvement_ratio: float = 1.2
    clarity_improvement_ratio: float = 1.15
    consistency_weeks: int = 3


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AchievementEvaluator:
    def __init__(self, rules: Optional[AchievementRules] = None, clock: Callable[[], datetime] = _utcnow) -> None:
        self.rules = rules or AchievementRules()
        self._clock = clock

    def detect_achievements(self, user_metrics: UserMetrics) -> List[str]:
        """Return ids of achievements earned but not yet held, in catalogue order."""

        held = set(user_metrics.achievement_ids)
        earned: List[str] = []

        def grant(achievement_id: str) -> None:
            if achievement_id not in held and achievement_id not in earned:
                earned.append(achievement_id)

        for milestone in self.rules.session_milestones:
            if user_metrics.session_count >= milestone:
                grant(f"session-{milestone}")

        week_ids = sorted(user_metrics.weekly_progress)
        if len(week_ids) >= 2:
            latest = user_metrics.weekly_progress[week_ids[-1]]
            previous = user_metrics.weekly_progress[week_ids[-2]]
            if (
                previous.filler_word_percentage > 0
                and latest.filler_word_percentage <= previous.filler_word_percentage * self.rules.filler_reduction_ratio
            ):
                grant("filler-reduction")
            if (
                previous.words_per_minute > 0
                and latest.words_per_minute >= previous.words_per_minute * self.rules.speed_improvement_ratio
            ):
                grant("speed-improvement")
            if (
                previous.clarity_score > 0
                and latest.clarity_score >= previous.clarity_score * self.rules.clarity_improvement_ratio
            ):
                grant("clarity-improvement")

        if self._is_consistent(user_metrics, week_ids):
            grant("consistency")

        return earned

    def _is_consistent(self, user_metrics: UserMetrics, week_ids: List[str]) -> bool:
        required = self.rules.consistency_weeks
        if required <= 0 or len(week_ids) < required:
            return False
        recent = week_ids[-required:]
        if any(user_metrics.weekly_progress[week_id].total_sessions <= 0 for week_id in recent):
            return False
        starts = [week_start(week_id) for week_id in recent]
        return all(later - earlier == timedelta(days=7) for earlier, later in zip(starts, starts[1:]))

    def award(
        self,
        user_metrics: UserMetrics,
        achievement_ids: Optional[Iterable[str]] = None,
        at: Optional[datetime] = None,
    ) -> Tuple[UserMetrics, List[Achievement]]:
        """Append newly earned achievements and return the updated metrics."""

        if achievement_ids is None:
            achievement_ids = self.detect_achievements(user_metrics)
        at = at or self._clock()
        held = set(user_metrics.achievement_ids)
        granted: List[Achievement] = []
        for achievement_id in achievement_ids:
            if achievement_id in held:
                continue
            definition = ACHIEVEMENTS.get(achievement_id)
            if definition is None:
                LOGGER.warning("Unknown achievement id %s ignored", achievement_id)
                continue
            granted.append(definition.to_achievement(at))
            held.add(achievement_id)

        if not granted:
            return user_metrics, []
        LOGGER.info(
            "User %s unlocked %s",
            user_metrics.user_id,
            ", ".join(achievement.id for achievement in granted),
        )
        updated = user_metrics.model_copy(update={"achievements": [*user_metrics.achievements, *granted]})
        return updated, granted


__all__ = [
    "ACHIEVEMENTS",
    "AchievementDefinition",
    "AchievementEvaluator",
    "AchievementRules",
]
