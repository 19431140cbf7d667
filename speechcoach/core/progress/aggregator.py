"""Longitudinal aggregation of per-session speech metrics."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Callable, List, Optional

from pydantic import Field

from ...data.models import Record, SpeechMetrics, UserMetrics, WeeklyAggregate
from ...logging import get_logger

LOGGER = get_logger(__name__)

CHART_WEEKS = 6


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def iso_week_id(at: datetime | date) -> str:
    """Return the ``YYYY-WW`` ISO week key for ``at``."""

    year, week, _ = at.isocalendar()
    return f"{year}-{week:02d}"


def week_start(week_id: str) -> date:
    year, week = week_id.split("-")
    return date.fromisocalendar(int(year), int(week), 1)


def incremental_mean(mean: float, count: int, value: float) -> float:
    if count <= 0:
        return float(value)
    return (mean * count + value) / (count + 1)


def percentage_change(current: float, previous: float) -> float:
    if previous == 0:
        return 0.0
    return (current - previous) / previous * 100.0


class MetricTrend(Record):
    current: float = 0.0
    previous: float = 0.0
    change: float = 0.0


class WeeklyPoint(Record):
    week_id: str
    label: str
    words_per_minute: float
    filler_word_percentage: float
    clarity_score: float
    total_sessions: int


class ProgressSummary(Record):
    words_per_minute: MetricTrend = Field(default_factory=MetricTrend)
    filler_word_percentage: MetricTrend = Field(default_factory=MetricTrend)
    clarity_score: MetricTrend = Field(default_factory=MetricTrend)
    total_sessions: int = 0
    total_practicing_minutes: int = 0
    weekly: List[WeeklyPoint] = Field(default_factory=list)


class SessionComparison(Record):
    words_per_minute: MetricTrend
    filler_word_percentage: MetricTrend
    clarity_score: MetricTrend
    improvement: bool


class SessionMetricsAggregator:
    """Fold completed sessions into a user's weekly and lifetime statistics.

    ``record_session`` never mutates its input; it returns the updated copy so
    a caller that loses a conditional write can simply retry with freshly
    loaded metrics.

    Only the last ``replay_window`` session ids are remembered for replay
    detection so the stored document stays bounded.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow, replay_window: int = 100) -> None:
        if replay_window < 1:
            raise ValueError("replay_window must be positive")
        self._clock = clock
        self.replay_window = replay_window

    def record_session(
        self,
        user_metrics: UserMetrics,
        metrics: SpeechMetrics,
        session_id: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> UserMetrics:
        if session_id and session_id in user_metrics.recorded_session_ids:
            LOGGER.info("Session %s already aggregated for %s; skipping", session_id, user_metrics.user_id)
            return user_metrics

        at = at or self._clock()
        week_id = iso_week_id(at)
        # Missing pace counts as zero, matching stored history.
        words_per_minute = metrics.words_per_minute or 0.0
        filler = metrics.filler_word_percentage
        clarity = metrics.clarity_score

        weekly = dict(user_metrics.weekly_progress)
        current = weekly.get(week_id) or WeeklyAggregate()
        n = current.total_sessions
        weekly[week_id] = WeeklyAggregate(
            words_per_minute=incremental_mean(current.words_per_minute, n, words_per_minute),
            filler_word_percentage=incremental_mean(current.filler_word_percentage, n, filler),
            clarity_score=incremental_mean(current.clarity_score, n, clarity),
            total_sessions=n + 1,
        )

        count = user_metrics.session_count
        recorded = list(user_metrics.recorded_session_ids)
        if session_id:
            recorded.append(session_id)
            recorded = recorded[-self.replay_window :]

        updated = user_metrics.model_copy(
            update={
                "session_count": count + 1,
                "total_speaking_time": user_metrics.total_speaking_time + metrics.duration_seconds,
                "avg_words_per_minute": incremental_mean(user_metrics.avg_words_per_minute, count, words_per_minute),
                "avg_filler_word_percentage": incremental_mean(user_metrics.avg_filler_word_percentage, count, filler),
                "avg_clarity_score": incremental_mean(user_metrics.avg_clarity_score, count, clarity),
                "last_updated": at,
                "weekly_progress": weekly,
                "achievements": list(user_metrics.achievements),
                "recorded_session_ids": recorded,
            }
        )
        LOGGER.debug(
            "Aggregated session for %s into week %s (%s session(s) that week)",
            user_metrics.user_id,
            week_id,
            n + 1,
        )
        return updated

    def summarize_progress(self, user_metrics: UserMetrics) -> ProgressSummary:
        """Compare the two most recent weeks and build the chart series."""

        week_ids = sorted(user_metrics.weekly_progress)
        empty = WeeklyAggregate()
        current = user_metrics.weekly_progress[week_ids[-1]] if week_ids else empty
        previous = user_metrics.weekly_progress[week_ids[-2]] if len(week_ids) > 1 else empty

        weekly = []
        for week_id in week_ids[-CHART_WEEKS:]:
            data = user_metrics.weekly_progress[week_id]
            weekly.append(
                WeeklyPoint(
                    week_id=week_id,
                    label=f"Week {week_id.split('-')[1]}",
                    words_per_minute=data.words_per_minute,
                    filler_word_percentage=data.filler_word_percentage,
                    clarity_score=data.clarity_score,
                    total_sessions=data.total_sessions,
                )
            )

        return ProgressSummary(
            words_per_minute=MetricTrend(
                current=round(current.words_per_minute),
                previous=round(previous.words_per_minute),
                change=round(percentage_change(current.words_per_minute, previous.words_per_minute)),
            ),
            filler_word_percentage=MetricTrend(
                current=round(current.filler_word_percentage, 2),
                previous=round(previous.filler_word_percentage, 2),
                change=round(percentage_change(current.filler_word_percentage, previous.filler_word_percentage), 2),
            ),
            clarity_score=MetricTrend(
                current=round(current.clarity_score),
                previous=round(previous.clarity_score),
                change=round(percentage_change(current.clarity_score, previous.clarity_score)),
            ),
            total_sessions=user_metrics.session_count,
            total_practicing_minutes=round(user_metrics.total_speaking_time / 60),
            weekly=weekly,
        )


def compare_sessions(current: SpeechMetrics, previous: SpeechMetrics) -> SessionComparison:
    """Percentage change between two sessions plus an overall verdict.

    The verdict weighs pace at 1 and fillers and clarity at 2 each; fewer
    fillers count as an improvement.
    """

    current_wpm = current.words_per_minute or 0.0
    previous_wpm = previous.words_per_minute or 0.0
    wpm_change = percentage_change(current_wpm, previous_wpm)
    filler_change = percentage_change(current.filler_word_percentage, previous.filler_word_percentage)
    clarity_change = percentage_change(current.clarity_score, previous.clarity_score)

    score = (1 if wpm_change > 0 else -1) + (2 if filler_change < 0 else -2) + (2 if clarity_change > 0 else -2)

    return SessionComparison(
        words_per_minute=MetricTrend(
            current=round(current_wpm),
            previous=round(previous_wpm),
            change=round(wpm_change, 1),
        ),
        filler_word_percentage=MetricTrend(
            current=round(current.filler_word_percentage, 2),
            previous=round(previous.filler_word_percentage, 2),
            change=round(filler_change, 1),
        ),
        clarity_score=MetricTrend(
            current=round(current.clarity_score),
            previous=round(previous.clarity_score),
            change=round(clarity_change, 1),
        ),
        improvement=score > 0,
    )


__all__ = [
    "MetricTrend",
    "ProgressSummary",
    "SessionComparison",
    "SessionMetricsAggregator",
    "WeeklyPoint",
    "compare_sessions",
    "incremental_mean",
    "iso_week_id",
    "percentage_change",
    "week_start",
]
