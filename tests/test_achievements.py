from datetime import datetime, timezone

from speechcoach.core.progress.achievements import ACHIEVEMENTS, AchievementEvaluator, AchievementRules
from speechcoach.core.progress.aggregator import SessionMetricsAggregator
from speechcoach.data.models import Achievement, SpeechMetrics, UserMetrics, WeeklyAggregate

AT = datetime(2024, 3, 6, tzinfo=timezone.utc)


def _week(wpm=140.0, filler=5.0, clarity=70.0, sessions=1) -> WeeklyAggregate:
    return WeeklyAggregate(
        words_per_minute=wpm,
        filler_word_percentage=filler,
        clarity_score=clarity,
        total_sessions=sessions,
    )


def test_session_five_fires_when_crossing_threshold() -> None:
    evaluator = AchievementEvaluator()
    aggregator = SessionMetricsAggregator()
    user = UserMetrics(user_id="u1")

    for _ in range(4):
        user = aggregator.record_session(user, SpeechMetrics(words_per_minute=140), at=AT)
    assert evaluator.detect_achievements(user) == []

    user = aggregator.record_session(user, SpeechMetrics(words_per_minute=140), at=AT)
    assert evaluator.detect_achievements(user) == ["session-5"]

    user, granted = evaluator.award(user, at=AT)
    assert [achievement.id for achievement in granted] == ["session-5"]
    assert granted[0].title == "Getting Started"

    user = aggregator.record_session(user, SpeechMetrics(words_per_minute=140), at=AT)
    assert evaluator.detect_achievements(user) == []


def test_milestones_can_fire_together() -> None:
    user = UserMetrics(user_id="u1", session_count=25)

    assert AchievementEvaluator().detect_achievements(user) == ["session-5", "session-10", "session-25"]


def test_week_over_week_improvements() -> None:
    user = UserMetrics(
        user_id="u1",
        weekly_progress={
            "2024-09": _week(wpm=100, filler=10, clarity=60),
            "2024-10": _week(wpm=121, filler=7.9, clarity=70),
        },
    )

    earned = AchievementEvaluator().detect_achievements(user)

    assert earned == ["filler-reduction", "speed-improvement", "clarity-improvement"]


def test_small_improvements_do_not_qualify() -> None:
    user = UserMetrics(
        user_id="u1",
        weekly_progress={
            "2024-09": _week(wpm=100, filler=10, clarity=60),
            "2024-10": _week(wpm=119, filler=8.5, clarity=68),
        },
    )

    assert AchievementEvaluator().detect_achievements(user) == []


def test_improvements_need_a_non_zero_baseline() -> None:
    user = UserMetrics(
        user_id="u1",
        weekly_progress={
            "2024-09": _week(wpm=0, filler=0, clarity=0),
            "2024-10": _week(wpm=150, filler=0, clarity=80),
        },
    )

    assert AchievementEvaluator().detect_achievements(user) == []


def test_consistency_requires_consecutive_weeks() -> None:
    evaluator = AchievementEvaluator()
    consecutive = UserMetrics(
        user_id="u1",
        weekly_progress={"2024-52": _week(), "2025-01": _week(), "2025-02": _week()},
    )
    gap = UserMetrics(
        user_id="u1",
        weekly_progress={"2024-01": _week(), "2024-02": _week(), "2024-04": _week()},
    )
    empty_week = UserMetrics(
        user_id="u1",
        weekly_progress={"2024-01": _week(), "2024-02": _week(sessions=0), "2024-03": _week()},
    )

    assert "consistency" in evaluator.detect_achievements(consecutive)
    assert "consistency" not in evaluator.detect_achievements(gap)
    assert "consistency" not in evaluator.detect_achievements(empty_week)


def test_held_achievements_are_not_emitted_again() -> None:
    held = [ACHIEVEMENTS["session-5"].to_achievement(AT)]
    user = UserMetrics(user_id="u1", session_count=7, achievements=held)

    assert AchievementEvaluator().detect_achievements(user) == []


def test_award_skips_unknown_and_duplicate_ids() -> None:
    user = UserMetrics(
        user_id="u1",
        achievements=[Achievement(id="session-5", title="Getting Started", description="", achieved_at=AT)],
    )

    updated, granted = AchievementEvaluator().award(user, ["session-5", "no-such-thing", "consistency"], at=AT)

    assert [achievement.id for achievement in granted] == ["consistency"]
    assert updated.achievement_ids == ["session-5", "consistency"]
    assert user.achievement_ids == ["session-5"]


def test_award_with_nothing_new_returns_input() -> None:
    user = UserMetrics(user_id="u1")

    updated, granted = AchievementEvaluator().award(user, at=AT)

    assert updated is user
    assert granted == []


def test_rules_are_configurable() -> None:
    rules = AchievementRules(session_milestones=(5,), consistency_weeks=2)
    user = UserMetrics(
        user_id="u1",
        session_count=10,
        weekly_progress={"2024-01": _week(), "2024-02": _week()},
    )

    assert AchievementEvaluator(rules).detect_achievements(user) == ["session-5", "consistency"]
