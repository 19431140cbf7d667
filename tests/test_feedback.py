import pytest

from speechcoach.core.analysis.feedback import (
    FeedbackGoal,
    FeedbackThresholds,
    generate_feedback,
    most_common_fillers,
    parse_goals,
    pauses_per_minute,
)
from speechcoach.data.models import FillerOccurrence, FillerWordStats, Pause, SpeechMetrics


def _metrics(
    wpm=150.0,
    filler=1.0,
    clarity=80.0,
    words=100,
    duration=60.0,
    pauses=2,
    fillers=(),
) -> SpeechMetrics:
    return SpeechMetrics(
        transcript="practice run",
        confidence=0.9,
        duration_seconds=duration,
        word_count=words,
        words_per_minute=wpm,
        filler_words=FillerWordStats(
            count=len(fillers),
            percentage=filler,
            occurrences=[FillerOccurrence(word=word, timestamp=float(i)) for i, word in enumerate(fillers)],
        ),
        clarity_score=clarity,
        pauses=[
            Pause(start_time=i * 5.0, end_time=i * 5.0 + 2.0, duration_seconds=2.0, word_before="a", word_after="b")
            for i in range(pauses)
        ],
    )


def test_balanced_session_gets_praise_and_stretch_goal() -> None:
    feedback = generate_feedback(_metrics())

    assert feedback.strengths == [
        "speaking at a comfortable pace",
        "keeping filler words to a minimum",
        "speaking with good clarity",
        "using pauses effectively",
    ]
    assert feedback.improvements == []
    assert feedback.positive.startswith(
        "You're speaking at a comfortable pace and keeping filler words to a minimum. "
        "I also noticed that you're speaking with good clarity."
    )
    assert "150 words per minute" in feedback.positive
    assert feedback.improvement == "There were no significant issues in your delivery."
    assert "vary your vocal tone" in feedback.suggestion
    assert feedback.full_text.split("\n\n") == [
        feedback.positive,
        feedback.improvement,
        feedback.suggestion,
        feedback.encouragement,
    ]


@pytest.mark.parametrize(
    "wpm, expected_improvement, detail",
    [
        (100.0, "speaking on the slower side", "slower than the 110-170 range"),
        (185.0, "speaking quite fast", "faster than the 110-170 range"),
    ],
)
def test_pace_outside_band_is_an_improvement(wpm, expected_improvement, detail) -> None:
    feedback = generate_feedback(_metrics(wpm=wpm))

    assert expected_improvement in feedback.improvements
    assert "speaking at a comfortable pace" not in feedback.strengths
    assert detail in feedback.improvement
    assert f"{round(wpm)} words per minute" in feedback.improvement


@pytest.mark.parametrize("wpm", [110.0, 170.0])
def test_pace_band_edges_are_comfortable(wpm) -> None:
    feedback = generate_feedback(_metrics(wpm=wpm))

    assert "speaking at a comfortable pace" in feedback.strengths


def test_missing_pace_is_not_assessed() -> None:
    feedback = generate_feedback(_metrics(wpm=None))

    assert not any("pace" in item for item in feedback.strengths + feedback.improvements)
    assert "words per minute" not in feedback.positive + feedback.improvement


def test_filler_bands() -> None:
    assert "using a high number of filler words" in generate_feedback(_metrics(filler=9.0)).improvements
    assert "using some filler words" in generate_feedback(_metrics(filler=6.0)).improvements
    at_medium = generate_feedback(_metrics(filler=5.0))
    assert "keeping filler words to a minimum" in at_medium.strengths
    assert "limited use of filler words" in at_medium.positive


def test_frequent_fillers_are_named_most_common_first() -> None:
    fillers = ("um", "like", "um", "so", "like", "um", "basically")

    feedback = generate_feedback(_metrics(filler=9.0, fillers=fillers))

    assert 'Your most frequent fillers were "um", "like", "so".' in feedback.improvement
    assert most_common_fillers(_metrics(fillers=fillers), limit=1) == ["um"]


@pytest.mark.parametrize(
    "clarity, strength, improvement",
    [
        (50.0, None, "losing clarity in places"),
        (60.0, "speaking with good clarity", None),
        (90.0, "speaking with good clarity", None),
        (95.0, "speaking with excellent clarity", None),
    ],
)
def test_clarity_bands(clarity, strength, improvement) -> None:
    feedback = generate_feedback(_metrics(clarity=clarity))

    if strength:
        assert strength in feedback.strengths
    if improvement:
        assert improvement in feedback.improvements


def test_pause_rate_bands() -> None:
    assert "rarely pausing between ideas" in generate_feedback(_metrics(pauses=0)).improvements
    assert "pausing too often" in generate_feedback(_metrics(pauses=7)).improvements
    assert pauses_per_minute(_metrics(pauses=3, duration=90.0)) == pytest.approx(2.0)
    assert pauses_per_minute(_metrics(duration=0.0)) is None


def test_sample_length_notes() -> None:
    assert "giving a fairly short sample" in generate_feedback(_metrics(words=10)).improvements
    assert "giving a substantial speech sample" in generate_feedback(_metrics(words=250)).strengths


def test_session_without_strengths_gets_generic_praise() -> None:
    feedback = generate_feedback(_metrics(wpm=100.0, filler=9.0, clarity=50.0, pauses=0, words=10))

    assert feedback.strengths == []
    assert feedback.positive == "You've taken an important step by practising your speaking."
    assert feedback.improvement.startswith(
        "I noticed you're speaking on the slower side. You're also using a high number of filler words."
    )


@pytest.mark.parametrize(
    "kwargs, goals, expected",
    [
        ({"filler": 3.0}, ["fillers"], "list the fillers you lean on most"),
        ({"wpm": 100.0}, ["fillers", "pace"], "practise against a timer"),
        ({"wpm": 185.0}, ["pace"], "leave a deliberate pause"),
        ({"clarity": 85.0}, ["clarity"], "over-articulate"),
        ({}, ["confidence"], "stand tall"),
        ({"filler": 6.0}, [], "replace them with a brief silent pause"),
        ({"wpm": 100.0}, [], "practise against a timer"),
        ({"wpm": 185.0}, [], "leave a deliberate pause"),
        ({"clarity": 70.0}, [], "over-articulate"),
    ],
)
def test_suggestion_priorities(kwargs, goals, expected) -> None:
    feedback = generate_feedback(_metrics(**kwargs), goals=goals)

    assert expected in feedback.suggestion


def test_filler_tip_without_goal_omits_habit_advice() -> None:
    feedback = generate_feedback(_metrics(filler=6.0))

    assert "list the fillers" not in feedback.suggestion


def test_goal_encouragement_follows_goal_order() -> None:
    feedback = generate_feedback(_metrics(), goals=["Clarity", "pace", "pace"])

    assert feedback.encouragement.startswith("Keep practising regularly")
    assert feedback.encouragement.index("Focusing on pace") < feedback.encouragement.index("Clearer articulation")
    assert feedback.encouragement.endswith("Every experienced speaker started as a beginner.")


def test_parse_goals() -> None:
    assert parse_goals([" Pace ", FeedbackGoal.CLARITY, "pace"]) == [FeedbackGoal.PACE, FeedbackGoal.CLARITY]
    with pytest.raises(ValueError):
        parse_goals(["volume"])


def test_thresholds_must_be_ordered() -> None:
    with pytest.raises(ValueError):
        FeedbackThresholds(slow_wpm=180.0, fast_wpm=170.0)
    with pytest.raises(ValueError):
        FeedbackThresholds(filler_low=6.0)
    with pytest.raises(ValueError):
        FeedbackThresholds(clarity_high=50.0)


def test_feedback_record_fields() -> None:
    record = generate_feedback(_metrics()).to_record()

    assert set(record) == {"positive", "improvement", "suggestion", "encouragement", "strengths", "improvements"}
