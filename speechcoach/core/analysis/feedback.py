"""Rule-based coaching feedback built from a session's delivery metrics.

Feedback has four parts: what went well, what to work on, one concrete
suggestion, and encouragement. Goals the speaker chose (pace, fillers,
clarity, confidence) take priority when picking the suggestion.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional

from pydantic import Field

from ...data.models import Record, SpeechMetrics
from ...logging import get_logger

LOGGER = get_logger(__name__)


class FeedbackGoal(str, Enum):
    PACE = "pace"
    FILLERS = "fillers"
    CLARITY = "clarity"
    CONFIDENCE = "confidence"


@dataclass(frozen=True)
class FeedbackThresholds:
    """Bands used to classify a session.

    Pause rates count the long pauses found by the analyzer, per minute of
    speech.
    """

    slow_wpm: float = 110.0
    fast_wpm: float = 170.0
    filler_low: float = 2.0
    filler_medium: float = 5.0
    filler_high: float = 8.0
    clarity_low: float = 60.0
    clarity_medium: float = 75.0
    clarity_high: float = 90.0
    pause_rate_low: float = 1.0
    pause_rate_high: float = 6.0
    short_sample_words: int = 30
    long_sample_words: int = 200
    common_filler_limit: int = 3

    def __post_init__(self) -> None:
        if self.slow_wpm >= self.fast_wpm:
            raise ValueError("slow_wpm must be below fast_wpm")
        if not self.filler_low <= self.filler_medium <= self.filler_high:
            raise ValueError("filler thresholds must be ascending")
        if not self.clarity_low <= self.clarity_medium <= self.clarity_high:
            raise ValueError("clarity thresholds must be ascending")
        if self.pause_rate_low > self.pause_rate_high:
            raise ValueError("pause_rate_low must not exceed pause_rate_high")
        if self.short_sample_words > self.long_sample_words:
            raise ValueError("short_sample_words must not exceed long_sample_words")


class CoachingFeedback(Record):
    positive: str
    improvement: str
    suggestion: str
    encouragement: str
    strengths: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)

    @property
    def full_text(self) -> str:
        return "\n\n".join((self.positive, self.improvement, self.suggestion, self.encouragement))


_FILLER_TIP = (
    "To reduce filler words, replace them with a brief silent pause. Take a breath and "
    "organise the next thought before you speak; a short pause between ideas sounds deliberate."
)
_FILLER_GOAL_TIP = _FILLER_TIP + (
    " It also helps to list the fillers you lean on most and listen for them in everyday conversation."
)
_SPEED_UP_TIP = (
    "To pick up your pace, practise against a timer: set a target for covering your material "
    "and tighten it a little each session."
)
_SLOW_DOWN_TIP = (
    "To slow down, leave a deliberate pause after each key point and articulate every word. "
    "Marking pauses in your notes makes them easier to remember."
)
_CLARITY_TIP = (
    "To speak more clearly, over-articulate during practice and finish the ends of words. "
    "Listening back to a recording shows which words need attention."
)
_CONFIDENCE_TIP = (
    "To build confidence, stand tall for a couple of minutes before you speak and deliver key "
    "points with conviction. Confident speakers are comfortable with strategic pauses."
)
_STRETCH_TIP = (
    "Next time, vary your vocal tone to emphasise key points, and pick two or three specific "
    "things to improve after listening back to this recording."
)

_GOAL_ENCOURAGEMENT = {
    FeedbackGoal.PACE: "Focusing on pace is a good approach; consistent practice will help you find your rhythm.",
    FeedbackGoal.FILLERS: "Noticing your filler words is the first step to dropping them.",
    FeedbackGoal.CLARITY: "Clearer articulation makes your ideas land harder; keep at it.",
    FeedbackGoal.CONFIDENCE: "Confidence grows with every session you complete.",
}


def parse_goals(goals: Iterable[str]) -> List[FeedbackGoal]:
    """Normalise goal names, raising ``ValueError`` for unknown ones."""

    parsed: List[FeedbackGoal] = []
    for goal in goals:
        value = goal if isinstance(goal, FeedbackGoal) else FeedbackGoal(str(goal).strip().lower())
        if value not in parsed:
            parsed.append(value)
    return parsed


def pauses_per_minute(metrics: SpeechMetrics) -> Optional[float]:
    if metrics.duration_seconds <= 0 or metrics.word_count == 0:
        return None
    return len(metrics.pauses) / (metrics.duration_seconds / 60.0)


def most_common_fillers(metrics: SpeechMetrics, limit: int = 3) -> List[str]:
    counts = Counter(occurrence.word.lower() for occurrence in metrics.filler_words.occurrences)
    return [word for word, _ in counts.most_common(limit)]


def generate_feedback(
    metrics: SpeechMetrics,
    goals: Iterable[str] = (),
    thresholds: Optional[FeedbackThresholds] = None,
) -> CoachingFeedback:
    t = thresholds or FeedbackThresholds()
    wanted = parse_goals(goals)
    wpm = metrics.words_per_minute
    filler = metrics.filler_word_percentage
    clarity = metrics.clarity_score
    too_slow = wpm is not None and wpm < t.slow_wpm
    too_fast = wpm is not None and wpm > t.fast_wpm

    strengths: List[str] = []
    improvements: List[str] = []

    if too_slow:
        improvements.append("speaking on the slower side")
    elif too_fast:
        improvements.append("speaking quite fast")
    elif wpm is not None:
        strengths.append("speaking at a comfortable pace")

    if filler > t.filler_high:
        improvements.append("using a high number of filler words")
    elif filler > t.filler_medium:
        improvements.append("using some filler words")
    else:
        strengths.append("keeping filler words to a minimum")

    if clarity < t.clarity_low:
        improvements.append("losing clarity in places")
    elif clarity > t.clarity_high:
        strengths.append("speaking with excellent clarity")
    else:
        strengths.append("speaking with good clarity")

    pause_rate = pauses_per_minute(metrics)
    if pause_rate is not None:
        if pause_rate < t.pause_rate_low:
            improvements.append("rarely pausing between ideas")
        elif pause_rate > t.pause_rate_high:
            improvements.append("pausing too often")
        else:
            strengths.append("using pauses effectively")

    if metrics.word_count < t.short_sample_words:
        improvements.append("giving a fairly short sample")
    elif metrics.word_count > t.long_sample_words:
        strengths.append("giving a substantial speech sample")

    positive: List[str] = []
    if strengths:
        positive.append(f"You're {' and '.join(strengths[:2])}.")
        if len(strengths) > 2:
            positive.append(f"I also noticed that you're {strengths[2]}.")
        if wpm is not None and not too_slow and not too_fast:
            positive.append(f"Your pace of {round(wpm)} words per minute is easy for listeners to follow.")
        if filler <= t.filler_medium:
            positive.append("Your limited use of filler words helps you sound confident.")
    else:
        positive.append("You've taken an important step by practising your speaking.")

    improvement: List[str] = []
    if improvements:
        improvement.append(f"I noticed you're {improvements[0]}.")
        if len(improvements) > 1:
            improvement.append(f"You're also {improvements[1]}.")
        if filler > t.filler_medium:
            fillers = most_common_fillers(metrics, t.common_filler_limit)
            if fillers:
                improvement.append('Your most frequent fillers were "' + '", "'.join(fillers) + '".')
        if too_slow or too_fast:
            direction = "slower" if too_slow else "faster"
            improvement.append(
                f"Your speaking rate was {round(wpm)} words per minute, {direction} than the "
                f"{t.slow_wpm:.0f}-{t.fast_wpm:.0f} range most listeners find comfortable."
            )
    else:
        improvement.append("There were no significant issues in your delivery.")

    suggestion = _pick_suggestion(wanted, t, filler, clarity, too_slow, too_fast)

    encouragement = ["Keep practising regularly and you'll keep improving."]
    encouragement.extend(_GOAL_ENCOURAGEMENT[goal] for goal in FeedbackGoal if goal in wanted)
    encouragement.append("Every experienced speaker started as a beginner.")

    LOGGER.debug("Feedback generated: %s strength(s), %s improvement(s)", len(strengths), len(improvements))
    return CoachingFeedback(
        positive=" ".join(positive),
        improvement=" ".join(improvement),
        suggestion=suggestion,
        encouragement=" ".join(encouragement),
        strengths=strengths,
        improvements=improvements,
    )


def _pick_suggestion(
    goals: List[FeedbackGoal],
    t: FeedbackThresholds,
    filler: float,
    clarity: float,
    too_slow: bool,
    too_fast: bool,
) -> str:
    # Chosen goals come first, then the most pressing metric.
    if FeedbackGoal.FILLERS in goals and filler > t.filler_low:
        return _FILLER_GOAL_TIP
    if FeedbackGoal.PACE in goals and (too_slow or too_fast):
        return _SPEED_UP_TIP if too_slow else _SLOW_DOWN_TIP
    if FeedbackGoal.CLARITY in goals and clarity < t.clarity_high:
        return _CLARITY_TIP
    if FeedbackGoal.CONFIDENCE in goals:
        return _CONFIDENCE_TIP
    if filler > t.filler_medium:
        return _FILLER_TIP
    if too_slow:
        return _SPEED_UP_TIP
    if too_fast:
        return _SLOW_DOWN_TIP
    if clarity < t.clarity_medium:
        return _CLARITY_TIP
    return _STRETCH_TIP


__all__ = [
    "CoachingFeedback",
    "FeedbackGoal",
    "FeedbackThresholds",
    "generate_feedback",
    "most_common_fillers",
    "parse_goals",
    "pauses_per_minute",
]
