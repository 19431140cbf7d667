"""Delivery metrics derived from a transcript and its word timings.

Every function here is pure: no clock reads besides the processing-time
measurement in :func:`analyze_transcript`, no I/O, no shared state. Missing
timing data is an expected condition (low-confidence or empty
transcriptions), so the functions degrade to ``None`` or zero values
instead of raising.

Word timings are assumed to be ordered by ``start_time`` and are never
re-sorted.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional, Pattern, Sequence, Tuple

from ...data.models import (
    FillerOccurrence,
    FillerWordStats,
    Pause,
    RapidWord,
    Sentence,
    SpeechMetrics,
    TranscriptionResult,
    WordTiming,
)
from ...logging import get_logger

LOGGER = get_logger(__name__)

DEFAULT_FILLER_WORDS: Tuple[str, ...] = (
    "um",
    "uh",
    "like",
    "so",
    "you know",
    "i mean",
    "actually",
    "basically",
    "kind of",
    "sort of",
    "just",
    "totally",
    "literally",
    "anyway",
    "uhm",
    "hmm",
    "ah",
    "er",
)

_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")
_NON_WORD = re.compile(r"[^\w']+")


@dataclass(frozen=True)
class ClarityWeights:
    """Relative weight of each clarity component.

    ``filler_tolerance`` is the filler percentage at which the filler
    component reaches zero; ``pace_tolerance`` is the distance in wpm from
    the ideal band at which the pace component reaches zero.
    """

    confidence: float = 0.4
    filler: float = 0.35
    pace: float = 0.25
    filler_tolerance: float = 20.0
    pace_tolerance: float = 60.0

    def __post_init__(self) -> None:
        if min(self.confidence, self.filler, self.pace) < 0:
            raise ValueError("clarity weights must be non-negative")
        if self.filler_tolerance <= 0 or self.pace_tolerance <= 0:
            raise ValueError("clarity tolerances must be positive")


@dataclass(frozen=True)
class AnalysisConfig:
    filler_words: Tuple[str, ...] = DEFAULT_FILLER_WORDS
    pause_threshold_seconds: float = 1.5
    rapid_speech_wpm: float = 180.0
    rapid_window: int = 3
    ideal_wpm_low: float = 140.0
    ideal_wpm_high: float = 170.0
    clarity: ClarityWeights = field(default_factory=ClarityWeights)

    def __post_init__(self) -> None:
        if self.rapid_window < 2:
            raise ValueError("rapid_window must cover at least two words")
        if self.ideal_wpm_low > self.ideal_wpm_high:
            raise ValueError("ideal_wpm_low must not exceed ideal_wpm_high")

    @classmethod
    def from_settings(cls, settings) -> "AnalysisConfig":
        return cls(
            pause_threshold_seconds=settings.pause_threshold_seconds,
            rapid_speech_wpm=settings.rapid_speech_wpm,
            ideal_wpm_low=settings.ideal_wpm_low,
            ideal_wpm_high=settings.ideal_wpm_high,
            clarity=ClarityWeights(
                confidence=settings.clarity_confidence_weight,
                filler=settings.clarity_filler_weight,
                pace=settings.clarity_pace_weight,
            ),
        )


def _normalise(word: str) -> str:
    return _NON_WORD.sub("", word.lower())


@lru_cache(maxsize=16)
def _filler_pattern(filler_words: Tuple[str, ...]) -> Pattern[str]:
    phrases = sorted({phrase.strip().lower() for phrase in filler_words if phrase.strip()}, key=len, reverse=True)
    alternation = "|".join(r"\s+".join(re.escape(part) for part in phrase.split()) for phrase in phrases)
    return re.compile(rf"\b(?:{alternation})\b", re.IGNORECASE)


def count_words(transcript: str) -> int:
    return len(transcript.split())


def calculate_speaking_rate(word_timings: Sequence[WordTiming]) -> Optional[float]:
    """Words per minute between the first word's start and the last word's end."""

    if not word_timings:
        return None
    duration = word_timings[-1].end_time - word_timings[0].start_time
    if duration <= 0:
        return None
    return len(word_timings) / (duration / 60.0)


def detect_filler_words(
    transcript: str,
    word_timings: Sequence[WordTiming] = (),
    filler_words: Tuple[str, ...] = DEFAULT_FILLER_WORDS,
    total_words: Optional[int] = None,
) -> FillerWordStats:
    """Count lexicon matches in ``transcript`` and locate them in time.

    Each match is tied to the next unclaimed timing whose word equals the
    match's first token; matches without such a timing keep ``timestamp=None``.
    """

    if not transcript or not filler_words:
        return FillerWordStats()

    occurrences: List[FillerOccurrence] = []
    cursor = 0
    for match in _filler_pattern(tuple(filler_words)).finditer(transcript):
        phrase = " ".join(match.group(0).lower().split())
        first = phrase.split()[0]
        timestamp = None
        for index in range(cursor, len(word_timings)):
            if _normalise(word_timings[index].word) == first:
                timestamp = word_timings[index].start_time
                cursor = index + 1
                break
        occurrences.append(FillerOccurrence(word=phrase, timestamp=timestamp))

    if total_words is None:
        total_words = len(word_timings) or count_words(transcript)
    percentage = len(occurrences) / total_words * 100.0 if total_words else 0.0
    return FillerWordStats(count=len(occurrences), percentage=percentage, occurrences=occurrences)


def find_pauses(word_timings: Sequence[WordTiming], threshold_seconds: float = 1.5) -> List[Pause]:
    pauses: List[Pause] = []
    for current, following in zip(word_timings, word_timings[1:]):
        gap = following.start_time - current.end_time
        if gap > threshold_seconds:
            pauses.append(
                Pause(
                    start_time=current.end_time,
                    end_time=following.start_time,
                    duration_seconds=gap,
                    word_before=current.word,
                    word_after=following.word,
                )
            )
    return pauses


def find_rapid_words(
    word_timings: Sequence[WordTiming],
    threshold_wpm: float = 180.0,
    window: int = 3,
) -> List[RapidWord]:
    """Flag the middle word of every sliding window spoken faster than ``threshold_wpm``."""

    if len(word_timings) < window:
        return []
    offset = window // 2
    rapid: List[RapidWord] = []
    for start in range(len(word_timings) - window + 1):
        rate = calculate_speaking_rate(word_timings[start : start + window])
        if rate is None or rate <= threshold_wpm:
            continue
        word = word_timings[start + offset]
        rapid.append(
            RapidWord(
                word=word.word,
                start_time=word.start_time,
                end_time=word.end_time,
                words_per_minute=rate,
            )
        )
    return rapid


def detect_sentences(transcript: str, word_timings: Sequence[WordTiming] = ()) -> List[Sentence]:
    """Split ``transcript`` on terminal punctuation and time each sentence.

    Timings are consumed in order, one per whitespace-separated token.
    """

    text = transcript.strip()
    if not text:
        return []
    if not word_timings:
        return [Sentence(text=text, start_time=0.0, end_time=0.0)]

    sentences: List[Sentence] = []
    cursor = 0
    for chunk in _SENTENCE_BREAK.split(text):
        tokens = chunk.split()
        if not tokens or cursor >= len(word_timings):
            continue
        segment = word_timings[cursor : cursor + len(tokens)]
        cursor += len(tokens)
        sentences.append(
            Sentence(
                text=chunk.strip(),
                start_time=segment[0].start_time,
                end_time=segment[-1].end_time,
                words_per_minute=calculate_speaking_rate(segment),
            )
        )
    return sentences


def _pace_component(words_per_minute: float, config: AnalysisConfig) -> float:
    low, high = config.ideal_wpm_low, config.ideal_wpm_high
    if low <= words_per_minute <= high:
        return 1.0
    deviation = low - words_per_minute if words_per_minute < low else words_per_minute - high
    return max(0.0, 1.0 - deviation / config.clarity.pace_tolerance)


def calculate_clarity_score(
    confidence: float,
    filler_percentage: float,
    words_per_minute: Optional[float],
    config: Optional[AnalysisConfig] = None,
) -> float:
    """Weighted 0-100 blend of confidence, filler rate, and pace.

    Without a speaking rate the pace component is left out and the other
    weights are renormalised.
    """

    config = config or AnalysisConfig()
    weights = config.clarity
    components = [
        (weights.confidence, min(1.0, max(0.0, confidence))),
        (weights.filler, max(0.0, 1.0 - filler_percentage / weights.filler_tolerance)),
    ]
    if words_per_minute is not None:
        components.append((weights.pace, _pace_component(words_per_minute, config)))

    total_weight = sum(weight for weight, _ in components)
    if total_weight <= 0:
        return 0.0
    score = 100.0 * sum(weight * value for weight, value in components) / total_weight
    return round(min(100.0, max(0.0, score)), 1)


def analyze_transcript(
    result: TranscriptionResult,
    config: Optional[AnalysisConfig] = None,
    audio_duration: Optional[float] = None,
) -> SpeechMetrics:
    """Build the full :class:`SpeechMetrics` for one transcription result."""

    config = config or AnalysisConfig()
    started = time.perf_counter()
    timings = result.word_timings
    transcript = result.transcript.strip() or " ".join(timing.word for timing in timings)

    if not transcript:
        LOGGER.debug("Transcription is empty; returning zero metrics")
        return SpeechMetrics(
            duration_seconds=audio_duration or 0.0,
            processing_time_ms=result.processing_time_ms,
        )

    word_count = len(timings) if timings else count_words(transcript)
    words_per_minute = calculate_speaking_rate(timings)
    fillers = detect_filler_words(transcript, timings, config.filler_words, total_words=word_count)
    duration = timings[-1].end_time if timings else (audio_duration or 0.0)
    if not timings:
        LOGGER.debug("No word timings available; pace, pauses, and rapid speech skipped")

    metrics = SpeechMetrics(
        transcript=transcript,
        confidence=result.confidence,
        duration_seconds=duration,
        word_count=word_count,
        words_per_minute=words_per_minute,
        filler_words=fillers,
        clarity_score=calculate_clarity_score(result.confidence, fillers.percentage, words_per_minute, config),
        pauses=find_pauses(timings, config.pause_threshold_seconds),
        rapid_words=find_rapid_words(timings, config.rapid_speech_wpm, config.rapid_window),
        sentences=detect_sentences(transcript, timings),
        processing_time_ms=result.processing_time_ms + (time.perf_counter() - started) * 1000.0,
    )
    return metrics


class TranscriptMetricsAnalyzer:
    """Bind an :class:`AnalysisConfig` to the analysis functions."""

    def __init__(self, config: Optional[AnalysisConfig] = None) -> None:
        self.config = config or AnalysisConfig()

    def speaking_rate(self, word_timings: Sequence[WordTiming]) -> Optional[float]:
        return calculate_speaking_rate(word_timings)

    def filler_words(self, transcript: str, word_timings: Sequence[WordTiming] = ()) -> FillerWordStats:
        return detect_filler_words(transcript, word_timings, self.config.filler_words)

    def pauses(self, word_timings: Sequence[WordTiming]) -> List[Pause]:
        return find_pauses(word_timings, self.config.pause_threshold_seconds)

    def rapid_words(self, word_timings: Sequence[WordTiming]) -> List[RapidWord]:
        return find_rapid_words(word_timings, self.config.rapid_speech_wpm, self.config.rapid_window)

    def clarity_score(self, confidence: float, filler_percentage: float, words_per_minute: Optional[float]) -> float:
        return calculate_clarity_score(confidence, filler_percentage, words_per_minute, self.config)

    def analyze(self, result: TranscriptionResult, audio_duration: Optional[float] = None) -> SpeechMetrics:
        return analyze_transcript(result, self.config, audio_duration)


__all__ = [
    "AnalysisConfig",
    "ClarityWeights",
    "DEFAULT_FILLER_WORDS",
    "TranscriptMetricsAnalyzer",
    "analyze_transcript",
    "calculate_clarity_score",
    "calculate_speaking_rate",
    "count_words",
    "detect_filler_words",
    "detect_sentences",
    "find_pauses",
    "find_rapid_words",
]
