import pytest

from speechcoach.core.analysis.transcript import (
    AnalysisConfig,
    ClarityWeights,
    TranscriptMetricsAnalyzer,
    analyze_transcript,
    calculate_clarity_score,
    calculate_speaking_rate,
    detect_filler_words,
    detect_sentences,
    find_pauses,
    find_rapid_words,
)
from speechcoach.data.models import TranscriptionResult, WordTiming


def _timings(*rows):
    return [WordTiming(word=word, start_time=start, end_time=end) for word, start, end in rows]


SAMPLE_TIMINGS = _timings(
    ("um", 0.0, 0.3),
    ("so", 0.4, 0.7),
    ("think", 0.8, 1.2),
    ("uh", 1.3, 1.6),
    ("this", 1.7, 2.0),
    ("is", 2.1, 2.4),
    ("great", 2.5, 3.0),
)


def test_speaking_rate_over_timing_span() -> None:
    assert calculate_speaking_rate(SAMPLE_TIMINGS) == pytest.approx(140.0)


def test_speaking_rate_undefined_without_duration() -> None:
    assert calculate_speaking_rate([]) is None
    assert calculate_speaking_rate(_timings(("hi", 1.0, 1.0))) is None


def test_filler_words_counted_case_insensitively() -> None:
    stats = detect_filler_words("Um so I think uh this is great", SAMPLE_TIMINGS)

    assert stats.count == 3
    assert stats.percentage == pytest.approx(3 / 7 * 100)
    assert [occurrence.word for occurrence in stats.occurrences] == ["um", "so", "uh"]
    assert [occurrence.timestamp for occurrence in stats.occurrences] == [0.0, 0.4, 1.3]


def test_filler_phrases_and_word_boundaries() -> None:
    stats = detect_filler_words("You know, the summary is sort of soft and unlikely to help.")

    assert [occurrence.word for occurrence in stats.occurrences] == ["you know", "sort of"]
    assert all(occurrence.timestamp is None for occurrence in stats.occurrences)
    assert stats.percentage == pytest.approx(2 / 12 * 100)


def test_filler_words_empty_transcript() -> None:
    stats = detect_filler_words("")

    assert stats.count == 0
    assert stats.percentage == 0.0


def test_pause_detected_above_threshold() -> None:
    timings = _timings(("first", 1.5, 2.0), ("second", 4.0, 4.4), ("third", 4.5, 5.0))

    pauses = find_pauses(timings)

    assert len(pauses) == 1
    pause = pauses[0]
    assert pause.duration_seconds == pytest.approx(2.0)
    assert (pause.start_time, pause.end_time) == (2.0, 4.0)
    assert (pause.word_before, pause.word_after) == ("first", "second")


def test_pause_threshold_is_strict_and_configurable() -> None:
    timings = _timings(("a", 0.0, 0.5), ("b", 2.0, 2.5))

    assert find_pauses(timings) == []
    assert len(find_pauses(timings, threshold_seconds=1.0)) == 1


def test_rapid_words_flag_middle_of_fast_window() -> None:
    timings = _timings(
        ("slow", 0.0, 0.5),
        ("words", 1.0, 1.5),
        ("then", 2.0, 2.5),
        ("very", 2.6, 2.7),
        ("fast", 2.75, 2.85),
        ("speech", 2.9, 3.0),
    )

    rapid = find_rapid_words(timings)

    assert [word.word for word in rapid] == ["very", "fast"]
    assert all(word.words_per_minute > 180 for word in rapid)


def test_rapid_words_need_a_full_window() -> None:
    assert find_rapid_words(_timings(("a", 0.0, 0.1), ("b", 0.1, 0.2))) == []


def test_sentences_are_timed_from_word_timings() -> None:
    timings = _timings(
        ("Hello", 0.0, 0.4),
        ("there.", 0.5, 1.0),
        ("How", 2.0, 2.2),
        ("are", 2.3, 2.5),
        ("you?", 2.6, 3.0),
    )

    sentences = detect_sentences("Hello there. How are you?", timings)

    assert [sentence.text for sentence in sentences] == ["Hello there.", "How are you?"]
    assert (sentences[1].start_time, sentences[1].end_time) == (2.0, 3.0)
    assert sentences[0].words_per_minute == pytest.approx(120.0)


def test_sentences_without_timings() -> None:
    sentences = detect_sentences("Just text.")

    assert len(sentences) == 1
    assert sentences[0].start_time == sentences[0].end_time == 0.0
    assert detect_sentences("   ") == []


def test_clarity_score_perfect_delivery() -> None:
    assert calculate_clarity_score(1.0, 0.0, 150.0) == 100.0


def test_clarity_score_penalises_fillers_and_pace() -> None:
    ideal = calculate_clarity_score(0.9, 0.0, 150.0)
    fillers = calculate_clarity_score(0.9, 10.0, 150.0)
    fast = calculate_clarity_score(0.9, 0.0, 200.0)

    assert fillers < ideal
    assert fast < ideal
    assert 0.0 <= calculate_clarity_score(0.0, 90.0, 400.0) <= 100.0


def test_clarity_score_without_pace_renormalises_weights() -> None:
    score = calculate_clarity_score(0.5, 0.0, None)

    assert score == pytest.approx(round(100 * (0.4 * 0.5 + 0.35) / 0.75, 1))


def test_clarity_weights_are_configurable() -> None:
    config = AnalysisConfig(clarity=ClarityWeights(confidence=1.0, filler=0.0, pace=0.0))

    assert calculate_clarity_score(0.42, 50.0, 300.0, config) == 42.0


def test_clarity_weights_validate() -> None:
    with pytest.raises(ValueError):
        ClarityWeights(confidence=-1.0)
    with pytest.raises(ValueError):
        ClarityWeights(filler_tolerance=0)


def test_analyze_transcript_builds_metrics() -> None:
    result = TranscriptionResult(
        transcript="um so think uh this is great",
        confidence=0.92,
        word_timings=SAMPLE_TIMINGS,
        processing_time_ms=12.0,
    )

    metrics = analyze_transcript(result)

    assert metrics.word_count == 7
    assert metrics.words_per_minute == pytest.approx(140.0)
    assert metrics.filler_words.count == 3
    assert metrics.filler_word_percentage == pytest.approx(42.857, abs=0.01)
    assert metrics.duration_seconds == pytest.approx(3.0)
    assert metrics.pauses == []
    assert 0.0 <= metrics.clarity_score <= 100.0
    assert metrics.processing_time_ms >= 12.0
    record = metrics.to_record()
    assert record["wordsPerMinute"] == pytest.approx(140.0)
    assert record["fillerWords"]["count"] == 3


def test_analyze_empty_transcription_returns_zero_metrics() -> None:
    metrics = analyze_transcript(TranscriptionResult(), audio_duration=4.0)

    assert metrics.word_count == 0
    assert metrics.words_per_minute is None
    assert metrics.filler_words.count == 0
    assert metrics.clarity_score == 0.0
    assert metrics.duration_seconds == 4.0


def test_analyze_without_timings_degrades_gracefully() -> None:
    result = TranscriptionResult(transcript="So this is basically it", confidence=0.8)

    metrics = analyze_transcript(result, audio_duration=2.5)

    assert metrics.word_count == 5
    assert metrics.words_per_minute is None
    assert metrics.filler_words.count == 2
    assert metrics.pauses == []
    assert metrics.rapid_words == []
    assert metrics.duration_seconds == 2.5


def test_analyzer_uses_its_config() -> None:
    analyzer = TranscriptMetricsAnalyzer(AnalysisConfig(pause_threshold_seconds=0.05, filler_words=("great",)))

    assert len(analyzer.pauses(SAMPLE_TIMINGS)) == 6
    assert analyzer.filler_words("this is great").count == 1
    assert analyzer.speaking_rate(SAMPLE_TIMINGS) == pytest.approx(140.0)
