"""Dummy transcription service for testing or offline usage."""

from __future__ import annotations

from typing import List, Optional, Sequence

from ...core.audio.postprocess import EncodedAudio
from ...data.models import TranscriptionResult, WordTiming
from .base import TranscriptionService

_SCRIPT = (
    "So today I want to talk about um the importance of clear speaking. "
    "You know it is easy to rush when you are nervous. "
    "Taking a breath between ideas helps the audience follow along."
)


class DummyTranscriptionService(TranscriptionService):
    """Emit a fixed script spread evenly across the recording.

    Output depends only on the recording duration, so repeated runs over the
    same audio produce identical metrics.
    """

    def __init__(
        self,
        words_per_second: float = 2.5,
        confidence: float = 0.9,
        script: Optional[Sequence[str]] = None,
    ) -> None:
        self.words_per_second = words_per_second
        self.confidence = confidence
        self.script = list(script) if script is not None else _SCRIPT.split()

    def transcribe(self, audio: EncodedAudio, language_code: Optional[str] = None) -> TranscriptionResult:
        duration = audio.duration_seconds
        count = int(duration * self.words_per_second)
        if count <= 0 or not self.script:
            return TranscriptionResult(language_code=language_code)

        slot = 1.0 / self.words_per_second
        timings: List[WordTiming] = []
        for index in range(count):
            start = index * slot
            timings.append(
                WordTiming(
                    word=self.script[index % len(self.script)],
                    start_time=round(start, 3),
                    end_time=round(start + slot * 0.8, 3),
                    confidence=self.confidence,
                )
            )
        return TranscriptionResult(
            transcript=" ".join(timing.word for timing in timings),
            confidence=self.confidence,
            word_timings=timings,
            language_code=language_code,
        )


__all__ = ["DummyTranscriptionService"]
