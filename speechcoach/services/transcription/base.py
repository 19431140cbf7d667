"""Transcription service abstractions."""

from __future__ import annotations

import abc
from typing import Optional

from ...core.audio.postprocess import EncodedAudio
from ...data.models import TranscriptionResult


class TranscriptionService(abc.ABC):
    """Convert an encoded recording into words with timings."""

    @abc.abstractmethod
    def transcribe(self, audio: EncodedAudio, language_code: Optional[str] = None) -> TranscriptionResult:
        raise NotImplementedError


__all__ = ["TranscriptionService"]
