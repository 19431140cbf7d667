"""Turn raw capture buffers into the canonical recording container."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from ...errors import UnsupportedFormat
from ...logging import get_logger
from ...utils.audio import WAV_HEADER_BYTES, as_frames, decode_wav, encode_wav, ensure_mono, resample

LOGGER = get_logger(__name__)

DEFAULT_TARGET_SAMPLE_RATE = 22_050


@dataclass(frozen=True)
class EncodedAudio:
    """An encoded recording ready for storage or transcription."""

    data: bytes
    sample_rate: int
    channels: int
    mime_type: str = "audio/wav"

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def frame_count(self) -> int:
        payload = max(len(self.data) - WAV_HEADER_BYTES, 0)
        return payload // (2 * max(self.channels, 1))

    @property
    def duration_seconds(self) -> float:
        if self.sample_rate == 0:
            return 0.0
        return self.frame_count / float(self.sample_rate)


class AudioPostProcessor:
    """Downmix, resample, and WAV-encode captured PCM.

    The transform is pure: the same input always yields the same bytes, and
    feeding canonical output (mono at the target rate) back in is a no-op.
    """

    def __init__(self, target_sample_rate: int = DEFAULT_TARGET_SAMPLE_RATE, compress: bool = True) -> None:
        if target_sample_rate <= 0:
            raise ValueError("target_sample_rate must be positive")
        self.target_sample_rate = target_sample_rate
        self.compress = compress

    def process(self, samples: np.ndarray, sample_rate: int, channels: int) -> EncodedAudio:
        frames = as_frames(samples, channels)
        if sample_rate <= 0:
            raise UnsupportedFormat(f"Sample rate must be positive, got {sample_rate}")

        if not self.compress:
            return EncodedAudio(data=encode_wav(frames, sample_rate), sample_rate=sample_rate, channels=channels)

        mono = ensure_mono(frames)
        resampled = resample(mono, sample_rate, self.target_sample_rate)
        LOGGER.debug(
            "Post-processed %s frame(s) at %s Hz x%s into %s frame(s) at %s Hz mono",
            frames.shape[0],
            sample_rate,
            channels,
            resampled.shape[0],
            self.target_sample_rate,
        )
        return EncodedAudio(
            data=encode_wav(resampled, self.target_sample_rate),
            sample_rate=self.target_sample_rate,
            channels=1,
        )

    def process_encoded(self, audio: EncodedAudio) -> EncodedAudio:
        """Re-run the pipeline over an already encoded WAV recording."""

        data, sample_rate = decode_wav(audio.data)
        return self.process(data, sample_rate, data.shape[1])


__all__ = ["AudioPostProcessor", "DEFAULT_TARGET_SAMPLE_RATE", "EncodedAudio"]
