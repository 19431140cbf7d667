"""Live input quality classification (volume, noise, clipping, interruptions)."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque, FrozenSet, Optional, Tuple

import numpy as np
from pydantic import BaseModel, ConfigDict

from ...logging import get_logger

LOGGER = get_logger(__name__)

_EPSILON = 1e-9


class QualityIssue(str, Enum):
    LOW_VOLUME = "low-volume"
    HIGH_NOISE = "high-noise"
    CLIPPING = "clipping"
    INTERRUPTED = "interrupted"


@dataclass(frozen=True)
class QualityThresholds:
    """Product-tunable limits for the quality verdict, on a 0-100 scale."""

    volume_window: int = 5
    noise_window: int = 10
    low_volume: float = 20.0
    high_noise: float = 30.0
    noise_floor_min: float = 5.0
    clipping_level: float = 95.0
    clipping_count: int = 3
    silence_level: float = 10.0
    silence_seconds: float = 2.0
    max_interruptions: int = 2
    low_band_fraction: float = 1.0 / 8.0


class QualityInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_good: bool
    noise_level: int
    volume_level: int
    issues: FrozenSet[QualityIssue] = frozenset()


def levels_from_spectrum(frequency_data: np.ndarray, low_band_fraction: float = 1.0 / 8.0) -> Tuple[int, int]:
    """Return ``(volume_level, noise_level)`` on 0-100 from 0-255 analyser bins."""

    data = np.asarray(frequency_data, dtype=np.float64)
    if data.size == 0:
        return 0, 0
    volume = min(100, int(round(data.mean() / 255.0 * 100.0)))
    low_band = data[: max(1, int(data.size * low_band_fraction))]
    noise = min(100, int(round(low_band.mean() / 255.0 * 100.0)))
    return volume, noise


class AudioQualityMonitor:
    """Deterministic classifier over the recent volume/noise history.

    ``interval`` is the time between observations and drives the silence
    accumulator used for interruption detection.
    """

    def __init__(self, thresholds: Optional[QualityThresholds] = None, interval: float = 0.1) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.thresholds = thresholds or QualityThresholds()
        self.interval = interval
        self.reset()

    def reset(self) -> None:
        self._volume_history: Deque[float] = deque(maxlen=self.thresholds.volume_window)
        self._noise_floor: Deque[float] = deque(maxlen=self.thresholds.noise_window)
        self._silence_seconds = 0.0
        self._interruptions = 0
        self._latest: Optional[QualityInfo] = None

    @property
    def interruptions(self) -> int:
        return self._interruptions

    @property
    def latest(self) -> Optional[QualityInfo]:
        return self._latest

    def sample(self, frequency_data: np.ndarray) -> QualityInfo:
        """Classify one analyser frame."""

        volume, noise = levels_from_spectrum(frequency_data, self.thresholds.low_band_fraction)
        return self.observe(volume, noise)

    def observe(self, volume_level: float, noise_level: float) -> QualityInfo:
        t = self.thresholds
        self._volume_history.append(volume_level)
        if noise_level > t.noise_floor_min:
            self._noise_floor.append(noise_level)

        if volume_level < t.silence_level:
            self._silence_seconds += self.interval
            if self._silence_seconds + _EPSILON >= t.silence_seconds:
                self._interruptions += 1
                self._silence_seconds = 0.0
                LOGGER.debug("Silence interruption #%s detected", self._interruptions)
        else:
            self._silence_seconds = 0.0

        noise_floor = sum(self._noise_floor) / len(self._noise_floor) if self._noise_floor else 0.0
        recent_volume = sum(self._volume_history) / max(1, len(self._volume_history))

        issues = set()
        if recent_volume < t.low_volume:
            issues.add(QualityIssue.LOW_VOLUME)
        if noise_floor > t.high_noise:
            issues.add(QualityIssue.HIGH_NOISE)
        if sum(1 for value in self._volume_history if value > t.clipping_level) >= t.clipping_count:
            issues.add(QualityIssue.CLIPPING)
        if self._interruptions > t.max_interruptions:
            issues.add(QualityIssue.INTERRUPTED)

        self._latest = QualityInfo(
            is_good=not issues,
            noise_level=int(round(noise_floor)),
            volume_level=int(round(recent_volume)),
            issues=frozenset(issues),
        )
        return self._latest


__all__ = [
    "AudioQualityMonitor",
    "QualityInfo",
    "QualityIssue",
    "QualityThresholds",
    "levels_from_spectrum",
]
