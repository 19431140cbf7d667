"""Byte-scaled spectrum snapshots of the live input signal."""

from __future__ import annotations

import threading
from typing import Optional

import numpy as np


class FrequencyAnalyser:
    """Rolling FFT over the most recent samples, scaled to 0-255 per bin.

    Mirrors a browser ``AnalyserNode``: a Blackman window over ``fft_size``
    samples, magnitudes smoothed over time, converted to dB and mapped
    linearly from ``[min_decibels, max_decibels]`` onto ``[0, 255]``.
    """

    def __init__(
        self,
        fft_size: int = 256,
        smoothing: float = 0.7,
        min_decibels: float = -100.0,
        max_decibels: float = -30.0,
    ) -> None:
        if fft_size < 32 or fft_size & (fft_size - 1):
            raise ValueError("fft_size must be a power of two >= 32")
        if not 0.0 <= smoothing < 1.0:
            raise ValueError("smoothing must be in [0, 1)")
        if max_decibels <= min_decibels:
            raise ValueError("max_decibels must exceed min_decibels")
        self.fft_size = fft_size
        self.smoothing = smoothing
        self.min_decibels = min_decibels
        self.max_decibels = max_decibels
        self._window = np.blackman(fft_size)
        self._lock = threading.Lock()
        self.reset()

    @property
    def bin_count(self) -> int:
        return self.fft_size // 2

    def reset(self) -> None:
        with self._lock:
            self._samples = np.zeros(self.fft_size, dtype=np.float64)
            self._smoothed = np.zeros(self.bin_count, dtype=np.float64)
            self._snapshot: Optional[np.ndarray] = None

    def push(self, chunk: np.ndarray) -> None:
        """Feed a ``(frames, channels)`` int16 or float chunk."""

        data = np.asarray(chunk)
        if data.size == 0:
            return
        if data.ndim == 2:
            data = data.mean(axis=1)
        if np.issubdtype(data.dtype, np.integer):
            mono = data.astype(np.float64) / 32768.0
        else:
            mono = data.astype(np.float64)
        with self._lock:
            if mono.shape[0] >= self.fft_size:
                self._samples = mono[-self.fft_size :].copy()
            else:
                self._samples = np.concatenate([self._samples[mono.shape[0] :], mono])
            self._snapshot = None

    def byte_frequency_data(self) -> np.ndarray:
        """Return the current spectrum as ``uint8`` values, one per bin."""

        with self._lock:
            if self._snapshot is None:
                spectrum = np.fft.rfft(self._samples * self._window)[: self.bin_count]
                magnitude = np.abs(spectrum) / self.fft_size
                self._smoothed = self.smoothing * self._smoothed + (1.0 - self.smoothing) * magnitude
                with np.errstate(divide="ignore"):
                    decibels = 20.0 * np.log10(self._smoothed)
                scaled = (decibels - self.min_decibels) * (255.0 / (self.max_decibels - self.min_decibels))
                self._snapshot = np.clip(np.nan_to_num(scaled, neginf=0.0), 0, 255).astype(np.uint8)
            return self._snapshot.copy()


__all__ = ["FrequencyAnalyser"]
