"""Recording state machine driving a single live capture device."""

from __future__ import annotations

import contextlib
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Deque, Iterator, List, Optional, Tuple

import numpy as np

from ...errors import DeviceUnavailable, EncodingError, InvalidStateTransition, UnsupportedFormat
from ...logging import get_logger
from ...utils.audio import encode_wav
from .analyser import FrequencyAnalyser
from .base import AudioCapture
from .postprocess import DEFAULT_TARGET_SAMPLE_RATE, AudioPostProcessor, EncodedAudio
from .quality import AudioQualityMonitor, QualityInfo, QualityThresholds, levels_from_spectrum

LOGGER = get_logger(__name__)

VISUALIZATION_STRIDE = 4
VISUALIZATION_BINS = 32
_SCHEDULE_EPSILON = 1e-9


class RecordingStatus(str, Enum):
    INACTIVE = "inactive"
    RECORDING = "recording"
    PAUSED = "paused"
    COMPLETED = "completed"


@dataclass(frozen=True)
class CaptureConfig:
    max_duration: float = 180.0
    quality_check_interval: float = 0.1
    visualization_interval: float = 1.0 / 60.0
    visualize: bool = True
    compress_audio: bool = True
    target_sample_rate: int = DEFAULT_TARGET_SAMPLE_RATE
    frame_backlog: int = 120
    thresholds: QualityThresholds = field(default_factory=QualityThresholds)

    def __post_init__(self) -> None:
        if self.max_duration <= 0:
            raise ValueError("max_duration must be positive")
        if self.quality_check_interval <= 0 or self.visualization_interval <= 0:
            raise ValueError("polling intervals must be positive")

    @classmethod
    def from_settings(cls, settings) -> "CaptureConfig":
        return cls(
            max_duration=settings.max_duration,
            quality_check_interval=settings.quality_check_interval,
            visualization_interval=settings.visualization_interval,
            compress_audio=settings.compress_audio,
            target_sample_rate=settings.target_sample_rate,
        )

    @property
    def tick_interval(self) -> float:
        if not self.visualize:
            return self.quality_check_interval
        return min(self.quality_check_interval, self.visualization_interval)


@dataclass(frozen=True)
class RecordingState:
    status: RecordingStatus = RecordingStatus.INACTIVE
    elapsed_seconds: float = 0.0
    quality_info: Optional[QualityInfo] = None
    recording: Optional[EncodedAudio] = None

    @property
    def is_active(self) -> bool:
        return self.status in (RecordingStatus.RECORDING, RecordingStatus.PAUSED)


@dataclass(frozen=True)
class VisualizationFrame:
    elapsed_seconds: float
    bins: Tuple[int, ...]
    level: int


class AudioCaptureSession:
    """Own one capture device, its sample buffer, and the live analysis loops.

    ``tick`` is meant to be called from a single fixed-rate loop. It drains the
    device, updates the elapsed time, samples quality and visualization at
    their own intervals, and completes the session once ``max_duration`` is
    reached. Visualization frames and quality snapshots are pulled through
    :meth:`iter_frames` and :meth:`iter_quality`; both iterators end when the
    backlog is empty or a new session starts.
    """

    def __init__(
        self,
        capture: AudioCapture,
        config: Optional[CaptureConfig] = None,
        post_processor: Optional[AudioPostProcessor] = None,
        analyser: Optional[FrequencyAnalyser] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.capture = capture
        self.config = config or CaptureConfig()
        self.post_processor = post_processor or AudioPostProcessor(
            target_sample_rate=self.config.target_sample_rate,
            compress=self.config.compress_audio,
        )
        self.analyser = analyser or FrequencyAnalyser()
        self.monitor = AudioQualityMonitor(self.config.thresholds, interval=self.config.quality_check_interval)
        self._clock = clock
        self._lock = threading.RLock()
        self._generation = 0
        self._reset()

    def _reset(self) -> None:
        self._status = RecordingStatus.INACTIVE
        self._elapsed = 0.0
        self._started_at = 0.0
        self._next_quality_at = 0.0
        self._next_frame_at = 0.0
        self._chunks: List[np.ndarray] = []
        self._quality: Optional[QualityInfo] = None
        self._recording: Optional[EncodedAudio] = None
        self._frames: Deque[VisualizationFrame] = deque(maxlen=self.config.frame_backlog)
        self._quality_updates: Deque[QualityInfo] = deque(maxlen=self.config.frame_backlog)
        self._sample_rate = int(self.capture.info.sample_rate)
        self._channels = int(self.capture.info.channels)
        self._device_open = False
        self.analyser.reset()
        self.monitor.reset()
        self._generation += 1

    @property
    def status(self) -> RecordingStatus:
        return self._status

    @property
    def state(self) -> RecordingState:
        with self._lock:
            return RecordingState(
                status=self._status,
                elapsed_seconds=self._elapsed,
                quality_info=self._quality,
                recording=self._recording,
            )

    def start(self) -> RecordingState:
        with self._lock:
            if self._status in (RecordingStatus.RECORDING, RecordingStatus.PAUSED):
                raise InvalidStateTransition("start", self._status.value)
            self._reset()
            try:
                self.capture.start()
            except DeviceUnavailable:
                raise
            except (OSError, RuntimeError) as exc:
                raise DeviceUnavailable(f"Unable to open {self.capture.info.name}: {exc}") from exc
            self._device_open = True
            self._sample_rate = int(self.capture.info.sample_rate)
            self._channels = int(self.capture.info.channels)
            self._started_at = self._clock()
            self._status = RecordingStatus.RECORDING
            LOGGER.info(
                "Recording started on %s at %s Hz x%s",
                self.capture.info.name,
                self._sample_rate,
                self._channels,
            )
            return self.state

    def pause(self) -> RecordingState:
        with self._lock:
            if self._status is not RecordingStatus.RECORDING:
                raise InvalidStateTransition("pause", self._status.value)
            self._drain_device()
            self._elapsed = self._clock() - self._started_at
            self._status = RecordingStatus.PAUSED
            LOGGER.info("Recording paused at %.2fs", self._elapsed)
            return self.state

    def resume(self) -> RecordingState:
        with self._lock:
            if self._status is not RecordingStatus.PAUSED:
                raise InvalidStateTransition("resume", self._status.value)
            self._drain_device(keep=False)
            self._started_at = self._clock() - self._elapsed
            self._status = RecordingStatus.RECORDING
            LOGGER.info("Recording resumed at %.2fs", self._elapsed)
            return self.state

    def tick(self) -> RecordingState:
        with self._lock:
            if self._status is RecordingStatus.PAUSED:
                self._drain_device(keep=False)
                return self.state
            if self._status is not RecordingStatus.RECORDING:
                return self.state

            self._drain_device()
            self._elapsed = self._clock() - self._started_at

            if self._elapsed + _SCHEDULE_EPSILON >= self._next_quality_at:
                # Quality slots stay on a fixed cadence; late ticks replay the
                # slots they missed against the current spectrum.
                spectrum = self.analyser.byte_frequency_data()
                while self._elapsed + _SCHEDULE_EPSILON >= self._next_quality_at:
                    self._quality = self.monitor.sample(spectrum)
                    self._next_quality_at += self.config.quality_check_interval
                self._quality_updates.append(self._quality)

            if self.config.visualize and self._elapsed >= self._next_frame_at:
                self._frames.append(self._build_frame())
                self._next_frame_at = self._elapsed + self.config.visualization_interval

            if self._elapsed >= self.config.max_duration:
                LOGGER.info("Maximum duration of %.1fs reached; stopping", self.config.max_duration)
                self.stop()
            return self.state

    def stop(self) -> EncodedAudio:
        with self._lock:
            if self._status not in (RecordingStatus.RECORDING, RecordingStatus.PAUSED):
                raise InvalidStateTransition("stop", self._status.value)
            keep = self._status is RecordingStatus.RECORDING
            if keep:
                self._elapsed = self._clock() - self._started_at
            self._status = RecordingStatus.COMPLETED
            self._release_device(keep=keep)

            samples = self._raw_samples()
            try:
                self._recording = self.post_processor.process(samples, self._sample_rate, self._channels)
            except UnsupportedFormat as exc:
                LOGGER.warning("Post-processing failed after %.2fs of audio: %s", self._elapsed, exc)
                raise EncodingError(f"Could not encode recording: {exc}") from exc
            LOGGER.info(
                "Recording completed: %.2fs, %s byte(s) encoded",
                self._elapsed,
                self._recording.size,
            )
            return self._recording

    def cancel(self) -> RecordingState:
        with self._lock:
            if self._status is RecordingStatus.INACTIVE:
                return self.state
            self._release_device(keep=False)
            self._reset()
            LOGGER.info("Recording cancelled")
            return self.state

    def clear(self) -> RecordingState:
        with self._lock:
            if self._status in (RecordingStatus.RECORDING, RecordingStatus.PAUSED):
                return self.cancel()
            self._reset()
            return self.state

    def raw_recording(self) -> EncodedAudio:
        """Return the captured audio as uncompressed WAV at its original format."""

        with self._lock:
            if self._status is not RecordingStatus.COMPLETED:
                raise InvalidStateTransition("export raw audio", self._status.value)
            samples = self._raw_samples()
            return EncodedAudio(
                data=encode_wav(samples, self._sample_rate),
                sample_rate=self._sample_rate,
                channels=self._channels,
            )

    def export_waveform(self) -> Optional[np.ndarray]:
        with self._lock:
            if self._status is not RecordingStatus.RECORDING:
                return None
            return self.analyser.byte_frequency_data()

    def iter_frames(self) -> Iterator[VisualizationFrame]:
        """Drain pending visualization frames for the current session."""

        return self._drain(self._frames, self._generation)

    def iter_quality(self) -> Iterator[QualityInfo]:
        return self._drain(self._quality_updates, self._generation)

    def _drain(self, backlog: Deque, generation: int) -> Iterator:
        while True:
            with self._lock:
                if generation != self._generation or not backlog:
                    return
                item = backlog.popleft()
            yield item

    def _build_frame(self) -> VisualizationFrame:
        spectrum = self.analyser.byte_frequency_data()
        bins = spectrum[::VISUALIZATION_STRIDE][:VISUALIZATION_BINS]
        level, _ = levels_from_spectrum(spectrum, self.config.thresholds.low_band_fraction)
        return VisualizationFrame(
            elapsed_seconds=self._elapsed,
            bins=tuple(int(value) for value in bins),
            level=level,
        )

    def _accept(self, chunk: np.ndarray) -> None:
        data = np.asarray(chunk)
        if data.ndim == 1:
            data = data.reshape(-1, self._channels)
        self._chunks.append(data.copy())
        self.analyser.push(data)

    def _drain_device(self, keep: bool = True) -> None:
        if not self._device_open:
            return
        while True:
            chunk = self.capture.read(timeout=0)
            if chunk is None:
                break
            if keep:
                self._accept(chunk)

    def _release_device(self, keep: bool) -> None:
        if not self._device_open:
            return
        with contextlib.suppress(OSError, RuntimeError):
            self.capture.stop()
        self._drain_device(keep=keep)
        with contextlib.suppress(OSError, RuntimeError):
            self.capture.close()
        self._device_open = False

    def _raw_samples(self) -> np.ndarray:
        if not self._chunks:
            return np.zeros((0, max(self._channels, 1)), dtype=np.int16)
        return np.concatenate(self._chunks, axis=0)


__all__ = [
    "AudioCaptureSession",
    "CaptureConfig",
    "RecordingState",
    "RecordingStatus",
    "VisualizationFrame",
]
