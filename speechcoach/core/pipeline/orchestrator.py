"""Coaching orchestrator coordinating capture, storage, analysis, and progress."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from threading import Event
from typing import Callable, Iterator, List, Optional, Tuple

from ...config import get_settings
from ...data.models import Achievement, PracticeSession, SpeechMetrics, TranscriptionResult, UserMetrics
from ...data.storage import SessionStore
from ...errors import AggregationConflict, EncodingError
from ...logging import get_logger
from ...services.transcription.base import TranscriptionService
from ...utils.audio import decode_wav, write_wave
from ..analysis.cache import AnalysisCache
from ..analysis.transcript import AnalysisConfig, TranscriptMetricsAnalyzer
from ..audio.base import AudioCapture
from ..audio.postprocess import AudioPostProcessor, EncodedAudio
from ..audio.quality import QualityInfo
from ..audio.session import AudioCaptureSession, CaptureConfig, RecordingState, RecordingStatus, VisualizationFrame
from ..progress.achievements import AchievementEvaluator
from ..progress.aggregator import SessionMetricsAggregator

LOGGER = get_logger(__name__)


@dataclass
class RecordingRequest:
    name: str
    capture: AudioCapture
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    track_progress: bool = True


@dataclass
class CaptureUpdate:
    """One loop iteration worth of live capture data."""

    state: RecordingState
    frames: List[VisualizationFrame] = field(default_factory=list)
    quality: List[QualityInfo] = field(default_factory=list)


@dataclass
class RecordingOutcome:
    session: PracticeSession
    recording: EncodedAudio
    transcription: Optional[TranscriptionResult] = None
    metrics: Optional[SpeechMetrics] = None
    user_metrics: Optional[UserMetrics] = None
    new_achievements: List[Achievement] = field(default_factory=list)
    encoding_failed: bool = False


class RecordingControl:
    """Runtime control flags for long-running recording sessions."""

    def __init__(self) -> None:
        self._stop = Event()
        self._resume = Event()
        self._resume.set()

    def request_stop(self) -> None:
        self._stop.set()
        self._resume.set()

    def request_pause(self) -> None:
        if not self._stop.is_set():
            self._resume.clear()

    def request_resume(self) -> None:
        if not self._stop.is_set():
            self._resume.set()

    @property
    def should_stop(self) -> bool:
        return self._stop.is_set()

    @property
    def is_paused(self) -> bool:
        return not self._resume.is_set() and not self._stop.is_set()

    @property
    def is_recording(self) -> bool:
        return self._resume.is_set() and not self._stop.is_set()


class CoachingOrchestrator:
    """High-level coordinator for practice sessions."""

    def __init__(
        self,
        base_dir: Optional[Path] = None,
        store: Optional[SessionStore] = None,
        transcription: Optional[TranscriptionService] = None,
        analyzer: Optional[TranscriptMetricsAnalyzer] = None,
        aggregator: Optional[SessionMetricsAggregator] = None,
        evaluator: Optional[AchievementEvaluator] = None,
        cache: Optional[AnalysisCache] = None,
        capture_config: Optional[CaptureConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
        max_retries: int = 3,
    ) -> None:
        settings = get_settings()
        self.base_dir = Path(base_dir or settings.base_dir)
        self.store = store or SessionStore(settings.database_path)
        self.store.initialize()
        self.transcription = transcription
        self.analyzer = analyzer or TranscriptMetricsAnalyzer(AnalysisConfig.from_settings(settings))
        self.aggregator = aggregator or SessionMetricsAggregator()
        self.evaluator = evaluator or AchievementEvaluator()
        self.cache = cache if cache is not None else AnalysisCache(settings.analysis_cache_size, settings.analysis_cache_ttl)
        self.capture_config = capture_config or CaptureConfig.from_settings(settings)
        self.language_code = settings.language_code
        self.default_user_id = settings.default_user_id
        self._sleep = sleep
        self.max_retries = max(1, max_retries)

    def create_session(self, capture: AudioCapture, clock: Callable[[], float] = time.monotonic) -> AudioCaptureSession:
        return AudioCaptureSession(capture, config=self.capture_config, clock=clock)

    def iter_capture(
        self,
        session: AudioCaptureSession,
        control: Optional[RecordingControl] = None,
    ) -> Iterator[CaptureUpdate]:
        """Start ``session`` and yield an update per tick until it should stop.

        The generator ends when the session completes on its own (maximum
        duration) or ``control`` requests a stop; stopping is then left to the
        caller. Closing the generator early cancels the session.
        """

        session.start()
        finished = False
        try:
            while True:
                if control is not None:
                    if control.should_stop:
                        break
                    if control.is_paused and session.status is RecordingStatus.RECORDING:
                        session.pause()
                    elif control.is_recording and session.status is RecordingStatus.PAUSED:
                        session.resume()

                state = session.tick()
                yield CaptureUpdate(
                    state=state,
                    frames=list(session.iter_frames()),
                    quality=list(session.iter_quality()),
                )
                if state.status is RecordingStatus.COMPLETED:
                    break
                self._sleep(session.config.tick_interval)
            finished = True
        except KeyboardInterrupt:
            LOGGER.info("Recording interrupted by user; finishing up")
            finished = True
        finally:
            if not finished and session.state.is_active:
                session.cancel()

    def record(
        self,
        request: RecordingRequest,
        control: Optional[RecordingControl] = None,
        on_update: Optional[Callable[[CaptureUpdate], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> RecordingOutcome:
        session_id = request.session_id or f"session-{uuid.uuid4().hex[:8]}"
        capture_session = self.create_session(request.capture, clock=clock)
        LOGGER.info("Starting practice session %s", session_id)

        encoding_failed = False
        updates = self.iter_capture(capture_session, control)
        try:
            try:
                for update in updates:
                    if on_update is not None:
                        try:
                            on_update(update)
                        except Exception:  # pragma: no cover - callbacks should not break pipeline
                            LOGGER.exception("Capture update callback raised an exception")
            except KeyboardInterrupt:
                # Ctrl+C that landed in the callback; keep the take.
                LOGGER.info("Recording interrupted by user; finishing up")
            if capture_session.state.is_active:
                recording = capture_session.stop()
            else:
                recording = capture_session.state.recording
        except EncodingError as exc:
            LOGGER.warning("Falling back to uncompressed audio for %s: %s", session_id, exc)
            recording = None
            encoding_failed = True
        finally:
            updates.close()
        if recording is None:
            recording = capture_session.raw_recording()

        session = self._persist_recording(
            session_id,
            request.name,
            request.user_id or self.default_user_id,
            recording,
        )
        outcome = RecordingOutcome(session=session, recording=recording, encoding_failed=encoding_failed)
        return self._analyze_and_track(outcome, track=request.track_progress)

    def import_recording(
        self,
        path: Path,
        name: Optional[str] = None,
        user_id: Optional[str] = None,
        track_progress: bool = True,
    ) -> RecordingOutcome:
        """Run an existing WAV file through post-processing, analysis, and tracking."""

        path = Path(path)
        samples, sample_rate = decode_wav(path.read_bytes())
        processor = AudioPostProcessor(
            target_sample_rate=self.capture_config.target_sample_rate,
            compress=self.capture_config.compress_audio,
        )
        recording = processor.process(samples, sample_rate, samples.shape[1])
        session_id = f"session-{uuid.uuid4().hex[:8]}"
        session = self._persist_recording(session_id, name or path.stem, user_id or self.default_user_id, recording)
        outcome = RecordingOutcome(session=session, recording=recording)
        return self._analyze_and_track(outcome, track=track_progress)

    def analyze_recording(self, recording: EncodedAudio) -> Tuple[Optional[TranscriptionResult], Optional[SpeechMetrics]]:
        if self.transcription is None:
            LOGGER.info("No transcription backend configured; skipping analysis")
            return None, None

        def compute() -> Tuple[TranscriptionResult, SpeechMetrics]:
            result = self.transcription.transcribe(recording, self.language_code)
            metrics = self.analyzer.analyze(result, audio_duration=recording.duration_seconds)
            return result, metrics

        return self.cache.get_or_compute(recording, compute)

    def record_progress(
        self,
        user_id: str,
        metrics: SpeechMetrics,
        session_id: Optional[str] = None,
    ) -> Tuple[UserMetrics, List[Achievement]]:
        """Aggregate ``metrics`` and award achievements, retrying lost writes."""

        for attempt in range(1, self.max_retries + 1):
            user_metrics, version = self.store.load_user_metrics(user_id)
            updated = self.aggregator.record_session(user_metrics, metrics, session_id=session_id)
            if updated is user_metrics:
                return user_metrics, []
            updated, granted = self.evaluator.award(updated)
            try:
                self.store.save_user_metrics(updated, version)
            except AggregationConflict:
                if attempt >= self.max_retries:
                    raise
                LOGGER.info("Retrying progress update for %s (attempt %s)", user_id, attempt + 1)
                continue
            return updated, granted
        raise AggregationConflict(user_id, -1)  # pragma: no cover - loop always returns or raises

    def _persist_recording(self, session_id: str, name: str, user_id: str, recording: EncodedAudio) -> PracticeSession:
        audio_path = write_wave(self.base_dir / session_id / "recording.wav", recording.data)
        session = PracticeSession(
            id=session_id,
            user_id=user_id,
            name=name,
            created_at=time.time(),
            duration=recording.duration_seconds,
            sample_rate=recording.sample_rate,
            channels=recording.channels,
            audio_path=audio_path,
        )
        self.store.save_session(session)
        LOGGER.info("Stored %.2fs recording for session %s at %s", session.duration, session_id, audio_path)
        return session

    def _analyze_and_track(self, outcome: RecordingOutcome, track: bool) -> RecordingOutcome:
        result, metrics = self.analyze_recording(outcome.recording)
        outcome.transcription = result
        outcome.metrics = metrics
        if metrics is None:
            return outcome

        outcome.session.metrics = metrics
        self.store.update_metrics(outcome.session.id, metrics)
        if track:
            outcome.user_metrics, outcome.new_achievements = self.record_progress(
                outcome.session.user_id,
                metrics,
                session_id=outcome.session.id,
            )
        return outcome


__all__ = [
    "CaptureUpdate",
    "CoachingOrchestrator",
    "RecordingControl",
    "RecordingOutcome",
    "RecordingRequest",
]
