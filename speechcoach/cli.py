"""Typer CLI entry point for speechcoach."""

from __future__ import annotations

import dataclasses
from datetime import datetime
from pathlib import Path
from typing import FrozenSet, List, Optional

import typer

from .config import (
    EnvironmentSettingError,
    clear_environment_setting,
    get_settings,
    list_environment_settings,
    update_environment_setting,
)
from .core.analysis.feedback import FeedbackGoal, generate_feedback, parse_goals
from .core.audio.base import AudioCapture, CaptureError, CaptureInfo
from .core.audio.sounddevice_backend import format_device_table, parse_device
from .core.pipeline.orchestrator import CaptureUpdate, CoachingOrchestrator, RecordingOutcome, RecordingRequest
from .core.progress.aggregator import SessionComparison, SessionMetricsAggregator, compare_sessions
from .data.models import PracticeSession, SpeechMetrics
from .data.storage import SessionStore
from .errors import SpeechCoachError
from .logging import configure_logging, get_logger
from .services.factory import ServiceConfigurationError, resolve_transcription_backend

app = typer.Typer(help="speechcoach practice recorder and delivery coach")
config_app = typer.Typer(help="Inspect and change persisted settings")
app.add_typer(config_app, name="config")
LOGGER = get_logger(__name__)
RECENT_SESSIONS = 5


def _build_capture(device: Optional[str], sample_rate: int, channels: int) -> AudioCapture:
    from .core.audio.sounddevice_backend import SoundDeviceCapture

    capture_info = CaptureInfo(name="microphone", sample_rate=sample_rate, channels=channels, device=device)
    try:
        return SoundDeviceCapture(
            info=capture_info,
            device=parse_device(device),
            block_size=get_settings().block_size,
        )
    except CaptureError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _get_transcription_backend(name: Optional[str]):
    try:
        return resolve_transcription_backend(name if name is not None else get_settings().transcription_backend)
    except ServiceConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _parse_goals(goals: Optional[List[str]]) -> List[FeedbackGoal]:
    try:
        return parse_goals(goals or [])
    except ValueError as exc:
        choices = ", ".join(goal.value for goal in FeedbackGoal)
        raise typer.BadParameter(f"Unknown goal; choose from {choices}") from exc


def _format_metrics(metrics: SpeechMetrics) -> str:
    pace = f"{metrics.words_per_minute:.0f} wpm" if metrics.words_per_minute is not None else "n/a"
    lines = [
        f"Words:        {metrics.word_count}",
        f"Pace:         {pace}",
        f"Fillers:      {metrics.filler_words.count} ({metrics.filler_word_percentage:.1f}%)",
        f"Clarity:      {metrics.clarity_score:.1f}/100",
        f"Pauses:       {len(metrics.pauses)}",
        f"Rapid words:  {len(metrics.rapid_words)}",
    ]
    for pause in metrics.pauses:
        lines.append(
            f"  pause {pause.duration_seconds:.1f}s between '{pause.word_before}' and '{pause.word_after}'"
        )
    return "\n".join(lines)


def _format_session_line(session: PracticeSession) -> str:
    started = datetime.fromtimestamp(session.created_at).strftime("%Y-%m-%d %H:%M")
    metrics = session.metrics
    if metrics is None:
        detail = "not analysed"
    else:
        pace = f"{metrics.words_per_minute:.0f} wpm" if metrics.words_per_minute is not None else "n/a"
        detail = f"{pace}, {metrics.filler_word_percentage:.1f}% fillers, clarity {metrics.clarity_score:.0f}"
    return f"  {started}  {session.name} ({session.duration:.0f}s): {detail}"


def _format_comparison(comparison: SessionComparison) -> str:
    verdict = "improving" if comparison.improvement else "needs work"
    return (
        f"Latest vs previous session: pace {comparison.words_per_minute.change:+.1f}%, "
        f"fillers {comparison.filler_word_percentage.change:+.1f}%, "
        f"clarity {comparison.clarity_score.change:+.1f}% ({verdict})"
    )


def _report_outcome(outcome: RecordingOutcome, goals: Optional[List[FeedbackGoal]] = None) -> None:
    typer.echo(f"Session saved at {outcome.session.id} ({outcome.session.duration:.1f}s)")
    if outcome.encoding_failed:
        typer.echo("Compression failed; stored the uncompressed recording instead.")
    if outcome.metrics is None:
        typer.echo("No transcription backend configured; metrics skipped.")
        return
    if outcome.transcription is not None and outcome.transcription.transcript:
        typer.echo(f"Transcript: {outcome.transcription.transcript}")
    typer.echo(_format_metrics(outcome.metrics))
    feedback = generate_feedback(outcome.metrics, goals or ())
    typer.echo("")
    typer.echo(feedback.full_text)
    for achievement in outcome.new_achievements:
        typer.echo(f"Achievement unlocked: {achievement.title} - {achievement.description}")


class _QualityReporter:
    """Echo quality warnings only when the set of issues changes."""

    def __init__(self) -> None:
        self._last: FrozenSet[str] = frozenset()

    def __call__(self, update: CaptureUpdate) -> None:
        for info in update.quality:
            issues = frozenset(issue.value for issue in info.issues)
            if issues == self._last:
                continue
            self._last = issues
            if issues:
                typer.echo(f"[{update.state.elapsed_seconds:6.1f}s] audio: {', '.join(sorted(issues))}", err=True)
            else:
                typer.echo(f"[{update.state.elapsed_seconds:6.1f}s] audio: ok", err=True)


@app.command()
def devices() -> None:
    """List available audio input devices."""

    configure_logging()
    try:
        typer.echo(format_device_table())
    except CaptureError as exc:
        raise typer.BadParameter(str(exc)) from exc


@app.command()
def record(
    name: str = typer.Argument("practice", help="Session name"),
    mic_device: Optional[str] = typer.Option(None, help="Input device id/name for microphone"),
    duration: Optional[float] = typer.Option(None, help="Maximum duration in seconds; Ctrl+C stops early"),
    user: Optional[str] = typer.Option(None, help="User id to track progress for"),
    transcription_backend: Optional[str] = typer.Option(None, help="Transcription backend: none/dummy/openai"),
    track: bool = typer.Option(True, "--track/--no-track", help="Fold the session into progress statistics"),
    goal: Optional[List[str]] = typer.Option(
        None, "--goal", help="Coaching focus to prioritise: pace/fillers/clarity/confidence (repeatable)"
    ),
    sample_rate: Optional[int] = typer.Option(None, help="Override sample rate"),
    channels: Optional[int] = typer.Option(None, help="Override number of channels"),
) -> None:
    """Record a practice session and analyse it."""

    configure_logging()
    goals = _parse_goals(goal)
    settings = get_settings()
    capture = _build_capture(
        mic_device or settings.default_mic_device,
        sample_rate or settings.sample_rate,
        channels or settings.channels,
    )
    orchestrator = CoachingOrchestrator(transcription=_get_transcription_backend(transcription_backend))
    if duration is not None:
        if duration <= 0:
            raise typer.BadParameter("duration must be positive")
        orchestrator.capture_config = dataclasses.replace(orchestrator.capture_config, max_duration=duration)

    typer.echo(f"Recording up to {orchestrator.capture_config.max_duration:.0f}s; press Ctrl+C to stop.")
    request = RecordingRequest(name=name, capture=capture, user_id=user, track_progress=track)
    try:
        outcome = orchestrator.record(request, on_update=_QualityReporter())
    except SpeechCoachError as exc:
        typer.echo(f"Recording failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    _report_outcome(outcome, goals)


@app.command()
def analyze(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="16-bit PCM WAV file"),
    name: Optional[str] = typer.Option(None, help="Session name; defaults to the file name"),
    user: Optional[str] = typer.Option(None, help="User id to track progress for"),
    transcription_backend: Optional[str] = typer.Option(None, help="Transcription backend: dummy/openai"),
    track: bool = typer.Option(True, "--track/--no-track", help="Fold the session into progress statistics"),
    goal: Optional[List[str]] = typer.Option(
        None, "--goal", help="Coaching focus to prioritise: pace/fillers/clarity/confidence (repeatable)"
    ),
) -> None:
    """Analyse an existing recording."""

    configure_logging()
    goals = _parse_goals(goal)
    orchestrator = CoachingOrchestrator(transcription=_get_transcription_backend(transcription_backend))
    try:
        outcome = orchestrator.import_recording(path, name=name, user_id=user, track_progress=track)
    except SpeechCoachError as exc:
        typer.echo(f"Analysis failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    _report_outcome(outcome, goals)


@app.command()
def progress(user: Optional[str] = typer.Option(None, help="User id; defaults to the configured user")) -> None:
    """Show weekly trends and achievements."""

    configure_logging()
    settings = get_settings()
    store = SessionStore(settings.database_path)
    store.initialize()
    user_metrics, _ = store.load_user_metrics(user or settings.default_user_id)
    if user_metrics.session_count == 0:
        typer.echo("No sessions recorded yet.")
        return

    summary = SessionMetricsAggregator().summarize_progress(user_metrics)
    typer.echo(f"Sessions: {summary.total_sessions}  Practice time: {summary.total_practicing_minutes} min")
    typer.echo(
        f"Pace:    {summary.words_per_minute.current:.0f} wpm (prev {summary.words_per_minute.previous:.0f}, "
        f"{summary.words_per_minute.change:+.0f}%)"
    )
    typer.echo(
        f"Fillers: {summary.filler_word_percentage.current:.2f}% (prev {summary.filler_word_percentage.previous:.2f}%, "
        f"{summary.filler_word_percentage.change:+.2f}%)"
    )
    typer.echo(
        f"Clarity: {summary.clarity_score.current:.0f} (prev {summary.clarity_score.previous:.0f}, "
        f"{summary.clarity_score.change:+.0f}%)"
    )
    for point in summary.weekly:
        typer.echo(
            f"  {point.label:>8}: {point.words_per_minute:6.1f} wpm  {point.filler_word_percentage:5.1f}% fillers  "
            f"clarity {point.clarity_score:5.1f}  ({point.total_sessions} session(s))"
        )
    recent = store.list_sessions(user_metrics.user_id, limit=RECENT_SESSIONS)
    if recent:
        typer.echo("Recent sessions:")
        for session in recent:
            typer.echo(_format_session_line(session))
    analysed = [session.metrics for session in recent if session.metrics is not None]
    if len(analysed) >= 2:
        typer.echo(_format_comparison(compare_sessions(analysed[0], analysed[1])))
    if user_metrics.achievements:
        typer.echo("Achievements:")
        for achievement in user_metrics.achievements:
            typer.echo(f"  {achievement.title}: {achievement.description}")


@config_app.command("list")
def config_list() -> None:
    """Show every setting with its environment variable."""

    for setting in list_environment_settings():
        typer.echo(f"{setting.env_name}={setting.value}  (default: {setting.default})")


@config_app.command("set")
def config_set(field: str = typer.Argument(...), value: str = typer.Argument(...)) -> None:
    """Persist an override into the .env file."""

    try:
        settings = update_environment_setting(field, value)
    except EnvironmentSettingError as exc:
        raise typer.BadParameter(str(exc)) from exc
    typer.echo(f"{field} = {getattr(settings, field)}")


@config_app.command("unset")
def config_unset(field: str = typer.Argument(...)) -> None:
    """Remove an override from the .env file."""

    try:
        settings = clear_environment_setting(field)
    except EnvironmentSettingError as exc:
        raise typer.BadParameter(str(exc)) from exc
    typer.echo(f"{field} = {getattr(settings, field)}")


if __name__ == "__main__":  # pragma: no cover
    app()
