"""Audio capture package."""

from .base import AudioCapture, CaptureError, CaptureInfo
from .postprocess import AudioPostProcessor, EncodedAudio
from .quality import AudioQualityMonitor, QualityInfo, QualityIssue, QualityThresholds
from .session import AudioCaptureSession, CaptureConfig, RecordingState, RecordingStatus, VisualizationFrame

__all__ = [
    "AudioCapture",
    "AudioCaptureSession",
    "AudioPostProcessor",
    "AudioQualityMonitor",
    "CaptureConfig",
    "CaptureError",
    "CaptureInfo",
    "EncodedAudio",
    "QualityInfo",
    "QualityIssue",
    "QualityThresholds",
    "RecordingState",
    "RecordingStatus",
    "VisualizationFrame",
]
