"""Transcription services."""

from .base import TranscriptionService
from .dummy import DummyTranscriptionService

__all__ = ["TranscriptionService", "DummyTranscriptionService"]

