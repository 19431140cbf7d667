"""Data models used by speechcoach."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Record(BaseModel):
    """Base for records exchanged with the persistence layer.

    Attributes are snake_case in Python and camelCase on the wire so stored
    documents keep the field names other clients already read
    (``wordsPerMinute``, ``weeklyProgress`` ...).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_record(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_record(cls, data: dict):
        return cls.model_validate(data)


class WordTiming(Record):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    word: str
    start_time: float
    end_time: float
    confidence: Optional[float] = None


class TranscriptionResult(Record):
    """Response of the external transcription collaborator."""

    transcript: str = ""
    confidence: float = 0.0
    word_timings: List[WordTiming] = Field(default_factory=list)
    alternatives: List[str] = Field(default_factory=list)
    language_code: Optional[str] = None
    processing_time_ms: float = 0.0
    raw_response: Optional[dict] = None

    @property
    def is_empty(self) -> bool:
        return not self.transcript.strip() and not self.word_timings


class FillerOccurrence(Record):
    word: str
    timestamp: Optional[float] = None


class FillerWordStats(Record):
    count: int = 0
    percentage: float = 0.0
    occurrences: List[FillerOccurrence] = Field(default_factory=list)


class Pause(Record):
    start_time: float
    end_time: float
    duration_seconds: float
    word_before: str
    word_after: str


class RapidWord(Record):
    word: str
    start_time: float
    end_time: float
    words_per_minute: float


class Sentence(Record):
    text: str
    start_time: float
    end_time: float
    words_per_minute: Optional[float] = None


class SpeechMetrics(Record):
    """Per-session delivery metrics, immutable once produced."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    transcript: str = ""
    confidence: float = 0.0
    duration_seconds: float = 0.0
    word_count: int = 0
    words_per_minute: Optional[float] = None
    filler_words: FillerWordStats = Field(default_factory=FillerWordStats)
    clarity_score: float = 0.0
    pauses: List[Pause] = Field(default_factory=list)
    rapid_words: List[RapidWord] = Field(default_factory=list)
    sentences: List[Sentence] = Field(default_factory=list)
    processing_time_ms: float = 0.0
    analysis_timestamp: datetime = Field(default_factory=_utcnow)

    @property
    def filler_word_percentage(self) -> float:
        return self.filler_words.percentage


class WeeklyAggregate(Record):
    words_per_minute: float = 0.0
    filler_word_percentage: float = 0.0
    clarity_score: float = 0.0
    total_sessions: int = Field(default=0, ge=0)


class Achievement(Record):
    id: str
    title: str
    description: str
    achieved_at: datetime = Field(default_factory=_utcnow)


class UserMetrics(Record):
    user_id: str
    session_count: int = Field(default=0, ge=0)
    total_speaking_time: float = 0.0
    avg_words_per_minute: float = 0.0
    avg_filler_word_percentage: float = 0.0
    avg_clarity_score: float = 0.0
    last_updated: Optional[datetime] = None
    weekly_progress: Dict[str, WeeklyAggregate] = Field(default_factory=dict)
    achievements: List[Achievement] = Field(default_factory=list)
    recorded_session_ids: List[str] = Field(default_factory=list)

    @property
    def achievement_ids(self) -> List[str]:
        return [achievement.id for achievement in self.achievements]


@dataclass
class PracticeSession:
    id: str
    user_id: str
    name: str
    created_at: float
    duration: float
    sample_rate: int
    channels: int
    audio_path: Optional[Path] = None
    metrics: Optional[SpeechMetrics] = None


__all__ = [
    "Achievement",
    "FillerOccurrence",
    "FillerWordStats",
    "Pause",
    "PracticeSession",
    "RapidWord",
    "Record",
    "Sentence",
    "SpeechMetrics",
    "TranscriptionResult",
    "UserMetrics",
    "WeeklyAggregate",
    "WordTiming",
]
