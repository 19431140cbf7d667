"""SQLite storage helpers for practice sessions and user progress."""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import List, Optional, Tuple

from ..errors import AggregationConflict
from ..logging import get_logger
from .models import PracticeSession, SpeechMetrics, UserMetrics

LOGGER = get_logger(__name__)


class SessionStore:
    """Persistent storage built on SQLite.

    User metrics rows carry a ``version`` counter. ``save_user_metrics`` only
    succeeds when the stored version still matches the one the caller loaded,
    which serializes aggregation per user across processes.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.path)

    def initialize(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    created_at REAL NOT NULL,
                    duration REAL NOT NULL,
                    sample_rate INTEGER NOT NULL,
                    channels INTEGER NOT NULL,
                    audio_path TEXT,
                    metrics TEXT
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS user_metrics (
                    user_id TEXT PRIMARY KEY,
                    version INTEGER NOT NULL,
                    document TEXT NOT NULL
                )
                """
            )
            conn.commit()

    def save_session(self, session: PracticeSession) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO sessions (
                    id, user_id, name, created_at, duration, sample_rate, channels, audio_path, metrics
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    session.id,
                    session.user_id,
                    session.name,
                    session.created_at,
                    session.duration,
                    session.sample_rate,
                    session.channels,
                    str(session.audio_path) if session.audio_path else None,
                    json.dumps(session.metrics.to_record()) if session.metrics else None,
                ),
            )
            conn.commit()

    def update_metrics(self, session_id: str, metrics: SpeechMetrics) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE sessions SET metrics = ? WHERE id = ?",
                (json.dumps(metrics.to_record()), session_id),
            )
            conn.commit()

    def fetch_session(self, session_id: str) -> Optional[PracticeSession]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT id, user_id, name, created_at, duration, sample_rate, channels, audio_path, metrics "
                "FROM sessions WHERE id = ?",
                (session_id,),
            ).fetchone()
        if not row:
            return None
        return self._session_from_row(row)

    def list_sessions(self, user_id: str, limit: Optional[int] = None) -> List[PracticeSession]:
        """Return the user's sessions, newest first."""

        query = (
            "SELECT id, user_id, name, created_at, duration, sample_rate, channels, audio_path, metrics "
            "FROM sessions WHERE user_id = ? ORDER BY created_at DESC"
        )
        params: tuple = (user_id,)
        if limit is not None:
            query += " LIMIT ?"
            params = (user_id, int(limit))
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._session_from_row(row) for row in rows]

    def load_user_metrics(self, user_id: str) -> Tuple[UserMetrics, int]:
        """Return the stored metrics and their version, or a blank record at version 0."""

        with self._connect() as conn:
            row = conn.execute(
                "SELECT version, document FROM user_metrics WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        if not row:
            return UserMetrics(user_id=user_id), 0
        return UserMetrics.from_record(json.loads(row[1])), int(row[0])

    def save_user_metrics(self, metrics: UserMetrics, expected_version: int) -> int:
        """Write ``metrics`` if the stored version is still ``expected_version``.

        Returns the new version. Raises :class:`AggregationConflict` when
        another writer got there first.
        """

        document = json.dumps(metrics.to_record())
        new_version = expected_version + 1
        with self._connect() as conn:
            if expected_version == 0:
                cursor = conn.execute(
                    "INSERT OR IGNORE INTO user_metrics (user_id, version, document) VALUES (?, ?, ?)",
                    (metrics.user_id, new_version, document),
                )
            else:
                cursor = conn.execute(
                    "UPDATE user_metrics SET version = ?, document = ? WHERE user_id = ? AND version = ?",
                    (new_version, document, metrics.user_id, expected_version),
                )
            conn.commit()
        if cursor.rowcount != 1:
            LOGGER.warning("Conditional write for %s lost at version %s", metrics.user_id, expected_version)
            raise AggregationConflict(metrics.user_id, expected_version)
        return new_version

    @staticmethod
    def _session_from_row(row) -> PracticeSession:
        metrics = SpeechMetrics.from_record(json.loads(row[8])) if row[8] else None
        return PracticeSession(
            id=row[0],
            user_id=row[1],
            name=row[2],
            created_at=row[3],
            duration=row[4],
            sample_rate=row[5],
            channels=row[6],
            audio_path=Path(row[7]) if row[7] else None,
            metrics=metrics,
        )


__all__ = ["SessionStore"]
