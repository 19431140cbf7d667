"""Error taxonomy shared by the capture, encoding, and progress layers."""

from __future__ import annotations


class SpeechCoachError(RuntimeError):
    """Base class for all engine errors."""


class DeviceUnavailable(SpeechCoachError):
    """Raised when the audio input device cannot be opened."""


class InvalidStateTransition(SpeechCoachError):
    """Raised when a capture session is driven from the wrong state."""

    def __init__(self, action: str, status: str) -> None:
        super().__init__(f"Cannot {action} while capture session is {status}")
        self.action = action
        self.status = status


class EncodingError(SpeechCoachError):
    """Raised when post-processing cannot produce a valid container."""


class UnsupportedFormat(SpeechCoachError, ValueError):
    """Raised when the post-processor receives malformed audio."""


class AggregationConflict(SpeechCoachError):
    """Raised when a concurrent writer updated the user aggregate first."""

    def __init__(self, user_id: str, expected_version: int) -> None:
        super().__init__(
            f"User metrics for {user_id} changed since version {expected_version}; retry the update"
        )
        self.user_id = user_id
        self.expected_version = expected_version


__all__ = [
    "AggregationConflict",
    "DeviceUnavailable",
    "EncodingError",
    "InvalidStateTransition",
    "SpeechCoachError",
    "UnsupportedFormat",
]
