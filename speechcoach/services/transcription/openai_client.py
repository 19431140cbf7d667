"""OpenAI powered transcription service."""

from __future__ import annotations

import math
import time
from typing import Any, Dict, List, Optional

from ...config import get_settings
from ...core.audio.postprocess import EncodedAudio
from ...data.models import TranscriptionResult, WordTiming
from ...logging import get_logger
from .base import TranscriptionService

LOGGER = get_logger(__name__)


class OpenAITranscriptionService(TranscriptionService):
    def __init__(self, model: Optional[str] = None) -> None:
        settings = get_settings()
        self.model = model or settings.openai_transcription_model
        try:
            from openai import OpenAI, OpenAIError  # type: ignore
        except ImportError as exc:  # pragma: no cover - runtime dependency guard
            raise RuntimeError("openai package is required for OpenAITranscriptionService") from exc
        client_kwargs = {}
        if settings.openai_api_key:
            client_kwargs["api_key"] = settings.openai_api_key

        try:
            self.client = OpenAI(**client_kwargs)
            self._openai_error_cls = OpenAIError
        except OpenAIError as exc:
            message = str(exc)
            if "api_key" in message.lower():
                raise RuntimeError(
                    "OpenAI API key not configured. Set the OPENAI_API_KEY environment variable "
                    "or configure SPEECHCOACH_OPENAI_API_KEY with `speechcoach config set`."
                ) from exc
            raise RuntimeError(f"Failed to initialise OpenAI transcription client: {message}") from exc

    def transcribe(self, audio: EncodedAudio, language_code: Optional[str] = None) -> TranscriptionResult:
        LOGGER.info("Requesting OpenAI transcription for %s byte recording", audio.size)
        started = time.perf_counter()
        response: Any = None
        formats = self._candidate_response_formats()
        for index, response_format in enumerate(formats):
            request: Dict[str, Any] = {
                "model": self.model,
                "file": ("recording.wav", audio.data, audio.mime_type),
                "response_format": response_format,
            }
            if response_format == "verbose_json":
                request["timestamp_granularities"] = ["word", "segment"]
            language = self._language(language_code)
            if language:
                request["language"] = language
            try:
                response = self.client.audio.transcriptions.create(**request)
                break
            except self._openai_error_cls as exc:
                if self._is_response_format_error(exc) and index < len(formats) - 1:
                    LOGGER.info(
                        "Response format '%s' is not supported by model '%s'; retrying with '%s'",
                        response_format,
                        self.model,
                        formats[index + 1],
                    )
                    continue
                raise

        result = self._parse_transcription_response(response)
        result.language_code = language_code
        result.processing_time_ms = (time.perf_counter() - started) * 1000.0
        if not result.word_timings:
            LOGGER.info("Transcription for model '%s' returned no word timings", self.model)
        return result

    def _candidate_response_formats(self) -> List[str]:
        return ["verbose_json", "json", "text"]

    def _is_response_format_error(self, exc: Exception) -> bool:
        message = str(getattr(exc, "message", None) or exc)
        return "response_format" in message and "unsupported" in message.lower()

    @staticmethod
    def _language(language_code: Optional[str]) -> Optional[str]:
        if not language_code:
            return None
        return language_code.split("-")[0].lower() or None

    def _parse_transcription_response(self, response: Any) -> TranscriptionResult:
        if response is None:
            return TranscriptionResult()

        data: Optional[Dict[str, Any]] = None
        if isinstance(response, dict):
            data = response
        elif hasattr(response, "model_dump"):
            try:
                data = response.model_dump()
            except Exception:  # pragma: no cover - best effort parsing
                LOGGER.debug("Failed to dump transcription response", exc_info=True)
                data = None
        elif isinstance(response, str):
            text = response.strip()
            return TranscriptionResult(
                transcript=text,
                confidence=1.0 if text else 0.0,
                raw_response={"text": text} if text else None,
            )

        if data is None:
            text = str(getattr(response, "text", "") or "").strip()
            return TranscriptionResult(transcript=text, confidence=1.0 if text else 0.0)

        text = str(data.get("text", "") or "").strip()
        words: List[WordTiming] = []
        for item in data.get("words") or []:
            word = str(self._field(item, "word") or "").strip()
            start = self._field(item, "start")
            end = self._field(item, "end")
            if not word or start is None or end is None:
                continue
            words.append(WordTiming(word=word, start_time=float(start), end_time=float(end)))

        return TranscriptionResult(
            transcript=text,
            confidence=self._confidence(data.get("segments") or [], text),
            word_timings=words,
            raw_response=data,
        )

    @staticmethod
    def _field(item: Any, name: str) -> Any:
        if isinstance(item, dict):
            return item.get(name)
        return getattr(item, name, None)

    def _confidence(self, segments: List[Any], text: str) -> float:
        """Mean per-segment probability derived from ``avg_logprob``."""

        probabilities = []
        for segment in segments:
            logprob = self._field(segment, "avg_logprob")
            if logprob is None:
                continue
            probabilities.append(min(1.0, math.exp(float(logprob))))
        if probabilities:
            return sum(probabilities) / len(probabilities)
        return 1.0 if text else 0.0


__all__ = ["OpenAITranscriptionService"]
