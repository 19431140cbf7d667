"""Audio processing utilities."""

from __future__ import annotations

import io
import wave
from pathlib import Path
from typing import Tuple

import numpy as np

from ..errors import UnsupportedFormat

WAV_HEADER_BYTES = 44
PCM_SAMPLE_WIDTH = 2


def as_frames(samples: np.ndarray, channels: int) -> np.ndarray:
    """Return ``samples`` shaped ``(frames, channels)``.

    Accepts either interleaved 1-D data or an already framed 2-D array.
    """

    if channels <= 0:
        raise UnsupportedFormat(f"Channel count must be positive, got {channels}")
    data = np.asarray(samples)
    if data.size == 0:
        raise UnsupportedFormat("Sample data is empty")
    if data.ndim == 1:
        if data.shape[0] % channels:
            raise UnsupportedFormat(
                f"{data.shape[0]} interleaved samples do not divide into {channels} channels"
            )
        return data.reshape(-1, channels)
    if data.ndim == 2 and data.shape[1] == channels:
        return data
    raise UnsupportedFormat(f"Unexpected sample layout {data.shape} for {channels} channel(s)")


def to_int16(data: np.ndarray) -> np.ndarray:
    """Convert float or integer PCM to int16 without changing int16 input."""

    if data.dtype == np.int16:
        return data
    if np.issubdtype(data.dtype, np.floating):
        clipped = np.clip(data, -1.0, 1.0)
        return np.round(clipped * 32767.0).astype(np.int16)
    return np.clip(data, -32768, 32767).astype(np.int16)


def ensure_mono(data: np.ndarray) -> np.ndarray:
    """Downmix ``(frames, channels)`` PCM to a single averaged channel."""

    if data.ndim == 1 or data.shape[1] == 1:
        return data.reshape(-1, 1)
    mixed = data.astype(np.float64).mean(axis=1, keepdims=True)
    if np.issubdtype(data.dtype, np.integer):
        return np.round(mixed).astype(data.dtype)
    return mixed.astype(data.dtype)


def resample(data: np.ndarray, sr: int, target_sr: int) -> np.ndarray:
    """Linearly resample mono ``(frames, 1)`` PCM from ``sr`` to ``target_sr``."""

    if sr <= 0 or target_sr <= 0:
        raise UnsupportedFormat(f"Invalid sample rate conversion {sr} -> {target_sr}")
    if sr == target_sr:
        return data
    mono = data[:, 0]
    length = mono.shape[0]
    if length == 0:
        return mono.reshape(0, 1)
    target_length = max(int(round(length * target_sr / sr)), 1)
    if target_length == 1:
        return np.full((1, 1), mono[0], dtype=data.dtype)
    original_positions = np.linspace(0, length - 1, num=length)
    target_positions = np.linspace(0, length - 1, num=target_length)
    resampled = np.interp(target_positions, original_positions, mono.astype(np.float64))
    if np.issubdtype(data.dtype, np.integer):
        resampled = np.round(resampled)
    return resampled.astype(data.dtype).reshape(-1, 1)


def encode_wav(data: np.ndarray, sample_rate: int) -> bytes:
    """Encode ``(frames, channels)`` PCM as a canonical 16-bit WAV container."""

    if data.ndim == 1:
        data = data[:, np.newaxis]
    pcm = to_int16(data)
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wf:
        wf.setnchannels(pcm.shape[1])
        wf.setsampwidth(PCM_SAMPLE_WIDTH)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm.astype("<i2").tobytes())
    return buffer.getvalue()


def decode_wav(payload: bytes) -> Tuple[np.ndarray, int]:
    """Decode a 16-bit PCM WAV container into int16 ``(frames, channels)``."""

    try:
        with wave.open(io.BytesIO(payload), "rb") as wf:
            channels = wf.getnchannels()
            sample_width = wf.getsampwidth()
            sample_rate = wf.getframerate()
            frames = wf.readframes(wf.getnframes())
    except (wave.Error, EOFError) as exc:
        raise UnsupportedFormat(f"Not a PCM WAV container: {exc}") from exc
    if sample_width != PCM_SAMPLE_WIDTH:
        raise UnsupportedFormat(f"Only 16-bit PCM is supported, got {sample_width * 8}-bit")
    data = np.frombuffer(frames, dtype="<i2").astype(np.int16)
    return data.reshape(-1, channels), sample_rate


def read_wave(path: Path) -> Tuple[np.ndarray, int]:
    return decode_wav(Path(path).read_bytes())


def write_wave(path: Path, payload: bytes) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(payload)
    return path


__all__ = [
    "WAV_HEADER_BYTES",
    "as_frames",
    "decode_wav",
    "encode_wav",
    "ensure_mono",
    "read_wave",
    "resample",
    "to_int16",
    "write_wave",
]
