from pathlib import Path

import numpy as np
import pytest

from speechcoach.errors import UnsupportedFormat
from speechcoach.utils.audio import (
    WAV_HEADER_BYTES,
    as_frames,
    decode_wav,
    encode_wav,
    ensure_mono,
    read_wave,
    resample,
    write_wave,
)


def test_as_frames_reshapes_interleaved_samples() -> None:
    interleaved = np.array([1, 2, 3, 4, 5, 6], dtype=np.int16)

    frames = as_frames(interleaved, 2)

    assert frames.shape == (3, 2)
    assert frames[:, 0].tolist() == [1, 3, 5]


@pytest.mark.parametrize("channels", [0, -1])
def test_as_frames_rejects_non_positive_channels(channels: int) -> None:
    with pytest.raises(UnsupportedFormat):
        as_frames(np.ones(4, dtype=np.int16), channels)


def test_as_frames_rejects_empty_and_ragged_input() -> None:
    with pytest.raises(UnsupportedFormat):
        as_frames(np.zeros(0, dtype=np.int16), 1)
    with pytest.raises(UnsupportedFormat):
        as_frames(np.ones(5, dtype=np.int16), 2)


def test_ensure_mono_averages_channels() -> None:
    stereo = np.array([[100, 300], [-200, 200], [1, 2]], dtype=np.int16)

    mono = ensure_mono(stereo)

    assert mono.shape == (3, 1)
    assert mono.dtype == np.int16
    assert mono[:, 0].tolist() == [200, 0, 2]


def test_resample_changes_length_and_keeps_dtype() -> None:
    t = np.linspace(0, 1, 44_100, endpoint=False)
    tone = np.round(np.sin(2 * np.pi * 440 * t) * 10_000).astype(np.int16).reshape(-1, 1)

    resampled = resample(tone, 44_100, 22_050)

    assert resampled.shape == (22_050, 1)
    assert resampled.dtype == np.int16
    assert np.abs(resampled).max() <= 10_000


def test_resample_same_rate_is_identity() -> None:
    data = np.arange(10, dtype=np.int16).reshape(-1, 1)

    assert resample(data, 16_000, 16_000) is data


def test_encode_wav_writes_canonical_header() -> None:
    data = np.arange(100, dtype=np.int16).reshape(-1, 1)

    payload = encode_wav(data, 22_050)

    assert len(payload) == WAV_HEADER_BYTES + 100 * 2
    assert payload[:4] == b"RIFF"
    assert payload[8:12] == b"WAVE"
    decoded, sample_rate = decode_wav(payload)
    assert sample_rate == 22_050
    assert decoded[:, 0].tolist() == list(range(100))


def test_decode_wav_rejects_garbage() -> None:
    with pytest.raises(UnsupportedFormat):
        decode_wav(b"definitely not a wav file")


def test_write_and_read_wave(tmp_path: Path) -> None:
    data = np.array([[0, 1], [2, 3]], dtype=np.int16)

    path = write_wave(tmp_path / "nested" / "clip.wav", encode_wav(data, 8_000))
    decoded, sample_rate = read_wave(path)

    assert sample_rate == 8_000
    assert decoded.shape == (2, 2)
    assert decoded.tolist() == [[0, 1], [2, 3]]
