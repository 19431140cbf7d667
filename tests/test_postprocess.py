import numpy as np
import pytest

from speechcoach.core.audio.postprocess import AudioPostProcessor, EncodedAudio
from speechcoach.errors import UnsupportedFormat
from speechcoach.utils.audio import WAV_HEADER_BYTES, decode_wav


def _stereo_tone(sample_rate: int, seconds: float = 1.0) -> np.ndarray:
    t = np.linspace(0, seconds, int(sample_rate * seconds), endpoint=False)
    left = np.sin(2 * np.pi * 220 * t) * 8_000
    right = np.sin(2 * np.pi * 330 * t) * 8_000
    return np.round(np.stack([left, right], axis=1)).astype(np.int16)


def test_process_downmixes_and_resamples() -> None:
    processor = AudioPostProcessor()

    encoded = processor.process(_stereo_tone(44_100), 44_100, 2)

    assert encoded.sample_rate == 22_050
    assert encoded.channels == 1
    assert encoded.mime_type == "audio/wav"
    assert encoded.size == WAV_HEADER_BYTES + 22_050 * 2
    assert encoded.duration_seconds == pytest.approx(1.0)
    data, sample_rate = decode_wav(encoded.data)
    assert sample_rate == 22_050
    assert data.shape == (22_050, 1)


def test_process_accepts_interleaved_input() -> None:
    processor = AudioPostProcessor(target_sample_rate=8_000)
    interleaved = np.array([100, 300, -100, -300] * 2_000, dtype=np.int16)

    encoded = processor.process(interleaved, 8_000, 2)

    data, _ = decode_wav(encoded.data)
    assert data.shape == (4_000, 1)
    assert data[:2, 0].tolist() == [200, -200]


def test_processing_canonical_output_is_a_no_op() -> None:
    processor = AudioPostProcessor()
    first = processor.process(_stereo_tone(48_000, 0.5), 48_000, 2)

    second = processor.process_encoded(first)

    assert second.data == first.data
    assert second.sample_rate == first.sample_rate


def test_process_without_compression_keeps_original_format() -> None:
    processor = AudioPostProcessor(compress=False)
    samples = _stereo_tone(44_100, 0.1)

    encoded = processor.process(samples, 44_100, 2)

    assert encoded.sample_rate == 44_100
    assert encoded.channels == 2
    data, _ = decode_wav(encoded.data)
    assert np.array_equal(data, samples)


@pytest.mark.parametrize("channels", [0, -2])
def test_process_rejects_invalid_channel_count(channels: int) -> None:
    with pytest.raises(UnsupportedFormat):
        AudioPostProcessor().process(np.ones(10, dtype=np.int16), 44_100, channels)


def test_process_rejects_empty_input() -> None:
    with pytest.raises(UnsupportedFormat):
        AudioPostProcessor().process(np.zeros((0, 1), dtype=np.int16), 44_100, 1)


def test_encoded_audio_reports_frames() -> None:
    audio = EncodedAudio(data=b"\x00" * (WAV_HEADER_BYTES + 400), sample_rate=100, channels=2)

    assert audio.frame_count == 100
    assert audio.duration_seconds == pytest.approx(1.0)
