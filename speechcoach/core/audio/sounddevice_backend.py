"""Audio capture implementation powered by sounddevice/PortAudio."""

from __future__ import annotations

import contextlib
import queue
from typing import List, Optional

import numpy as np

from .base import AudioCapture, CaptureError, CaptureInfo
from ...logging import get_logger

LOGGER = get_logger(__name__)

_FALLBACK_SAMPLE_RATES = (48_000, 44_100, 32_000, 24_000, 22_050, 16_000)


def _import_sounddevice():
    try:
        import sounddevice as sd
    except (ImportError, OSError) as exc:  # pragma: no cover - depends on PortAudio install
        raise CaptureError("sounddevice dependency is required for capture") from exc
    return sd


def parse_device(device: Optional[str]) -> Optional[int | str]:
    if device is None:
        return None
    if device.isdigit():
        return int(device)
    return device


class SoundDeviceCapture(AudioCapture):
    """Microphone capture stream using the sounddevice library."""

    def __init__(
        self,
        info: CaptureInfo,
        device: Optional[int | str] = None,
        block_size: int = 1024,
    ) -> None:
        self._sd = _import_sounddevice()
        self.info = info
        self._device = device
        self._block_size = block_size
        self._queue: queue.Queue[np.ndarray] = queue.Queue()
        self._stream = None
        self._device_info: Optional[dict] = None

    def _callback(self, indata, frames, time_info, status) -> None:  # pragma: no cover - executed in runtime
        if status:
            LOGGER.warning("sounddevice status: %s", status)
        self._queue.put(indata.copy())

    def start(self) -> None:
        if self._stream is not None:
            return
        LOGGER.info("Starting sounddevice capture for %s using device %s", self.info.name, self._device)

        last_error: Optional[Exception] = None
        requested_sample_rate = int(self.info.sample_rate)
        channels = self._resolve_channels()

        for sample_rate in self._resolve_sample_rate_candidates():
            try:
                stream = self._sd.InputStream(
                    samplerate=sample_rate,
                    channels=channels,
                    dtype="int16",
                    blocksize=self._block_size,
                    device=self._device,
                    callback=self._callback,
                )
                stream.start()
            except self._sd.PortAudioError as exc:  # pragma: no cover - depends on runtime device
                last_error = exc
                if "sample rate" in str(exc).lower():
                    LOGGER.warning("sounddevice rejected %s Hz on %s: %s", sample_rate, self._device, exc)
                    continue
                raise CaptureError(str(exc)) from exc

            self._stream = stream
            self.info.channels = channels
            if sample_rate != requested_sample_rate:
                LOGGER.warning(
                    "Adjusted sample rate for %s from %s Hz to %s Hz",
                    self.info.name,
                    requested_sample_rate,
                    sample_rate,
                )
            self.info.sample_rate = sample_rate
            return

        message = f"Failed to open audio stream for {self.info.name} on {self._device}"
        if last_error is not None:
            message = f"{message} ({last_error})"
        raise CaptureError(message) from last_error

    def stop(self) -> None:
        if self._stream is not None:
            LOGGER.info("Stopping capture for %s", self.info.name)
            self._stream.stop()

    def close(self) -> None:
        if self._stream is not None:
            LOGGER.debug("Closing capture stream for %s", self.info.name)
            with contextlib.suppress(self._sd.PortAudioError):
                self._stream.close()
            self._stream = None
        while not self._queue.empty():
            try:
                self._queue.get_nowait()
            except queue.Empty:  # pragma: no cover - defensive
                break

    def read(self, timeout: Optional[float] = None) -> Optional[np.ndarray]:
        try:
            if timeout is None or timeout <= 0:
                return self._queue.get_nowait()
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def _resolve_channels(self) -> int:
        requested = int(self.info.channels) if self.info.channels else 1
        device_info = self._query_device_info()
        if not device_info:
            return max(requested, 1)
        max_channels = int(device_info.get("max_input_channels") or 0)
        if max_channels <= 0:
            raise CaptureError(f"Device {self._device} does not support input channels")
        if requested > max_channels:
            LOGGER.warning(
                "Requested %s channel(s) exceeds device capability (%s); using supported maximum",
                requested,
                max_channels,
            )
            return max_channels
        return max(requested, 1)

    def _resolve_sample_rate_candidates(self) -> List[int]:
        candidates: List[int] = []
        requested = int(self.info.sample_rate) if self.info.sample_rate else 0
        if requested > 0:
            candidates.append(requested)
        device_info = self._query_device_info()
        if device_info and device_info.get("default_samplerate"):
            default_rate = int(float(device_info["default_samplerate"]))
            if default_rate not in candidates:
                candidates.append(default_rate)
        candidates.extend(rate for rate in _FALLBACK_SAMPLE_RATES if rate not in candidates)
        return candidates

    def _query_device_info(self) -> Optional[dict]:
        if self._device_info is not None:
            return self._device_info
        try:  # pragma: no cover - depends on runtime availability
            self._device_info = self._sd.query_devices(self._device, "input")
        except (ValueError, self._sd.PortAudioError) as exc:  # pragma: no cover
            LOGGER.debug("Failed to query device info for %s: %s", self._device, exc)
            return None
        return self._device_info


def list_input_devices() -> List[dict]:
    """Return ``{index, name, channels, sample_rate}`` for every input device."""

    sd = _import_sounddevice()
    devices = []
    for index, device in enumerate(sd.query_devices()):
        channels = int(device.get("max_input_channels") or 0)
        if channels <= 0:
            continue
        devices.append(
            {
                "index": index,
                "name": str(device.get("name", "")),
                "channels": channels,
                "sample_rate": int(float(device.get("default_samplerate") or 0)),
            }
        )
    return devices


def format_device_table(devices: Optional[List[dict]] = None) -> str:
    devices = list_input_devices() if devices is None else devices
    if not devices:
        return "No input devices found."
    lines = [f"{'#':>3}  {'Channels':>8}  {'Rate':>6}  Name"]
    for device in devices:
        lines.append(
            f"{device['index']:>3}  {device['channels']:>8}  {device['sample_rate']:>6}  {device['name']}"
        )
    return "\n".join(lines)


__all__ = ["SoundDeviceCapture", "format_device_table", "list_input_devices", "parse_device"]
