import logging
import threading
from typing import Optional

import numpy as np

from voice_input.audio.buffer import SampleBuffer
from voice_input.errors import NoInputDevice, UnsupportedFormat

logger = logging.getLogger(__name__)


def _load_sounddevice():
    # sounddevice raises OSError at import time when the PortAudio library is missing
    try:
        import sounddevice
    except OSError as e:
        raise NoInputDevice(f"Audio backend unavailable: {e}") from e
    return sounddevice


class CaptureSession:
    """Records the default input device into an exclusively owned mono buffer.

    ``start()`` opens the device at its native rate and channel count,
    ``stop()`` tears the stream down synchronously and hands off a snapshot.
    """

    def __init__(self, backend=None, blocksize: int = 0):
        self._backend = backend
        self.blocksize = blocksize
        self.buffer = SampleBuffer()
        self.stream = None
        self.device_info: Optional[dict] = None
        self.sample_rate = 0
        self.channels = 0
        self._lock = threading.Lock()

    @property
    def backend(self):
        if self._backend is None:
            self._backend = _load_sounddevice()
        return self._backend

    @property
    def is_active(self) -> bool:
        return self.stream is not None

    def find_input_device(self) -> dict:
        """Return the system's default input device description."""
        sd = self.backend
        try:
            info = sd.query_devices(kind="input")
        except (sd.PortAudioError, ValueError) as e:
            raise NoInputDevice(f"No input device available: {e}") from e

        if not info or int(info.get("max_input_channels", 0)) < 1:
            raise NoInputDevice("No input device available")
        logger.info("Default input device: %s", info.get("name"))
        return dict(info)

    def _callback(self, indata, frames, time_info, status):
        """Callback for the input stream; runs on the audio thread."""
        if status:
            logger.warning("Audio stream status: %s", status)

        audio_data = np.asarray(indata, dtype=np.float32)
        if audio_data.ndim > 1:
            if audio_data.shape[1] > 1:
                # Downmix to mono: average channels
                audio_data = audio_data.mean(axis=1)
            else:
                audio_data = audio_data[:, 0]

        self.buffer.write(audio_data)

    def start(self):
        sd = self.backend
        with self._lock:
            if self.stream is not None:
                raise RuntimeError("Capture already running")

            self.device_info = self.find_input_device()
            self.sample_rate = int(self.device_info["default_samplerate"])
            self.channels = int(self.device_info["max_input_channels"])

            try:
                sd.check_input_settings(
                    device=self.device_info.get("index"),
                    channels=self.channels,
                    dtype="float32",
                    samplerate=self.sample_rate,
                )
            except (sd.PortAudioError, ValueError) as e:
                raise UnsupportedFormat(
                    f"Input device '{self.device_info.get('name')}' cannot be captured as float32: {e}"
                ) from e

            self.buffer.clear()
            logger.info("Starting capture: %d Hz, %d channel(s)", self.sample_rate, self.channels)

            try:
                stream = sd.InputStream(
                    device=self.device_info.get("index"),
                    samplerate=self.sample_rate,
                    channels=self.channels,
                    dtype="float32",
                    blocksize=self.blocksize,
                    callback=self._callback,
                )
            except sd.PortAudioError as e:
                raise NoInputDevice(f"Failed to open input stream: {e}") from e

            try:
                stream.start()
            except sd.PortAudioError as e:
                stream.close()
                raise NoInputDevice(f"Failed to start input stream: {e}") from e
            self.stream = stream

    def stop(self) -> np.ndarray:
        """Stop capture and return every sample recorded since ``start()``."""
        with self._lock:
            stream = self.stream
            self.stream = None
            if stream is not None:
                # stop() returns only after the last callback has finished
                stream.stop()
                stream.close()
            samples = self.buffer.take()

        logger.info("Capture stopped: %d samples at %d Hz", len(samples), self.sample_rate)
        return samples

    def get_sample_rate(self) -> int:
        return self.sample_rate
