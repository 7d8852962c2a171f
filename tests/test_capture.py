import threading
import unittest

import numpy as np

from voice_input.audio.buffer import SampleBuffer
from voice_input.audio.capture import CaptureSession
from voice_input.errors import NoInputDevice, UnsupportedFormat


class FakePortAudioError(Exception):
    pass


class FakeStream:
    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.callback = kwargs["callback"]
        self.started = False
        self.stopped = False
        self.closed = False

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def close(self):
        self.closed = True

    def feed(self, block):
        block = np.asarray(block, dtype=np.float32)
        self.callback(block, len(block), None, None)


class FakeSoundDevice:
    """Stands in for the sounddevice module."""

    PortAudioError = FakePortAudioError

    def __init__(self, channels=2, samplerate=48000.0, has_device=True, float32_ok=True):
        self.channels = channels
        self.samplerate = samplerate
        self.has_device = has_device
        self.float32_ok = float32_ok
        self.streams = []

    def query_devices(self, kind=None):
        if not self.has_device:
            raise FakePortAudioError("Error querying device -1")
        return {
            "name": "Fake Microphone",
            "index": 3,
            "max_input_channels": self.channels,
            "default_samplerate": self.samplerate,
        }

    def check_input_settings(self, device=None, channels=None, dtype=None, samplerate=None):
        if not self.float32_ok:
            raise FakePortAudioError("Invalid sample format")

    def InputStream(self, **kwargs):  # noqa: N802
        stream = FakeStream(**kwargs)
        self.streams.append(stream)
        return stream


class TestCaptureSession(unittest.TestCase):
    def test_start_opens_default_device_at_native_config(self):
        sd = FakeSoundDevice(channels=2, samplerate=44100.0)
        capture = CaptureSession(backend=sd)
        capture.start()

        self.assertTrue(capture.is_active)
        self.assertEqual(len(sd.streams), 1)
        stream = sd.streams[0]
        self.assertTrue(stream.started)
        self.assertEqual(stream.kwargs["samplerate"], 44100)
        self.assertEqual(stream.kwargs["channels"], 2)
        self.assertEqual(stream.kwargs["dtype"], "float32")
        self.assertEqual(stream.kwargs["device"], 3)
        self.assertEqual(capture.get_sample_rate(), 44100)

    def test_stereo_is_downmixed_in_order(self):
        sd = FakeSoundDevice(channels=2)
        capture = CaptureSession(backend=sd)
        capture.start()
        stream = sd.streams[0]

        stream.feed([[0.2, 0.4], [1.0, 0.0]])
        stream.feed([[-0.5, -0.5]])
        samples = capture.stop()

        np.testing.assert_allclose(samples, [0.3, 0.5, -0.5], rtol=1e-6)
        self.assertEqual(samples.dtype, np.float32)

    def test_mono_input(self):
        sd = FakeSoundDevice(channels=1)
        capture = CaptureSession(backend=sd)
        capture.start()
        sd.streams[0].feed([[0.1], [0.2], [0.3]])
        np.testing.assert_allclose(capture.stop(), [0.1, 0.2, 0.3], rtol=1e-6)

    def test_stop_tears_down_stream_and_clears_buffer(self):
        sd = FakeSoundDevice()
        capture = CaptureSession(backend=sd)
        capture.start()
        sd.streams[0].feed(np.ones((256, 2)))
        self.assertEqual(len(capture.stop()), 256)

        stream = sd.streams[0]
        self.assertTrue(stream.stopped)
        self.assertTrue(stream.closed)
        self.assertFalse(capture.is_active)
        self.assertEqual(len(capture.stop()), 0)

    def test_buffer_starts_empty_for_each_recording(self):
        sd = FakeSoundDevice(channels=1)
        capture = CaptureSession(backend=sd)
        capture.start()
        sd.streams[0].feed(np.ones((100, 1)))
        capture.stop()

        capture.start()
        sd.streams[1].feed(np.zeros((10, 1)))
        self.assertEqual(len(capture.stop()), 10)

    def test_no_device(self):
        capture = CaptureSession(backend=FakeSoundDevice(has_device=False))
        with self.assertRaises(NoInputDevice):
            capture.start()
        self.assertFalse(capture.is_active)

    def test_device_without_input_channels(self):
        capture = CaptureSession(backend=FakeSoundDevice(channels=0))
        with self.assertRaises(NoInputDevice):
            capture.start()

    def test_unsupported_format(self):
        sd = FakeSoundDevice(float32_ok=False)
        capture = CaptureSession(backend=sd)
        with self.assertRaises(UnsupportedFormat):
            capture.start()
        self.assertEqual(sd.streams, [])


class TestSampleBuffer(unittest.TestCase):
    def test_concurrent_writes_lose_nothing(self):
        buf = SampleBuffer()

        def writer():
            for _ in range(100):
                buf.write(np.ones(10, dtype=np.float32))

        threads = [threading.Thread(target=writer) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(len(buf), 4000)
        self.assertEqual(len(buf.take()), 4000)
        self.assertEqual(len(buf), 0)

    def test_write_copies_input(self):
        buf = SampleBuffer()
        block = np.array([1.0, 2.0], dtype=np.float32)
        buf.write(block)
        block[:] = 0.0
        np.testing.assert_array_equal(buf.take(), [1.0, 2.0])


if __name__ == '__main__':
    unittest.main()
