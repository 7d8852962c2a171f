import math
import unittest
from unittest import mock

import numpy as np

from voice_input.audio import vad
from voice_input.audio.vad import CHUNK_SIZE, PADDING_CHUNKS, EnergyVad, SpeechSegmenter
from voice_input.errors import SegmentationError
from voice_input.models import SpeechLabel


class ScriptedVad:
    """Returns speech probability 1.0 for the listed chunk indexes."""

    def __init__(self, speech_chunks=(), always=None):
        self.speech_chunks = set(speech_chunks)
        self.always = always
        self.index = 0
        self.resets = 0

    def reset(self):
        self.index = 0
        self.resets += 1

    def __call__(self, chunk):
        i = self.index
        self.index += 1
        if self.always is not None:
            return self.always
        return 1.0 if i in self.speech_chunks else 0.0


class BrokenVad:
    def reset(self):
        pass

    def __call__(self, chunk):
        raise RuntimeError("onnx session died")


def tone(n_samples: int, amplitude: float = 0.5) -> np.ndarray:
    t = np.arange(n_samples) / 16000
    return (amplitude * np.sin(2 * math.pi * 220 * t)).astype(np.float32)


class TestSpeechSegmenter(unittest.TestCase):
    def test_silence_returns_empty(self):
        segmenter = SpeechSegmenter(EnergyVad())
        silence = np.zeros(CHUNK_SIZE * 10, dtype=np.float32)
        out = segmenter.extract_speech(silence)
        self.assertEqual(len(out), 0)

    def test_all_speech_returns_original(self):
        segmenter = SpeechSegmenter(ScriptedVad(always=1.0))
        samples = tone(CHUNK_SIZE * 20 + 100)
        out = segmenter.extract_speech(samples)
        self.assertIs(out, samples)

    def test_short_input_returned_unchanged(self):
        segmenter = SpeechSegmenter(ScriptedVad(always=0.0))
        samples = np.zeros(CHUNK_SIZE - 1, dtype=np.float32)
        self.assertIs(segmenter.extract_speech(samples), samples)
        self.assertEqual(segmenter.model.index, 0)

    def test_padding_grows_speech_runs(self):
        model = ScriptedVad(speech_chunks={10})
        segmenter = SpeechSegmenter(model)
        samples = np.arange(CHUNK_SIZE * 40, dtype=np.float32)

        labels = segmenter.label(samples)
        speech_idx = [i for i, lbl in enumerate(labels) if lbl is SpeechLabel.SPEECH]
        self.assertEqual(speech_idx, list(range(10 - PADDING_CHUNKS, 10 + PADDING_CHUNKS + 1)))

        out = segmenter.extract_speech(samples)
        self.assertEqual(len(out), (2 * PADDING_CHUNKS + 1) * CHUNK_SIZE)
        self.assertEqual(out[0], samples[(10 - PADDING_CHUNKS) * CHUNK_SIZE])
        self.assertEqual(out[-1], samples[(10 + PADDING_CHUNKS + 1) * CHUNK_SIZE - 1])

    def test_padding_clipped_at_edges(self):
        segmenter = SpeechSegmenter(ScriptedVad(speech_chunks={0, 19}))
        labels = segmenter.label(np.zeros(CHUNK_SIZE * 20, dtype=np.float32))
        speech_idx = [i for i, lbl in enumerate(labels) if lbl is SpeechLabel.SPEECH]
        self.assertEqual(speech_idx, [0, 1, 2, 3, 16, 17, 18, 19])

    def test_chunks_are_kept_in_order(self):
        segmenter = SpeechSegmenter(ScriptedVad(speech_chunks={5, 30}))
        samples = np.arange(CHUNK_SIZE * 40, dtype=np.float32)
        out = segmenter.extract_speech(samples)
        self.assertTrue(np.all(np.diff(out) > 0))

    def test_tone_between_silence_is_trimmed(self):
        segmenter = SpeechSegmenter(EnergyVad())
        silence = np.zeros(8000, dtype=np.float32)
        samples = np.concatenate([silence, tone(8000), silence])

        out = segmenter.extract_speech(samples)
        # Tone touches chunks 15..31, padded to 12..34
        self.assertEqual(len(out), 23 * CHUNK_SIZE)
        self.assertLess(len(out), len(samples))

    def test_model_state_reset_per_call(self):
        model = ScriptedVad(speech_chunks={2})
        segmenter = SpeechSegmenter(model)
        samples = np.zeros(CHUNK_SIZE * 20, dtype=np.float32)
        first = segmenter.extract_speech(samples)
        second = segmenter.extract_speech(samples)
        self.assertEqual(len(first), len(second))
        self.assertEqual(model.resets, 2)

    def test_model_failure_raises_segmentation_error(self):
        segmenter = SpeechSegmenter(BrokenVad())
        with self.assertRaises(SegmentationError):
            segmenter.extract_speech(np.zeros(CHUNK_SIZE * 4, dtype=np.float32))


class TestEnergyVad(unittest.TestCase):
    def test_threshold_maps_to_half(self):
        model = EnergyVad(rms_threshold=0.01)
        chunk = np.full(CHUNK_SIZE, 0.01, dtype=np.float32)
        self.assertAlmostEqual(model(chunk), 0.5, places=5)

    def test_loud_chunk_saturates(self):
        self.assertEqual(EnergyVad()(tone(CHUNK_SIZE)), 1.0)

    def test_silence_is_zero(self):
        self.assertEqual(EnergyVad()(np.zeros(CHUNK_SIZE, dtype=np.float32)), 0.0)


class TestCreateModel(unittest.TestCase):
    def test_energy_backend(self):
        self.assertIsInstance(vad.create_model("energy"), EnergyVad)

    def test_silero_requires_model_path(self):
        with mock.patch.object(vad.cfg, "vad_model_path", None):
            with self.assertRaises(SegmentationError):
                vad.create_model("silero")

    def test_silero_missing_file(self):
        with self.assertRaises(SegmentationError):
            vad.SileroVad("/nonexistent/silero_vad.onnx")

    def test_unknown_backend(self):
        with self.assertRaises(SegmentationError):
            vad.create_model("webrtc")


if __name__ == '__main__':
    unittest.main()
