import logging
from pathlib import Path
from typing import List, Protocol

import numpy as np
import onnxruntime

from voice_input.config import cfg
from voice_input.errors import SegmentationError
from voice_input.models import SpeechLabel

logger = logging.getLogger(__name__)

SAMPLE_RATE = 16000
CHUNK_SIZE = 512                # 32 ms at 16 kHz
SPEECH_THRESHOLD = 0.5
PADDING_CHUNKS = 3              # ~96 ms kept before and after each speech run
SPEECH_FRACTION_BYPASS = 0.8    # above this, the audio is returned untrimmed


class SpeechProbabilityModel(Protocol):
    def reset(self) -> None: ...

    def __call__(self, chunk: np.ndarray) -> float: ...


class EnergyVad:
    """RMS energy as a speech probability.

    A chunk whose RMS equals ``rms_threshold`` maps to 0.5.
    """

    def __init__(self, rms_threshold: float = 0.01):
        self.rms_threshold = rms_threshold

    def reset(self):
        pass

    def __call__(self, chunk: np.ndarray) -> float:
        rms = float(np.sqrt(np.mean(np.square(chunk, dtype=np.float64))))
        return min(1.0, rms / (2.0 * self.rms_threshold))


class SileroVad:
    """Silero VAD (v5 ONNX export) run through onnxruntime."""

    CONTEXT_SIZE = 64

    def __init__(self, model_path: str | Path, sample_rate: int = SAMPLE_RATE):
        model_path = Path(model_path)
        if not model_path.exists():
            raise SegmentationError(f"Silero VAD model not found: {model_path}")

        opts = onnxruntime.SessionOptions()
        opts.inter_op_num_threads = 1
        opts.intra_op_num_threads = 1
        try:
            self.session = onnxruntime.InferenceSession(
                str(model_path), sess_options=opts, providers=["CPUExecutionProvider"]
            )
        except Exception as e:
            raise SegmentationError(f"Failed to load Silero VAD: {e}") from e

        self.sample_rate = np.array(sample_rate, dtype=np.int64)
        self.reset()

    def reset(self):
        self._state = np.zeros((2, 1, 128), dtype=np.float32)
        self._context = np.zeros(self.CONTEXT_SIZE, dtype=np.float32)

    def __call__(self, chunk: np.ndarray) -> float:
        x = np.concatenate((self._context, chunk.astype(np.float32, copy=False)))[np.newaxis, :]
        out, self._state = self.session.run(
            None, {"input": x, "state": self._state, "sr": self.sample_rate}
        )
        self._context = x[0, -self.CONTEXT_SIZE:]
        return float(out[0][0])


def create_model(backend: str | None = None) -> SpeechProbabilityModel:
    backend = (backend or cfg.vad_backend).lower()
    if backend == "silero":
        if not cfg.vad_model_path:
            raise SegmentationError("VAD_BACKEND=silero requires VAD_MODEL_PATH")
        return SileroVad(cfg.vad_model_path)
    if backend == "energy":
        return EnergyVad(cfg.vad_rms_threshold)
    raise SegmentationError(f"Unknown VAD backend: {backend}")


class SpeechSegmenter:
    def __init__(self, model: SpeechProbabilityModel | None = None):
        self.model = model if model is not None else create_model()
        logger.info("VAD initialized: %d Hz, %d samples/chunk, model=%s",
                    SAMPLE_RATE, CHUNK_SIZE, type(self.model).__name__)

    def _chunks(self, samples: np.ndarray):
        for start in range(0, len(samples), CHUNK_SIZE):
            yield samples[start:start + CHUNK_SIZE]

    def label(self, samples: np.ndarray) -> List[SpeechLabel]:
        """Classify each chunk, then widen speech runs by PADDING_CHUNKS."""
        self.model.reset()

        raw: List[bool] = []
        for chunk in self._chunks(samples):
            if len(chunk) < CHUNK_SIZE:
                # Trailing partial chunk is classified zero-padded
                chunk = np.pad(chunk, (0, CHUNK_SIZE - len(chunk)))
            try:
                prob = self.model(chunk)
            except Exception as e:
                raise SegmentationError(f"VAD model failed: {e}") from e
            raw.append(prob > SPEECH_THRESHOLD)

        n = len(raw)
        padded = [False] * n
        for i, is_speech in enumerate(raw):
            if is_speech:
                for j in range(max(0, i - PADDING_CHUNKS), min(n, i + PADDING_CHUNKS + 1)):
                    padded[j] = True

        return [SpeechLabel.SPEECH if s else SpeechLabel.NON_SPEECH for s in padded]

    def extract_speech(self, samples: np.ndarray) -> np.ndarray:
        """Return ``samples`` with non-speech chunks removed.

        Input shorter than one chunk and mostly-speech input come back
        unchanged. Input with no speech at all comes back empty.
        """
        samples = np.asarray(samples, dtype=np.float32)
        if len(samples) < CHUNK_SIZE:
            logger.warning("Audio too short for VAD processing, returning as-is")
            return samples

        labels = self.label(samples)
        total_chunks = len(labels)
        speech_chunks = sum(1 for lbl in labels if lbl is SpeechLabel.SPEECH)
        ratio = speech_chunks / total_chunks

        if ratio > SPEECH_FRACTION_BYPASS:
            logger.info("VAD: %d/%d chunks contain speech (>%d%%), using original audio",
                        speech_chunks, total_chunks, int(SPEECH_FRACTION_BYPASS * 100))
            return samples

        if speech_chunks == 0:
            logger.info("VAD: No speech detected in %d chunks", total_chunks)
            return np.zeros(0, dtype=np.float32)

        kept = [chunk for chunk, lbl in zip(self._chunks(samples), labels) if lbl is SpeechLabel.SPEECH]
        speech = np.concatenate(kept)
        logger.info("VAD: %d/%d chunks contain speech (%.1f%%), output %d samples",
                    speech_chunks, total_chunks, ratio * 100.0, len(speech))
        return speech
