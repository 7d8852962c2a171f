import logging
import threading
from typing import Optional, Protocol

import numpy as np
from faster_whisper import WhisperModel

from voice_input.config import cfg
from voice_input.errors import TranscriptionError

logger = logging.getLogger(__name__)

# Model names accepted by initialize_engine, with an approximate download size
AVAILABLE_MODELS = {
    "large-v3-turbo": "~1.6GB (recommended)",
    "large-v3": "~3GB",
    "medium": "~1.5GB",
    "small": "~500MB",
    "base": "~150MB",
    "tiny": "~75MB",
}


class TranscriptionEngine(Protocol):
    @property
    def is_loaded(self) -> bool: ...

    def transcribe(self, samples: np.ndarray) -> str: ...


class WhisperTranscriber:
    """faster-whisper transcription of a complete 16 kHz utterance."""

    def __init__(
        self,
        model_name: Optional[str] = None,
        device: Optional[str] = None,
        compute_type: Optional[str] = None,
        language: Optional[str] = None,
        beam_size: Optional[int] = None,
    ):
        self.model_name = model_name or cfg.asr_model
        self.device = device or cfg.asr_device
        self.compute_type = compute_type or cfg.asr_compute_type
        self.language = language if language is not None else cfg.asr_language
        self.beam_size = beam_size or cfg.asr_beam_size
        self.model: Optional[WhisperModel] = None
        # CTranslate2 models are not safe for concurrent transcribe calls
        self._lock = threading.Lock()

    @property
    def is_loaded(self) -> bool:
        return self.model is not None

    def load(self):
        logger.info("Loading Whisper model: %s on %s (%s)...", self.model_name, self.device, self.compute_type)
        try:
            self.model = WhisperModel(
                self.model_name,
                device=self.device,
                compute_type=self.compute_type,
            )
        except Exception as e:
            raise TranscriptionError(f"Failed to load Whisper model '{self.model_name}': {e}") from e
        logger.info("Model loaded.")

    def transcribe(self, samples: np.ndarray) -> str:
        if self.model is None:
            raise TranscriptionError("Whisper model is not loaded")

        audio = np.asarray(samples, dtype=np.float32)
        logger.info("Starting transcription for %d samples", len(audio))

        with self._lock:
            try:
                segments, info = self.model.transcribe(
                    audio,
                    language=self.language,
                    task="transcribe",
                    beam_size=self.beam_size,
                    temperature=0.0,
                    vad_filter=False,  # segmentation already done upstream
                    condition_on_previous_text=False,
                )
                # segments is a lazy generator; decoding happens here
                texts = [seg.text.strip() for seg in segments]
            except Exception as e:
                raise TranscriptionError(f"Failed to transcribe: {e}") from e

        result = "\n".join(t for t in texts if t).strip()
        logger.info("Transcription complete. Segments: %d, language: %s", len(texts), info.language)
        return result
