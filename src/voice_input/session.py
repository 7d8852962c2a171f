"""Recording session state machine.

One ``SessionCoordinator`` per process drives a session through
capture -> resample -> segment -> transcribe -> refine -> deliver.

Locks are per field and are only held for short synchronous critical
sections, never across an ``await``:

- ``_state_lock`` guards the session state.
- ``_capture_lock`` guards the capture session and its device stream.
- ``_engine_lock`` guards the transcription engine reference.
- ``_segmenter_lock`` guards lazy creation of the speech segmenter.
- ``_output_lock`` serializes clipboard access.

Blocking work (DSP, model inference, HTTP, file writes) runs in worker
threads through ``asyncio.to_thread``.
"""

import asyncio
import logging
import threading
from typing import Callable, Optional, Tuple

import numpy as np

from voice_input.asr.engine import AVAILABLE_MODELS, TranscriptionEngine, WhisperTranscriber
from voice_input.audio.capture import CaptureSession
from voice_input.audio.resample import Resampler
from voice_input.audio.vad import SpeechSegmenter
from voice_input.config import Config, cfg
from voice_input.errors import (
    AlreadyRecording,
    DeliveryError,
    DeviceError,
    NoAudioCaptured,
    NotRecording,
    RefinementError,
    SegmentationError,
    TranscriptionError,
)
from voice_input.events import EventBus
from voice_input.log_store import TranscriptLog
from voice_input.models import (
    LLM_REFINEMENT_COMPLETE,
    LLM_REFINEMENT_FAILED,
    LLM_REFINEMENT_STARTED,
    MODEL_LOADED,
    MODEL_LOADING,
    PHASE_COMPLETED,
    PHASE_FAILED,
    PHASE_STARTED,
    RECORDING_STARTED,
    RECORDING_STOPPED,
    SESSION_FAILED,
    TRANSCRIPTION_COMPLETE,
    TRANSCRIPTION_STARTED,
    AudioSnapshot,
    OutputMode,
    Phase,
    RefinementOutcome,
    SessionState,
    SessionStatus,
)
from voice_input.output.dispatcher import OutputDispatcher
from voice_input.refine.client import RefinementClient
from voice_input.refine.presets import get_prompt_template, parse_preset

logger = logging.getLogger(__name__)

DEMO_MODE_TEXT = "[demo mode] Recorded {samples} samples of audio. Load a model to transcribe."


class SessionCoordinator:
    def __init__(
        self,
        capture: Optional[CaptureSession] = None,
        resampler: Optional[Resampler] = None,
        segmenter: Optional[SpeechSegmenter] = None,
        engine: Optional[TranscriptionEngine] = None,
        refiner: Optional[RefinementClient] = None,
        dispatcher: Optional[OutputDispatcher] = None,
        log_store: Optional[TranscriptLog] = None,
        events: Optional[EventBus] = None,
        settings: Optional[Config] = None,
        engine_factory: Callable[[str], TranscriptionEngine] = WhisperTranscriber,
    ):
        self.capture = capture or CaptureSession()
        self.resampler = resampler or Resampler()
        self.refiner = refiner
        self.dispatcher = dispatcher or OutputDispatcher()
        self.log_store = log_store
        self.events = events or EventBus()
        self.settings = settings or cfg
        self.engine_factory = engine_factory

        self._state = SessionState.idle()
        self._state_lock = threading.Lock()
        self._capture_lock = threading.Lock()
        self._engine = engine
        self._engine_lock = threading.Lock()
        self._segmenter = segmenter
        self._segmenter_lock = threading.Lock()
        self._output_lock = threading.Lock()

    # --- State ---

    @property
    def state(self) -> SessionState:
        with self._state_lock:
            return self._state

    def _set_state(self, state: SessionState):
        with self._state_lock:
            self._state = state
        logger.debug("Session state: %s", state)

    @property
    def engine(self) -> Optional[TranscriptionEngine]:
        with self._engine_lock:
            return self._engine

    # --- Commands ---

    async def start(self) -> str:
        with self._state_lock:
            if self._state.status is not SessionStatus.IDLE:
                raise AlreadyRecording(f"Already recording (state: {self._state})")
            with self._capture_lock:
                self.capture.start()
            self._state = SessionState.recording()

        logger.info("Recording started")
        self.events.emit(RECORDING_STARTED)
        return "Recording started"

    async def stop(self) -> str:
        snapshot = self._finish_recording()
        self.events.emit(RECORDING_STOPPED)
        logger.info("Recording stopped. Captured %d samples at %d Hz",
                    len(snapshot.samples), snapshot.sample_rate)

        if len(snapshot.samples) == 0:
            raise NoAudioCaptured("No audio data captured")

        try:
            text, delivery_error = await self._process(snapshot)
        except Exception as e:
            self._set_state(SessionState.idle())
            logger.error("Session failed: %s", e)
            self.events.emit(SESSION_FAILED, str(e))
            raise

        self._set_state(SessionState.idle())
        self.events.emit(TRANSCRIPTION_COMPLETE, text)
        if delivery_error is not None:
            raise delivery_error
        return text

    async def toggle(self) -> str:
        if self.state.status is SessionStatus.RECORDING:
            return await self.stop()
        return await self.start()

    async def initialize_engine(self, model_name: Optional[str] = None) -> str:
        name = model_name or self.settings.asr_model
        if name not in AVAILABLE_MODELS:
            raise TranscriptionError(f"Unknown model: {name}")

        self.events.emit(MODEL_LOADING, name)
        engine = self.engine_factory(name)
        await asyncio.to_thread(engine.load)
        with self._engine_lock:
            self._engine = engine

        logger.info("Transcription engine initialized: %s", name)
        self.events.emit(MODEL_LOADED, name)
        return name

    # --- Phase 1: hand-off, under lock ---

    def _finish_recording(self) -> AudioSnapshot:
        with self._state_lock:
            if self._state.status is not SessionStatus.RECORDING:
                raise NotRecording("Not recording")

            with self._capture_lock:
                try:
                    samples = self.capture.stop()
                except Exception as e:
                    self._state = SessionState.idle()
                    raise DeviceError(f"Failed to stop capture: {e}") from e
                sample_rate = self.capture.get_sample_rate()

            if len(samples) == 0:
                self._state = SessionState.idle()
            else:
                self._state = SessionState.processing(Phase.RESAMPLING)

        return AudioSnapshot(samples=samples, sample_rate=sample_rate)

    # --- Phases 2-4: no lock held across awaits ---

    async def _process(self, snapshot: AudioSnapshot) -> Tuple[str, Optional[DeliveryError]]:
        settings = self.settings

        resampled = await self._run_phase(
            Phase.RESAMPLING, self.resampler.resample, snapshot.samples, snapshot.sample_rate
        )
        logger.info("Resampled to %d samples", len(resampled))

        speech = await self._run_phase(Phase.SEGMENTING, self._segment, resampled)
        logger.info("After VAD: %d samples", len(speech))

        raw_text = await self._run_phase(
            Phase.TRANSCRIBING, self._transcribe, speech, announce=TRANSCRIPTION_STARTED
        )
        logger.info("Transcription result: %s", raw_text)

        preset = parse_preset(settings.refine_preset)
        if settings.refine_enabled:
            outcome = await self._refine(raw_text, get_prompt_template(preset, settings.refine_custom_prompt))
        else:
            outcome = RefinementOutcome(text=raw_text, refined=False)

        self._enter_phase(Phase.DELIVERING)
        await asyncio.to_thread(
            self._append_log,
            raw_text,
            outcome.text if settings.refine_enabled else None,
            snapshot.duration_s,
            settings.refine_enabled,
            preset.value if settings.refine_enabled else None,
        )

        delivery_error = None
        try:
            await asyncio.to_thread(self._deliver, outcome.text, self._output_mode())
        except DeliveryError as e:
            logger.error("Delivery failed: %s", e)
            self.events.emit(PHASE_FAILED, Phase.DELIVERING.value)
            delivery_error = e
        else:
            self.events.emit(PHASE_COMPLETED, Phase.DELIVERING.value)

        return outcome.text, delivery_error

    def _enter_phase(self, phase: Phase):
        self._set_state(SessionState.processing(phase))
        self.events.emit(PHASE_STARTED, phase.value)

    async def _run_phase(self, phase: Phase, func, *args, announce: Optional[str] = None):
        self._enter_phase(phase)
        if announce is not None:
            self.events.emit(announce)
        try:
            result = await asyncio.to_thread(func, *args)
        except Exception:
            self.events.emit(PHASE_FAILED, phase.value)
            raise
        self.events.emit(PHASE_COMPLETED, phase.value)
        return result

    def _get_segmenter(self) -> SpeechSegmenter:
        with self._segmenter_lock:
            if self._segmenter is None:
                self._segmenter = SpeechSegmenter()
            return self._segmenter

    def _segment(self, samples: np.ndarray) -> np.ndarray:
        try:
            extracted = self._get_segmenter().extract_speech(samples)
        except SegmentationError as e:
            logger.warning("VAD unavailable, using unfiltered audio: %s", e)
            return samples

        if len(extracted) == 0:
            # Silence and a missed detection look the same here; keep the audio
            logger.info("VAD detected no speech, using original audio")
            return samples
        return extracted

    def _transcribe(self, samples: np.ndarray) -> str:
        engine = self.engine
        if engine is None or not engine.is_loaded:
            logger.warning("Transcription engine not initialized, using demo mode")
            return DEMO_MODE_TEXT.format(samples=len(samples))

        try:
            return engine.transcribe(samples)
        except TranscriptionError:
            raise
        except Exception as e:
            raise TranscriptionError(f"Failed to transcribe: {e}") from e

    async def _refine(self, text: str, prompt_template: str) -> RefinementOutcome:
        self._enter_phase(Phase.REFINING)
        self.events.emit(LLM_REFINEMENT_STARTED)
        logger.info("LLM refinement enabled, preset: %s", self.settings.refine_preset)

        try:
            refiner = self.refiner or RefinementClient(
                base_url=self.settings.refine_url,
                model=self.settings.refine_model,
                provider=self.settings.refine_provider,
                timeout=self.settings.refine_timeout_s,
            )
            refined = await asyncio.to_thread(refiner.refine, text, prompt_template)
            if not refined:
                raise RefinementError("LLM returned empty text")
        except Exception as e:
            if not isinstance(e, RefinementError):
                e = RefinementError(f"Refinement failed: {e!r}")
            logger.warning("LLM refinement failed, using original text: %s", e)
            self.events.emit(LLM_REFINEMENT_FAILED, str(e))
            self.events.emit(PHASE_FAILED, Phase.REFINING.value)
            return RefinementOutcome(text=text, refined=False, error=str(e))

        logger.info("LLM refined: %s -> %s", text, refined)
        self.events.emit(LLM_REFINEMENT_COMPLETE, refined)
        self.events.emit(PHASE_COMPLETED, Phase.REFINING.value)
        return RefinementOutcome(text=refined, refined=True)

    def _append_log(self, raw_text, refined_text, duration_s, llm_used, preset_name):
        if self.log_store is None:
            return
        try:
            self.log_store.add_entry(
                raw_text,
                refined_text=refined_text,
                audio_duration_secs=duration_s,
                llm_used=llm_used,
                prompt_preset=preset_name,
            )
        except Exception as e:
            logger.warning("Failed to save log entry: %s", e)

    def _output_mode(self) -> OutputMode:
        try:
            return OutputMode(self.settings.output_mode)
        except ValueError:
            logger.warning("Unknown output mode %r, using direct_input", self.settings.output_mode)
            return OutputMode.DIRECT_INPUT

    def _deliver(self, text: str, mode: OutputMode):
        with self._output_lock:
            self.dispatcher.deliver(text, mode)
