from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional
import numpy as np


class Phase(str, Enum):
    RESAMPLING = "resampling"
    SEGMENTING = "segmenting"
    TRANSCRIBING = "transcribing"
    REFINING = "refining"
    DELIVERING = "delivering"


class SessionStatus(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    PROCESSING = "processing"


@dataclass(frozen=True)
class SessionState:
    status: SessionStatus = SessionStatus.IDLE
    phase: Optional[Phase] = None  # only set while PROCESSING

    @classmethod
    def idle(cls) -> "SessionState":
        return cls(SessionStatus.IDLE)

    @classmethod
    def recording(cls) -> "SessionState":
        return cls(SessionStatus.RECORDING)

    @classmethod
    def processing(cls, phase: Phase) -> "SessionState":
        return cls(SessionStatus.PROCESSING, phase)

    def __str__(self) -> str:
        if self.phase is not None:
            return f"{self.status.value}:{self.phase.value}"
        return self.status.value


class SpeechLabel(str, Enum):
    SPEECH = "speech"
    NON_SPEECH = "non_speech"


class OutputMode(str, Enum):
    CLIPBOARD_ONLY = "clipboard_only"   # copy, no paste
    DIRECT_INPUT = "direct_input"       # paste, then restore previous clipboard
    BOTH = "both"                       # copy and paste


@dataclass(frozen=True)
class AudioSnapshot:
    samples: np.ndarray  # PCM float32 mono
    sample_rate: int

    @property
    def duration_s(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return len(self.samples) / self.sample_rate


@dataclass
class RefinementOutcome:
    text: str
    refined: bool
    error: Optional[str] = None


@dataclass
class SessionEvent:
    kind: str
    payload: Any = None


# Event names, in the order a full cycle emits them
RECORDING_STARTED = "recording-started"
RECORDING_STOPPED = "recording-stopped"
TRANSCRIPTION_STARTED = "transcription-started"
LLM_REFINEMENT_STARTED = "llm-refinement-started"
LLM_REFINEMENT_COMPLETE = "llm-refinement-complete"
LLM_REFINEMENT_FAILED = "llm-refinement-failed"
TRANSCRIPTION_COMPLETE = "transcription-complete"

PHASE_STARTED = "phase-started"
PHASE_COMPLETED = "phase-completed"
PHASE_FAILED = "phase-failed"
SESSION_FAILED = "session-failed"
MODEL_LOADING = "model-loading"
MODEL_LOADED = "model-loaded"


@dataclass
class LogEntry:
    id: str
    timestamp: datetime           # UTC
    raw_text: str
    refined_text: Optional[str] = None
    audio_duration_secs: Optional[float] = None
    llm_used: bool = False
    prompt_preset: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "raw_text": self.raw_text,
            "refined_text": self.refined_text,
            "audio_duration_secs": self.audio_duration_secs,
            "llm_used": self.llm_used,
            "prompt_preset": self.prompt_preset,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LogEntry":
        return cls(
            id=str(data["id"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            raw_text=data.get("raw_text", ""),
            refined_text=data.get("refined_text"),
            audio_duration_secs=data.get("audio_duration_secs"),
            llm_used=bool(data.get("llm_used", False)),
            prompt_preset=data.get("prompt_preset"),
        )
