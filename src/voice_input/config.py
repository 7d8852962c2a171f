from dataclasses import dataclass
import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "on")


def _env_float(name: str) -> float | None:
    value = os.getenv(name)
    return float(value) if value else None


@dataclass
class Config:
    # --- VAD ---
    vad_model_path: str | None = os.getenv("VAD_MODEL_PATH", None)
    vad_backend: str = os.getenv("VAD_BACKEND", "silero" if os.getenv("VAD_MODEL_PATH") else "energy")
    vad_rms_threshold: float = float(os.getenv("VAD_RMS_THRESHOLD", "0.01"))

    # --- ASR ---
    asr_model: str = os.getenv("ASR_MODEL", "large-v3-turbo")
    asr_device: str = os.getenv("ASR_DEVICE", "auto")
    asr_compute_type: str = os.getenv("ASR_COMPUTE_TYPE", "default")
    asr_language: str | None = os.getenv("ASR_LANGUAGE", None)
    asr_beam_size: int = int(os.getenv("ASR_BEAM_SIZE", "1"))  # greedy

    # --- Refinement ---
    refine_enabled: bool = _env_bool("REFINE_ENABLED", "false")
    refine_provider: str = os.getenv("REFINE_PROVIDER", "ollama")  # ollama | openai
    refine_url: str = os.getenv("REFINE_URL", "http://localhost:11434")
    refine_model: str = os.getenv("REFINE_MODEL", "gpt-oss:20b")
    refine_preset: str = os.getenv("REFINE_PRESET", "default")
    refine_custom_prompt: str = os.getenv("REFINE_CUSTOM_PROMPT", "")
    refine_timeout_s: float | None = _env_float("REFINE_TIMEOUT_S")  # None = wait forever

    # --- Output ---
    output_mode: str = os.getenv("OUTPUT_MODE", "direct_input")  # clipboard_only | direct_input | both

    # --- Hotkeys ---
    hotkey_toggle: str = os.getenv("HOTKEY_TOGGLE", "Ctrl+Space")

    # --- Storage / logging ---
    data_dir: str | None = os.getenv("VOICE_INPUT_DATA_DIR", os.getenv("APPDATA", None))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

# Global instance
cfg = Config()
