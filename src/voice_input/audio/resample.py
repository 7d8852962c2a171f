"""Deterministic sample-rate conversion to the transcription rate."""

import logging
from math import gcd

import numpy as np
import scipy.signal

from voice_input.errors import ResampleError

logger = logging.getLogger(__name__)

TARGET_RATE = 16000

# Windowed-sinc design, fixed for reproducible output
SINC_ZERO_CROSSINGS = 32    # per side, in units of the lower Nyquist period
SINC_CUTOFF = 0.95          # fraction of the lower Nyquist frequency
SINC_WINDOW = "blackmanharris"


def _design_filter(up: int, down: int) -> np.ndarray:
    """Low-pass FIR for the polyphase stage.

    The filter runs at ``up`` times the source rate, so ``up`` is the
    oversampling factor of the sinc table.
    """
    max_rate = max(up, down)
    half_len = SINC_ZERO_CROSSINGS * max_rate
    return scipy.signal.firwin(2 * half_len + 1, SINC_CUTOFF / max_rate, window=SINC_WINDOW)


class Resampler:
    def __init__(self, target_rate: int = TARGET_RATE):
        self.target_rate = target_rate
        self._filters: dict[tuple[int, int], np.ndarray] = {}

    def resample(self, samples: np.ndarray, source_rate: int, target_rate: int | None = None) -> np.ndarray:
        """Convert ``samples`` from ``source_rate`` to the target rate.

        Equal rates return the input object as-is. Output length is
        ``ceil(len(samples) * target / source)``.
        """
        if target_rate is None:
            target_rate = self.target_rate

        if source_rate <= 0 or target_rate <= 0:
            raise ResampleError(f"Invalid sample rates: {source_rate} -> {target_rate}")

        if source_rate == target_rate:
            return samples

        data = np.asarray(samples, dtype=np.float32)
        if data.ndim != 1:
            raise ResampleError(f"Expected mono samples, got shape {data.shape}")
        if data.size == 0:
            raise ResampleError("Cannot resample empty input")

        divisor = gcd(source_rate, target_rate)
        up = target_rate // divisor
        down = source_rate // divisor

        key = (up, down)
        if key not in self._filters:
            self._filters[key] = _design_filter(up, down)

        try:
            out = scipy.signal.resample_poly(data, up, down, window=self._filters[key])
        except ValueError as e:
            raise ResampleError(f"Resampling {source_rate} -> {target_rate} failed: {e}") from e

        logger.debug("Resampled %d samples at %d Hz to %d samples at %d Hz",
                     data.size, source_rate, out.size, target_rate)
        return out.astype(np.float32, copy=False)


def resample(samples: np.ndarray, source_rate: int, target_rate: int = TARGET_RATE) -> np.ndarray:
    return Resampler(target_rate).resample(samples, source_rate)
