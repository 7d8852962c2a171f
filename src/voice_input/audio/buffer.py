import numpy as np
import threading


class SampleBuffer:
    """Growable mono float32 buffer shared between the audio callback and its owner."""

    def __init__(self, dtype=np.float32):
        self.dtype = dtype
        self.blocks: list[np.ndarray] = []
        self.num_samples = 0
        self.lock = threading.Lock()

    def write(self, data: np.ndarray):
        """Append data to the buffer."""
        n_samples = len(data)
        if n_samples == 0:
            return

        # Copy: the callback's array is reused by the driver after we return
        block = np.array(data, dtype=self.dtype, copy=True)
        with self.lock:
            self.blocks.append(block)
            self.num_samples += n_samples

    def take(self) -> np.ndarray:
        """Return all samples and clear the buffer in one critical section."""
        with self.lock:
            data = self._concat()
            self.blocks = []
            self.num_samples = 0
            return data

    def clear(self):
        with self.lock:
            self.blocks = []
            self.num_samples = 0

    def __len__(self) -> int:
        with self.lock:
            return self.num_samples

    def _concat(self) -> np.ndarray:
        if not self.blocks:
            return np.zeros(0, dtype=self.dtype)
        return np.concatenate(self.blocks)
