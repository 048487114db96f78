"""
bpmsense - Energy Tracker
Reduces each spectral magnitude frame to one bass-weighted energy value and
keeps a short rolling history of it.
"""

from collections import deque
from typing import Optional

import numpy as np

from config import TempoConfig


def spectral_energy(frame, low_freq_fraction: float = 0.3,
                    expected_bins: Optional[int] = None) -> float:
    """Mean squared normalized magnitude over the lowest bins of a frame.

    Magnitudes are 8-bit values (0-255). Only the lowest ``low_freq_fraction``
    of the bins is used, which biases the result toward kick/bass content.
    Returns 0.0 for empty or too-short frames.
    """
    if frame is None:
        return 0.0

    if isinstance(frame, (bytes, bytearray, memoryview)):
        spectrum = np.frombuffer(frame, dtype=np.uint8).astype(np.float64)
    else:
        try:
            spectrum = np.asarray(frame, dtype=np.float64).ravel()
        except (TypeError, ValueError):
            return 0.0
    if expected_bins is not None:
        spectrum = spectrum[:min(int(expected_bins), len(spectrum))]

    low_bins = int(len(spectrum) * low_freq_fraction)
    if low_bins <= 0:
        return 0.0

    band = np.nan_to_num(spectrum[:low_bins], nan=0.0, posinf=255.0, neginf=0.0)
    normalized = np.clip(band, 0.0, 255.0) / 255.0
    return float(np.sum(normalized * normalized) / low_bins)


class EnergyTracker:
    """Rolling history of per-frame bass energy (bounded, oldest evicted)."""

    def __init__(self, config: TempoConfig):
        self.config = config
        self.capacity = config.resolved_energy_window()
        self.history: deque[float] = deque(maxlen=self.capacity)

    def update(self, frame) -> float:
        energy = spectral_energy(frame, self.config.low_freq_fraction,
                                 self.config.expected_bins)
        self.history.append(energy)
        return energy

    def recent(self, count: int) -> list[float]:
        """Last ``count`` samples (fewer if the history is shorter)."""
        if count <= 0:
            return []
        return list(self.history)[-count:]

    @property
    def previous(self) -> float:
        """Sample before the most recent one (0.0 when unavailable)."""
        if len(self.history) < 2:
            return 0.0
        return self.history[-2]

    def __len__(self) -> int:
        return len(self.history)

    def reset(self) -> None:
        self.history.clear()
