"""
bpmsense - Onset Detector
Flags sharp rises in bass energy against a dynamic threshold and keeps a
bounded history of onset timestamps for tempo estimation.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from config import TempoConfig


@dataclass
class OnsetDetection:
    """Onsets accepted on one frame (at most one with the default settings)"""
    onsets: list[float] = field(default_factory=list)       # Timestamps (s)
    confidences: list[float] = field(default_factory=list)  # 0.0-1.0, parallel to onsets
    average_interval: float = 0.0                           # Mean gap across the onset history (s)


def average_interval(onsets: Sequence[float]) -> float:
    """Mean consecutive-onset gap, 0.0 with fewer than two onsets."""
    if len(onsets) < 2:
        return 0.0
    return float(np.mean(np.diff(np.asarray(onsets, dtype=np.float64))))


class OnsetDetector:
    """
    Energy-rise onset detector.

    An onset fires when the current energy exceeds the mean of the last few
    energy samples times ``energy_threshold``, the energy is rising relative
    to the previous frame, and at least ``min_onset_interval`` seconds have
    passed since the last accepted onset (time 0 before the first one).
    """

    def __init__(self, config: TempoConfig):
        self.config = config
        self.last_onset_time: float = 0.0
        self.history: deque[float] = deque(maxlen=config.onset_history_size)

    def detect(self, energy_history: Sequence[float], energy: float,
               current_time: float) -> OnsetDetection:
        """Check the newest energy sample (already appended to
        ``energy_history``) for an onset at ``current_time``."""
        cfg = self.config
        result = OnsetDetection()

        if len(energy_history) < cfg.min_energy_samples:
            return result

        recent = list(energy_history)[-cfg.threshold_window:]
        mean_energy = float(sum(recent) / len(recent))
        threshold = mean_energy * cfg.energy_threshold

        energy_increase = energy - energy_history[-2]

        if energy > threshold and energy_increase > 0:
            if current_time - self.last_onset_time >= cfg.min_onset_interval:
                confidence = min(1.0, energy_increase / mean_energy) if mean_energy > 0 else 0.0
                result.onsets.append(current_time)
                result.confidences.append(confidence)
                self.last_onset_time = current_time
                self.history.append(current_time)

        result.average_interval = average_interval(self.history)
        return result

    def reset(self) -> None:
        self.last_onset_time = 0.0
        self.history.clear()
