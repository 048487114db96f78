from collections import deque

from config import TempoConfig


class StabilityTracker:
    """Scores how consistent the recent fused BPM estimates have been.

    Stability = 1 - (max relative deviation from the mean) / stability_threshold,
    floored at 0, over the last ``stability_window`` nonzero estimates.
    """

    def __init__(self, config: TempoConfig):
        self.config = config
        self.history: deque[float] = deque(maxlen=config.bpm_history_size)

    def update(self, bpm: float) -> float:
        if bpm > 0:
            self.history.append(bpm)
        return self.stability()

    def stability(self) -> float:
        cfg = self.config
        if len(self.history) < cfg.min_stability_entries:
            return 0.0

        recent = list(self.history)[-cfg.stability_window:]
        mean_bpm = sum(recent) / len(recent)
        if mean_bpm <= 0:
            return 0.0

        max_deviation = max(abs(bpm - mean_bpm) / mean_bpm for bpm in recent)
        return max(0.0, min(1.0, 1.0 - max_deviation / cfg.stability_threshold))

    def reset(self) -> None:
        self.history.clear()
