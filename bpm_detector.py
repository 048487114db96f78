"""
bpmsense - BPM Detector
Streaming tempo estimator fed one spectral magnitude frame per call.
Energy tracking -> onset detection -> dual-method tempo estimate ->
stability scoring, all from a frame-count based logical clock.
"""

from dataclasses import dataclass, field, replace
from typing import Optional

from config import Config, TempoConfig, apply_dict_to_dataclass, sanitize_tempo_config
from config_persistence import load_config
from energy_tracker import EnergyTracker
from logging_utils import log_event, set_log_level
from onset_detector import OnsetDetector
from stability_tracker import StabilityTracker
from tempo_estimator import TempoEstimate, TempoEstimator


@dataclass
class AnalysisResult:
    """Per-frame estimator output"""
    current_bpm: float = 0.0       # Fused tempo, 0.0 until an estimate exists
    confidence: float = 0.0        # 0.0-1.0
    onsets: list[float] = field(default_factory=list)             # Onsets detected THIS call (s)
    stability: float = 0.0         # 0.0-1.0, consistency of recent estimates
    onset_confidences: list[float] = field(default_factory=list)  # Parallel to onsets
    average_interval: float = 0.0  # Mean gap across the onset history (s)
    tempo_locked: bool = False     # Nonzero tempo with confidence above lock_confidence

    def to_dict(self) -> dict:
        """Payload in the shape consumed by display code."""
        return {
            "currentBPM": self.current_bpm,
            "confidence": self.confidence,
            "onsets": list(self.onsets),
            "stability": self.stability,
        }


def _sanitized_tempo(tempo) -> TempoConfig:
    """Sanitized private copy of the tempo settings; dicts are applied onto defaults."""
    if isinstance(tempo, TempoConfig):
        tempo = replace(tempo)
    else:
        source = tempo
        tempo = TempoConfig()
        if isinstance(source, dict):
            apply_dict_to_dataclass(tempo, source)
        elif source is not None:
            log_event("WARN", "Config", "Invalid tempo settings, using defaults",
                      type=type(source).__name__)
    sanitize_tempo_config(tempo)
    return tempo


class BPMDetector:
    """
    Real-time BPM estimator.

    Call ``process()`` once per analysis frame, in order, at the configured
    ``frame_rate``; time is derived from the call count, not the wall clock.
    Call ``reset()`` when the audio source changes or playback seeks.
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config if config is not None else Config()
        if config is not None:
            set_log_level(getattr(config, "log_level", "INFO"))
        tempo = _sanitized_tempo(getattr(self.config, "tempo", None))
        self.tempo_config = tempo

        self.energy = EnergyTracker(tempo)
        self.onset_detector = OnsetDetector(tempo)
        self.tempo_estimator = TempoEstimator(tempo)
        self.stability_tracker = StabilityTracker(tempo)

        self._frame_count: int = 0
        self._last_estimate = TempoEstimate()
        self._tempo_locked: bool = False
        self._reset_session_stats()

    @classmethod
    def from_saved_config(cls) -> "BPMDetector":
        """Detector configured from the persisted config file (defaults when missing)."""
        return cls(load_config())

    @property
    def frame_count(self) -> int:
        return self._frame_count

    @property
    def current_time(self) -> float:
        """Logical time of the last processed frame (s)."""
        return self._frame_count / self.tempo_config.frame_rate

    @property
    def onset_history(self) -> tuple[float, ...]:
        return tuple(self.onset_detector.history)

    @property
    def bpm_history(self) -> tuple[float, ...]:
        return tuple(self.stability_tracker.history)

    @property
    def last_estimate(self) -> TempoEstimate:
        """Fused estimate from the last call (stability = cross-method agreement)."""
        return self._last_estimate

    def process(self, frequency_data, time_domain_data=None,
                sample_rate: Optional[float] = None) -> AnalysisResult:
        """Analyse one frame of 8-bit spectral magnitudes.

        ``time_domain_data`` and ``sample_rate`` are accepted for interface
        compatibility with analyser callbacks and are not used.
        """
        self._frame_count += 1
        current_time = self.current_time

        energy = self.energy.update(frequency_data)
        detection = self.onset_detector.detect(self.energy.history, energy, current_time)

        estimate = self.tempo_estimator.estimate(self.onset_detector.history)
        self._last_estimate = estimate

        stability = self.stability_tracker.update(estimate.bpm)

        locked = estimate.bpm > 0 and estimate.confidence > self.tempo_config.lock_confidence
        self._update_lock_state(locked, estimate)
        self._update_session_stats(estimate.bpm, len(detection.onsets))

        return AnalysisResult(
            current_bpm=estimate.bpm,
            confidence=estimate.confidence,
            onsets=detection.onsets,
            stability=stability,
            onset_confidences=detection.confidences,
            average_interval=detection.average_interval,
            tempo_locked=locked,
        )

    def reset(self) -> None:
        """Clear every history and counter, as if freshly constructed."""
        self._log_session_summary()

        self.energy.reset()
        self.onset_detector.reset()
        self.stability_tracker.reset()
        self._frame_count = 0
        self._last_estimate = TempoEstimate()
        self._tempo_locked = False
        self._reset_session_stats()

    def _update_lock_state(self, locked: bool, estimate: TempoEstimate) -> None:
        if locked == self._tempo_locked:
            return
        self._tempo_locked = locked
        if locked:
            log_event("INFO", "BPM", "Tempo lock",
                      bpm=f"{estimate.bpm:.1f}",
                      confidence=f"{estimate.confidence:.3f}",
                      t=f"{self.current_time:.2f}")
        else:
            log_event("INFO", "BPM", "Tempo lock lost",
                      confidence=f"{estimate.confidence:.3f}",
                      t=f"{self.current_time:.2f}")

    def _reset_session_stats(self) -> None:
        self._session_onset_count = 0
        self._session_bpm_count = 0
        self._session_bpm_sum = 0.0
        self._session_bpm_min: float | None = None
        self._session_bpm_max: float | None = None

    def _update_session_stats(self, bpm: float, onset_count: int) -> None:
        self._session_onset_count += onset_count
        if bpm <= 0:
            return
        self._session_bpm_count += 1
        self._session_bpm_sum += bpm
        if self._session_bpm_min is None or bpm < self._session_bpm_min:
            self._session_bpm_min = bpm
        if self._session_bpm_max is None or bpm > self._session_bpm_max:
            self._session_bpm_max = bpm

    def _log_session_summary(self) -> None:
        if self._frame_count <= 0:
            return

        bpm_mean = (self._session_bpm_sum / self._session_bpm_count
                    if self._session_bpm_count > 0 else 0.0)
        log_event(
            "INFO",
            "BPM",
            "Session summary",
            frames=self._frame_count,
            seconds=f"{self.current_time:.1f}",
            onsets=self._session_onset_count,
            bpm_frames=self._session_bpm_count,
            bpm_min=f"{float(self._session_bpm_min or 0.0):.1f}",
            bpm_max=f"{float(self._session_bpm_max or 0.0):.1f}",
            bpm_mean=f"{bpm_mean:.1f}",
        )
