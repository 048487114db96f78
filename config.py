# bpmsense Configuration
# All default values and constants

import math
from dataclasses import dataclass, field, fields, is_dataclass
from typing import Optional

from logging_utils import log_event


CURRENT_CONFIG_VERSION = 1


@dataclass
class TempoConfig:
    """Onset / tempo estimation parameters"""
    # Logical clock: one process() call per frame at this rate
    frame_rate: float = 60.0              # Frames per second assumed by the caller loop
    energy_window: Optional[int] = None   # Energy history capacity (None = ceil(frame_rate), ~1s)
    low_freq_fraction: float = 0.3        # Fraction of lowest bins used for bass-weighted energy
    expected_bins: Optional[int] = None   # Analyser bin count; longer frames are truncated (None = use all)

    # Onset detection
    energy_threshold: float = 1.5         # Onset when energy > recent mean * this
    threshold_window: int = 10            # Energy samples averaged for the dynamic threshold
    min_energy_samples: int = 3           # Energy history needed before onsets can fire
    min_onset_interval: float = 0.1       # Min seconds between accepted onsets
    max_onset_interval: float = 2.0       # Intervals longer than this are ignored by the interval method
    onset_history_size: int = 32          # Onset timestamps kept for tempo estimation

    # Tempo estimation
    min_onsets: int = 4                   # Onsets needed before any tempo estimate
    acf_min_onsets: int = 8               # Onsets needed for the autocorrelation method
    acf_min_span_s: float = 2.0           # Onset span (s) needed for the autocorrelation method
    acf_resolution_s: float = 0.05        # Onset indicator sample period (s)
    acf_peak_distance: int = 4            # Peak must beat every lag within +/- this many samples
    acf_peak_threshold: float = 0.1       # Min normalized autocorrelation for a peak
    bpm_min: float = 60.0                 # Clamp range for every nonzero BPM
    bpm_max: float = 200.0

    # Stability
    bpm_history_size: int = 8             # Fused BPM values kept for stability
    stability_window: int = 5             # Most recent BPM values scored
    min_stability_entries: int = 3        # BPM history needed before stability is reported
    stability_threshold: float = 0.1      # Relative deviation at which stability reaches 0
    lock_confidence: float = 0.5          # Confidence above which a nonzero tempo counts as locked

    def resolved_energy_window(self) -> int:
        """Energy history capacity, derived from the frame rate when unset."""
        if self.energy_window:
            return int(self.energy_window)
        return max(1, int(math.ceil(self.frame_rate)))


@dataclass
class Config:
    """Master configuration"""
    version: int = 1                  # Schema version for persisted configs
    tempo: TempoConfig = field(default_factory=TempoConfig)

    # Global
    log_level: str = "INFO"           # Logging level (DEBUG/INFO/WARNING/ERROR)


# Valid ranges for numeric tempo settings; out-of-range values are clamped on load
TEMPO_RANGE_LIMITS = {
    'frame_rate': (1.0, 1000.0),
    'low_freq_fraction': (0.01, 1.0),
    'energy_threshold': (1.0, 10.0),
    'threshold_window': (1, 1000),
    'min_energy_samples': (2, 1000),
    'min_onset_interval': (0.001, 10.0),
    'max_onset_interval': (0.01, 60.0),
    'onset_history_size': (4, 1024),
    'min_onsets': (2, 1024),
    'acf_min_onsets': (2, 1024),
    'acf_min_span_s': (0.0, 600.0),
    'acf_resolution_s': (0.001, 1.0),
    'acf_peak_distance': (1, 100),
    'acf_peak_threshold': (0.0, 1.0),
    'bpm_min': (1.0, 1000.0),
    'bpm_max': (1.0, 1000.0),
    'bpm_history_size': (1, 1024),
    'stability_window': (1, 1024),
    'min_stability_entries': (1, 1024),
    'stability_threshold': (0.001, 10.0),
    'lock_confidence': (0.0, 1.0),
}

_OPTIONAL_POSITIVE_INTS = ('energy_window', 'expected_bins')


def apply_dict_to_dataclass(target, data) -> None:
    """Recursively apply values from a dict onto a dataclass instance.
    Unknown keys are ignored; nested dicts recurse into nested dataclasses."""
    if not isinstance(data, dict):
        return

    for key, value in data.items():
        if not hasattr(target, key):
            continue

        current = getattr(target, key)

        if is_dataclass(current) and isinstance(value, dict):
            apply_dict_to_dataclass(current, value)
            continue

        setattr(target, key, value)


def sanitize_tempo_config(tempo: TempoConfig) -> None:
    """Coerce every tempo setting to its field type and clamp it to range.
    Missing or unparseable values fall back to the dataclass default."""
    defaults = TempoConfig()

    for f in fields(TempoConfig):
        name = f.name
        default = getattr(defaults, name)
        value = getattr(tempo, name, default)

        if name in _OPTIONAL_POSITIVE_INTS:
            try:
                value = int(value) if value is not None else None
            except (TypeError, ValueError):
                value = None
            if value is not None and value <= 0:
                value = None
            setattr(tempo, name, value)
            continue

        caster = int if isinstance(default, int) else float
        try:
            value = caster(value)
        except (TypeError, ValueError):
            value = default
        if isinstance(value, float) and not math.isfinite(value):
            value = default

        limits = TEMPO_RANGE_LIMITS.get(name)
        if limits is not None:
            low, high = limits
            value = caster(max(low, min(high, value)))
        setattr(tempo, name, value)

    if tempo.bpm_min >= tempo.bpm_max:
        tempo.bpm_min = defaults.bpm_min
        tempo.bpm_max = defaults.bpm_max
    if tempo.max_onset_interval < tempo.min_onset_interval:
        tempo.max_onset_interval = max(defaults.max_onset_interval, tempo.min_onset_interval)


def migrate_config(config: Config, loaded_version) -> None:
    """Upgrade older config structures to the current schema.
    Restores defaults for missing fields, clamps ranges and bumps version."""
    try:
        version = int(loaded_version) if loaded_version is not None else 0
    except (TypeError, ValueError):
        version = 0

    if version < CURRENT_CONFIG_VERSION:
        log_event("INFO", "Config", "Migrating config", from_version=version,
                  to_version=CURRENT_CONFIG_VERSION)

    if not isinstance(getattr(config, 'tempo', None), TempoConfig):
        config.tempo = TempoConfig()
    sanitize_tempo_config(config.tempo)

    level = getattr(config, 'log_level', "INFO")
    if not isinstance(level, str) or not level.strip():
        level = "INFO"
    config.log_level = level.strip().upper()

    config.version = CURRENT_CONFIG_VERSION


# Default config instance
DEFAULT_CONFIG = Config()
