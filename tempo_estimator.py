"""
bpmsense - Tempo Estimator
Turns the onset timestamp history into a BPM estimate using two independent
methods (inter-onset interval statistics and autocorrelation of an onset
indicator series) and fuses them by confidence.
"""

import math
from dataclasses import dataclass
from enum import IntEnum
from typing import Sequence

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from config import TempoConfig


class TempoMethod(IntEnum):
    INTERVAL = 1
    AUTOCORRELATION = 2
    COMBINED = 3


@dataclass
class TempoEstimate:
    """One tempo estimate from a single method or from the fusion step"""
    bpm: float = 0.0          # 0.0 = no estimate
    confidence: float = 0.0   # 0.0-1.0
    method: TempoMethod = TempoMethod.COMBINED
    stability: float = 0.0    # 0.0-1.0 (meaning depends on method)


def onset_autocorrelation(series: np.ndarray) -> np.ndarray:
    """Autocorrelation of a binary onset series for lags 0 .. n/2,
    normalized by the zero-lag value so the result lies in [0, 1].

    Each lag is the mean of the pairwise products over the full series
    length, so long lags with few overlapping pairs are attenuated.
    """
    n = len(series)
    n_lags = (n + 1) // 2
    if n == 0 or n_lags == 0:
        return np.zeros(0, dtype=np.float64)

    # Autocorrelation via FFT (zero padded to avoid circular wrap)
    n_fft = 1
    while n_fft < 2 * n:
        n_fft *= 2
    fft_sig = np.fft.rfft(series, n=n_fft)
    acf = np.fft.irfft(fft_sig * np.conj(fft_sig), n=n_fft)[:n_lags]
    # Products of a 0/1 series are whole counts
    acf = np.rint(acf)

    if acf[0] <= 0:
        return np.zeros(n_lags, dtype=np.float64)
    return np.clip(acf / acf[0], 0.0, 1.0)


def find_peaks(values: np.ndarray, distance: int, threshold: float) -> list[tuple[int, float]]:
    """Local maxima that strictly exceed every value within +/- ``distance``
    samples and exceed ``threshold``; strongest first."""
    width = 2 * distance + 1
    if distance < 1 or len(values) < width:
        return []

    windows = sliding_window_view(values, width)
    centers = windows[:, distance]
    left = windows[:, :distance].max(axis=1)
    right = windows[:, distance + 1:].max(axis=1)
    mask = (centers > left) & (centers > right) & (centers > threshold)

    peaks = [(int(i) + distance, float(centers[i])) for i in np.nonzero(mask)[0]]
    peaks.sort(key=lambda p: p[1], reverse=True)
    return peaks


class TempoEstimator:
    """Stateless dual-method tempo estimator (all state lives in the onset history)."""

    def __init__(self, config: TempoConfig):
        self.config = config

    def clamp_bpm(self, bpm: float) -> float:
        """Clamp a BPM into the configured range; 0.0 stays the no-estimate sentinel."""
        if not math.isfinite(bpm) or bpm <= 0:
            return 0.0
        return max(self.config.bpm_min, min(self.config.bpm_max, bpm))

    def estimate(self, onsets: Sequence[float]) -> TempoEstimate:
        """Fused estimate over the full onset history."""
        if len(onsets) < self.config.min_onsets:
            return TempoEstimate(method=TempoMethod.COMBINED)

        interval_result = self.interval_estimate(onsets)
        acf_result = self.autocorrelation_estimate(onsets)
        return self.combine(interval_result, acf_result)

    def interval_estimate(self, onsets: Sequence[float]) -> TempoEstimate:
        """BPM from the median inter-onset interval (upper middle for even counts).
        Confidence is 1 - coefficient of variation of the kept intervals."""
        cfg = self.config
        empty = TempoEstimate(method=TempoMethod.INTERVAL)
        if len(onsets) < 2:
            return empty

        intervals = np.diff(np.asarray(onsets, dtype=np.float64))
        valid = intervals[(intervals >= cfg.min_onset_interval) & (intervals <= cfg.max_onset_interval)]
        if len(valid) == 0:
            return empty

        # Upper middle value for an even count
        median_interval = float(np.sort(valid)[len(valid) // 2])
        mean_interval = float(np.mean(valid))
        if median_interval <= 0 or mean_interval <= 0:
            return empty

        bpm = 60.0 / median_interval
        confidence = max(0.0, 1.0 - float(np.std(valid)) / mean_interval)
        confidence = min(1.0, confidence)

        return TempoEstimate(
            bpm=self.clamp_bpm(bpm),
            confidence=confidence,
            method=TempoMethod.INTERVAL,
            stability=confidence,
        )

    def onset_series(self, onsets: Sequence[float]) -> np.ndarray:
        """Binary indicator series at ``acf_resolution_s`` spanning the onsets,
        1.0 at the sample nearest each onset."""
        res = self.config.acf_resolution_s
        times = np.asarray(onsets, dtype=np.float64)
        if len(times) == 0 or res <= 0:
            return np.zeros(0, dtype=np.float64)

        start = float(np.min(times))
        span = float(np.max(times)) - start
        length = int(round(span / res)) + 1

        series = np.zeros(length, dtype=np.float64)
        indices = np.clip(np.rint((times - start) / res).astype(np.int64), 0, length - 1)
        series[indices] = 1.0
        return series

    def autocorrelation_estimate(self, onsets: Sequence[float]) -> TempoEstimate:
        """BPM from the strongest autocorrelation peak of the onset series."""
        cfg = self.config
        empty = TempoEstimate(method=TempoMethod.AUTOCORRELATION)
        if len(onsets) < cfg.acf_min_onsets:
            return empty

        span = float(max(onsets) - min(onsets))
        if span < cfg.acf_min_span_s:
            return empty

        acf = onset_autocorrelation(self.onset_series(onsets))
        peaks = find_peaks(acf, cfg.acf_peak_distance, cfg.acf_peak_threshold)
        if not peaks:
            return empty

        peak_lag, peak_value = peaks[0]
        period = peak_lag * cfg.acf_resolution_s
        if period <= 0:
            return empty

        return TempoEstimate(
            bpm=self.clamp_bpm(60.0 / period),
            confidence=peak_value,
            method=TempoMethod.AUTOCORRELATION,
            stability=peak_value,
        )

    def combine(self, interval_result: TempoEstimate, acf_result: TempoEstimate) -> TempoEstimate:
        """Confidence-weighted fusion. Stability here is cross-method agreement."""
        total_weight = interval_result.confidence + acf_result.confidence
        if total_weight <= 0:
            return TempoEstimate(method=TempoMethod.COMBINED)

        combined_bpm = (
            interval_result.bpm * interval_result.confidence
            + acf_result.bpm * acf_result.confidence
        ) / total_weight
        combined_confidence = (interval_result.confidence + acf_result.confidence) / 2.0

        max_bpm = max(interval_result.bpm, acf_result.bpm)
        if max_bpm > 0:
            agreement = 1.0 - abs(interval_result.bpm - acf_result.bpm) / max_bpm
        else:
            agreement = 0.0

        return TempoEstimate(
            bpm=self.clamp_bpm(combined_bpm),
            confidence=max(0.0, min(1.0, combined_confidence)),
            method=TempoMethod.COMBINED,
            stability=max(0.0, min(1.0, agreement)),
        )
