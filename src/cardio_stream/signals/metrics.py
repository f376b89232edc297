"""
Signal Metrics
==============

Batch helpers shared by the profile learner, anomaly detector and scorer.

R-Peak Rule:
    threshold = mean(|x|) * threshold_factor     (real samples only)

    Sample i is a peak when x[i] > threshold, x[i] is a strict local
    maximum over real neighbours x[i-1] and x[i+1], and at least
    ``refractory_samples`` samples separate it from the previous peak.
"""

from typing import Iterable, Union

import numpy as np


ArrayLike = Union[np.ndarray, Iterable[float]]


def as_signal(signal: ArrayLike) -> np.ndarray:
    """Float array with empty samples (NaN, inf, exact zero) set to NaN."""
    x = np.array(signal, dtype=np.float64, copy=True).ravel()
    x[~np.isfinite(x) | (x == 0.0)] = np.nan
    return x


def clean(signal: ArrayLike) -> np.ndarray:
    """Real samples only, in order."""
    x = as_signal(signal)
    return x[~np.isnan(x)]


def mean_abs(x: np.ndarray) -> float:
    if x.size == 0:
        return 0.0
    return float(np.mean(np.abs(x)))


def population_std(x: np.ndarray) -> float:
    if x.size < 2:
        return 0.0
    return float(np.std(x))


def mean_abs_diff(x: np.ndarray) -> float:
    """Mean absolute first difference, used as a high-frequency noise level."""
    if x.size < 2:
        return 0.0
    return float(np.mean(np.abs(np.diff(x))))


def detect_r_peaks(
    signal: ArrayLike,
    threshold_factor: float = 0.6,
    refractory_samples: int = 40,
) -> np.ndarray:
    """
    Find R-peak indices with the adaptive threshold rule.

    Args:
        signal: Samples, possibly containing empty values
        threshold_factor: Fraction of mean absolute amplitude
        refractory_samples: Minimum spacing between peaks

    Returns:
        Integer array of peak indices into ``signal``
    """
    x = as_signal(signal)
    if x.size < 3:
        return np.empty(0, dtype=np.int64)

    valid = ~np.isnan(x)
    if not valid.any():
        return np.empty(0, dtype=np.int64)
    threshold = float(np.mean(np.abs(x[valid]))) * threshold_factor

    with np.errstate(invalid="ignore"):
        centre = x[1:-1]
        candidates = (
            valid[:-2] & valid[1:-1] & valid[2:]
            & (centre > x[:-2])
            & (centre > x[2:])
            & (centre > threshold)
        )
    indices = np.nonzero(candidates)[0] + 1

    peaks = []
    last = None
    for index in indices:
        if last is None or index - last >= refractory_samples:
            peaks.append(int(index))
            last = index
    return np.asarray(peaks, dtype=np.int64)


def rr_intervals_ms(peaks: np.ndarray, sample_interval_ms: float = 8.0) -> np.ndarray:
    """R-R intervals in milliseconds between consecutive peaks."""
    if len(peaks) < 2:
        return np.empty(0, dtype=np.float64)
    return np.diff(np.asarray(peaks, dtype=np.float64)) * sample_interval_ms
