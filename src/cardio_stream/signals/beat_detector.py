"""
Beat Detector
=============

Streaming R-peak detection and heart-rate estimation.

This processor:
    - Consumes first-channel samples as they are accepted by ingest
    - Keeps an adaptive threshold: mean(|recent real samples|) * 0.6
    - Confirms a beat one sample late, once its right neighbour is known
    - Keeps the last 10 beat timestamps and the last 5 rate estimates

Rate Estimate:
    rate = 60000 / mean(inter-beat interval in ms)
    heart_rate = mean(last 5 rates), or 0.0 with fewer than 2 beats

Empty samples (NaN, inf, exact zero) advance the sample clock but break
the neighbour triple, so they can never form or flank a beat.
"""

import logging
import math
from collections import deque
from typing import Deque, Iterable, Optional

from cardio_stream.ingest.ring_buffer import is_empty_sample
from cardio_stream.models.beats import HeartBeatSeries


logger = logging.getLogger(__name__)


class BeatDetector:
    """
    Adaptive-threshold streaming beat detector.

    Attributes:
        sample_interval_ms: Milliseconds per sample
        threshold_factor: Fraction of mean absolute amplitude
        refractory_samples: Minimum samples between beats

    Example:
        detector = BeatDetector(sample_interval_ms=8.0)
        detector.extend(samples)
        print(detector.heart_rate)
    """

    def __init__(
        self,
        sample_interval_ms: float = 8.0,
        threshold_factor: float = 0.6,
        refractory_samples: int = 40,
        threshold_window: int = 250,
        beat_history: int = 10,
        rate_history: int = 5,
        log_every_n_beats: int = 20,
    ) -> None:
        """
        Initialize beat detector.

        Args:
            sample_interval_ms: Milliseconds per sample (8.0 = 125 Hz)
            threshold_factor: Threshold as a fraction of mean |x|
            refractory_samples: Minimum spacing between beats
            threshold_window: Recent real samples used for the threshold
            beat_history: Beat timestamps kept
            rate_history: Rate estimates averaged into heart_rate
            log_every_n_beats: Log heart rate every N beats
        """
        if sample_interval_ms <= 0:
            raise ValueError("sample_interval_ms must be positive")
        if refractory_samples < 1:
            raise ValueError("refractory_samples must be >= 1")

        self.sample_interval_ms = sample_interval_ms
        self.threshold_factor = threshold_factor
        self.refractory_samples = refractory_samples
        self.log_every_n_beats = log_every_n_beats

        self._window: Deque[float] = deque(maxlen=threshold_window)
        self._window_sum: float = 0.0
        self._beats: Deque[float] = deque(maxlen=beat_history)
        self._rates: Deque[float] = deque(maxlen=rate_history)

        # Last two samples; None marks an empty sample
        self._prev2: Optional[float] = None
        self._prev1: Optional[float] = None
        self._index: int = -1
        self._last_beat_index: Optional[int] = None
        self._beat_count: int = 0

    def update(self, sample: float) -> Optional[float]:
        """
        Process one sample.

        Args:
            sample: Amplitude, or an empty placeholder

        Returns:
            Timestamp (ms) of a beat confirmed by this sample, else None
        """
        self._index += 1
        value: Optional[float] = None if is_empty_sample(sample) else float(sample)

        if value is not None:
            self._push_window(abs(value))

        beat_at: Optional[float] = None
        if self._is_peak(self._prev2, self._prev1, value):
            candidate = self._index - 1
            if (
                self._last_beat_index is None
                or candidate - self._last_beat_index >= self.refractory_samples
            ):
                beat_at = self._record_beat(candidate)

        self._prev2, self._prev1 = self._prev1, value
        return beat_at

    def extend(self, samples: Iterable[float]) -> int:
        """Process samples in order; returns the number of beats found."""
        found = 0
        for sample in samples:
            if self.update(sample) is not None:
                found += 1
        return found

    @property
    def heart_rate(self) -> float:
        """Smoothed heart rate in BPM, 0.0 when undefined."""
        if len(self._beats) < 2 or not self._rates:
            return 0.0
        return sum(self._rates) / len(self._rates)

    @property
    def threshold(self) -> float:
        if not self._window:
            return 0.0
        return self._window_sum / len(self._window) * self.threshold_factor

    @property
    def beat_count(self) -> int:
        return self._beat_count

    @property
    def series(self) -> HeartBeatSeries:
        return HeartBeatSeries(
            beat_timestamps_ms=list(self._beats),
            rate_history=list(self._rates),
            heart_rate=self.heart_rate,
        )

    def reset(self) -> None:
        """Clear beat history and sample clock (start of a recording)."""
        self._window.clear()
        self._window_sum = 0.0
        self._beats.clear()
        self._rates.clear()
        self._prev2 = None
        self._prev1 = None
        self._index = -1
        self._last_beat_index = None
        self._beat_count = 0
        logger.info("BeatDetector reset")

    def get_metrics(self) -> dict:
        """Get detector metrics for observability."""
        return {
            "samples_processed": self._index + 1,
            "beat_count": self._beat_count,
            "heart_rate": round(self.heart_rate, 2),
            "threshold": round(self.threshold, 5),
            "sample_interval_ms": self.sample_interval_ms,
        }

    def _push_window(self, magnitude: float) -> None:
        if len(self._window) == self._window.maxlen:
            self._window_sum -= self._window[0]
        self._window.append(magnitude)
        self._window_sum += magnitude

    def _is_peak(
        self,
        left: Optional[float],
        centre: Optional[float],
        right: Optional[float],
    ) -> bool:
        if left is None or centre is None or right is None:
            return False
        return centre > left and centre > right and centre > self.threshold

    def _record_beat(self, index: int) -> float:
        timestamp = index * self.sample_interval_ms
        self._last_beat_index = index
        self._beats.append(timestamp)
        self._beat_count += 1

        if len(self._beats) >= 2:
            span = self._beats[-1] - self._beats[0]
            mean_interval = span / (len(self._beats) - 1)
            if mean_interval > 0 and math.isfinite(mean_interval):
                self._rates.append(60000.0 / mean_interval)

        if self._beat_count % self.log_every_n_beats == 0:
            logger.info(
                f"Beats [{self._beat_count}]: heart_rate={self.heart_rate:.1f} bpm, "
                f"threshold={self.threshold:.4f}"
            )
        return timestamp
