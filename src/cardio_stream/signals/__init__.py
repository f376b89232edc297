"""
Signals Module
==============

Beat detection and personal-baseline signal conditioning.

This module turns raw ECG samples into beat timing, heart rate and
profile-conditioned windows suitable for health scoring.
"""

from cardio_stream.signals.adaptive_processor import AdaptiveSignalProcessor
from cardio_stream.signals.beat_detector import BeatDetector
from cardio_stream.signals.metrics import detect_r_peaks, rr_intervals_ms

__all__ = ["AdaptiveSignalProcessor", "BeatDetector", "detect_r_peaks", "rr_intervals_ms"]
