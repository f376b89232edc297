"""
Ingest Module
=============

Frame decoding, rate limiting and per-channel ring buffering.

    - RawFrame: Notification payload from the device link
    - FrameDecoder: Text/binary payload decoder with line reassembly
    - ChannelBuffer: Fixed-capacity circular sample buffer
    - SampleIngest: Frame sink that fills the buffers
"""

from cardio_stream.ingest.decoder import FrameDecoder, parse_line
from cardio_stream.ingest.frame import RawFrame
from cardio_stream.ingest.ingest import IngestMetrics, SampleIngest
from cardio_stream.ingest.ring_buffer import ChannelBuffer, is_empty_sample


__all__ = [
    "ChannelBuffer",
    "FrameDecoder",
    "IngestMetrics",
    "RawFrame",
    "SampleIngest",
    "is_empty_sample",
    "parse_line",
]
