"""
Analysis Module
===============

LangGraph workflow for end-of-recording analysis.
"""

from cardio_stream.analysis.graph import AnalysisResult, SessionAnalysisGraph

__all__ = [
    "AnalysisResult",
    "SessionAnalysisGraph",
]
