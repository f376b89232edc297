"""
Session Analysis Graph
======================

LangGraph workflow run once per completed recording (or on demand).

LangGraph is used for CONTROL FLOW only; every node is deterministic.

Graph Structure:
    START -> load_history -> score_session -> predict -> END

    load_history:   recent sessions from the SessionStore, falling back to
                    the cached history when the store fails
    score_session:  HealthMetrics for the recorded session window
    predict:        CardiacPrediction from history, metrics and the wearer

Design Rules:
    - A store failure never stops the analysis
    - The just-recorded session is part of the history even when saving
      it failed
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, TypedDict

from langgraph.graph import END, StateGraph

from cardio_stream.errors import PersistenceError
from cardio_stream.models.health import HealthMetrics
from cardio_stream.models.prediction import Biomarkers, CardiacPrediction
from cardio_stream.models.profile import PersonalSignalProfile
from cardio_stream.models.session import ECGSession, UserProfile
from cardio_stream.prediction.detector import PredictiveCardiacDetector
from cardio_stream.scoring.health_scorer import ContinuousHealthScorer
from cardio_stream.stores.base import SessionStore


logger = logging.getLogger(__name__)


HISTORY_FROM_STORE = "store"
HISTORY_FROM_CACHE = "cache"


class SessionAnalysisState(TypedDict):
    """
    State passed through the analysis graph.

    Attributes:
        user: Wearer profile
        profile: Personal signal profile
        session: Just-recorded session, if any
        cached_history: History known before the analysis started
        history: Sessions the analysis used, newest first
        history_source: "store" or "cache"
        metrics: Health snapshot for the session
        prediction: Output prediction
        analysis_time: Reference time
        stress_level: Estimated stress in [0, 1]
        biomarkers: Optional external measurements
    """
    user: UserProfile
    profile: PersonalSignalProfile
    session: Optional[ECGSession]
    cached_history: List[ECGSession]
    history: List[ECGSession]
    history_source: str
    metrics: Optional[HealthMetrics]
    prediction: Optional[CardiacPrediction]
    analysis_time: datetime
    stress_level: float
    biomarkers: Optional[Biomarkers]


@dataclass(frozen=True, slots=True)
class AnalysisResult:
    """Outcome of one analysis run."""

    prediction: CardiacPrediction
    metrics: HealthMetrics
    history: List[ECGSession]
    history_source: str


class SessionAnalysisGraph:
    """
    LangGraph-based end-of-recording analysis.

    Example:
        graph = SessionAnalysisGraph(store, ContinuousHealthScorer(), PredictiveCardiacDetector())
        result = graph.analyze(user, profile, session=session)
        print(result.prediction.risk_level)
    """

    def __init__(
        self,
        session_store: SessionStore,
        scorer: ContinuousHealthScorer,
        detector: PredictiveCardiacDetector,
        history_limit: int = 100,
        window_samples: int = 3750,
    ) -> None:
        """
        Initialize the analysis graph.

        Args:
            session_store: Source of historical sessions
            scorer: Health scorer for the session window
            detector: Cardiac risk predictor
            history_limit: Sessions loaded from the store
            window_samples: Most recent session samples scored
        """
        self.session_store = session_store
        self.scorer = scorer
        self.detector = detector
        self.history_limit = history_limit
        self.window_samples = window_samples

        self._graph = self._build_graph()
        self._runs: int = 0
        self._store_failures: int = 0
        self._last_result: Optional[AnalysisResult] = None

        logger.info("SessionAnalysisGraph initialized")

    def _build_graph(self):
        """Build the LangGraph workflow."""
        workflow = StateGraph(SessionAnalysisState)

        workflow.add_node("load_history", self._load_history_node)
        workflow.add_node("score_session", self._score_session_node)
        workflow.add_node("predict", self._predict_node)

        workflow.set_entry_point("load_history")
        workflow.add_edge("load_history", "score_session")
        workflow.add_edge("score_session", "predict")
        workflow.add_edge("predict", END)

        return workflow.compile()

    # -------------------------------------------------------------------------
    # Nodes
    # -------------------------------------------------------------------------

    def _load_history_node(self, state: SessionAnalysisState) -> Dict[str, Any]:
        user = state["user"]
        source = HISTORY_FROM_STORE
        try:
            history = self.session_store.load_recent_sessions(user.user_id, self.history_limit)
        except PersistenceError as e:
            self._store_failures += 1
            logger.warning(f"History load failed, using cached history: {e}")
            history = list(state.get("cached_history") or [])
            source = HISTORY_FROM_CACHE

        session = state.get("session")
        if session is not None and all(s.timestamp != session.timestamp for s in history):
            history.append(session)

        history.sort(key=lambda s: s.timestamp, reverse=True)
        return {"history": history[: self.history_limit], "history_source": source}

    def _score_session_node(self, state: SessionAnalysisState) -> Dict[str, Any]:
        session = state.get("session")
        if session is None or not session.samples:
            if state.get("metrics") is not None:
                return {}
            window: Sequence[float] = []
        else:
            window = session.samples[-self.window_samples:]

        earlier = [
            s for s in state["history"]
            if session is None or s.timestamp < session.timestamp
        ]
        metrics = self.scorer.calculate_real_time_score(
            window,
            state["profile"],
            earlier,
            state["user"],
            current_time=state["analysis_time"],
            stress_level=state.get("stress_level", 0.0),
        )
        return {"metrics": metrics}

    def _predict_node(self, state: SessionAnalysisState) -> Dict[str, Any]:
        prediction = self.detector.predict_cardiac_events(
            state["history"],
            state["profile"],
            state["user"],
            state["metrics"],
            analysis_time=state["analysis_time"],
            biomarkers=state.get("biomarkers"),
        )
        return {"prediction": prediction}

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    def analyze(
        self,
        user: UserProfile,
        profile: PersonalSignalProfile,
        session: Optional[ECGSession] = None,
        cached_history: Sequence[ECGSession] = (),
        metrics: Optional[HealthMetrics] = None,
        analysis_time: Optional[datetime] = None,
        stress_level: float = 0.0,
        biomarkers: Optional[Biomarkers] = None,
    ) -> AnalysisResult:
        """
        Run the analysis graph.

        Args:
            user: Wearer profile
            profile: Personal signal profile
            session: Just-recorded session (scored when it has samples)
            cached_history: History to fall back to when the store fails
            metrics: Latest snapshot, used when there is no session window
            analysis_time: Reference time (defaults to now)
            stress_level: Estimated stress in [0, 1]
            biomarkers: Optional external measurements

        Returns:
            AnalysisResult
        """
        initial: SessionAnalysisState = {
            "user": user,
            "profile": profile,
            "session": session,
            "cached_history": list(cached_history),
            "history": [],
            "history_source": HISTORY_FROM_STORE,
            "metrics": metrics,
            "prediction": None,
            "analysis_time": analysis_time or datetime.now(),
            "stress_level": stress_level,
            "biomarkers": biomarkers,
        }
        final = self._graph.invoke(initial)
        self._runs += 1

        result = AnalysisResult(
            prediction=final["prediction"],
            metrics=final["metrics"],
            history=final["history"],
            history_source=final["history_source"],
        )
        self._last_result = result
        logger.info(
            f"Analysis [{self._runs}]: history={len(result.history)} ({result.history_source}), "
            f"score={result.metrics.overall_score:.1f}, risk={result.prediction.risk_score:.1f}"
        )
        return result

    @property
    def last_result(self) -> Optional[AnalysisResult]:
        return self._last_result

    def get_metrics(self) -> Dict[str, Any]:
        """Get analysis metrics for observability."""
        return {
            "runs": self._runs,
            "store_failures": self._store_failures,
            "last_risk_level": (
                self._last_result.prediction.risk_level.value if self._last_result else None
            ),
        }
