"""
CardioStream Main Application
=============================

FastAPI entry point for the ECG acquisition and analysis service.

Endpoints:
    GET  /                  - Service information
    GET  /health            - Liveness probe (is process alive?)
    GET  /ready             - Readiness probe (pipeline started?)
    GET  /metrics           - Pipeline metrics
    GET  /health-metrics    - Latest HealthMetrics snapshot
    GET  /prediction        - Latest CardiacPrediction
    POST /prediction        - Run the analysis now on cached history
    GET  /buffer            - Ring buffer snapshot for charting
    POST /recordings        - Start a timed recording
    POST /recordings/stop   - Stop the recording early
    POST /link/scan         - Scan for a sensor
    POST /link/disconnect   - Disconnect and stop reconnecting
    WS   /ws/events         - Real-time UI event stream
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from cardio_stream.config import settings
from cardio_stream.events.types import to_payload
from cardio_stream.runtime import CardioRuntime
from cardio_stream.tasks import spawn


logger = logging.getLogger(__name__)


def _runtime(request: Request) -> CardioRuntime:
    return request.app.state.runtime


def create_app(runtime: Optional[CardioRuntime] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        runtime: Pre-built runtime (built from settings on startup if None)

    Returns:
        Configured FastAPI app
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(f"Starting {settings.service.name} {settings.service.version}")
        app.state.runtime = runtime or CardioRuntime(settings)
        await app.state.runtime.start()

        yield

        logger.info("Shutting down gracefully...")
        await app.state.runtime.stop()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="CardioStream",
        description="Streaming ECG acquisition, health scoring and cardiac risk prediction",
        version=settings.service.version,
        lifespan=lifespan,
    )

    # =========================================================================
    # HTTP Endpoints
    # =========================================================================

    @app.get("/")
    async def root() -> JSONResponse:
        """Service information endpoint."""
        return JSONResponse({
            "service": "CardioStream",
            "name": settings.service.name,
            "version": settings.service.version,
            "status": "running",
            "sample_interval_ms": settings.signal.sample_interval_ms,
        })

    @app.get("/health")
    async def health(request: Request) -> JSONResponse:
        """
        Liveness probe - is the process alive?

        Always returns 200 if the service is running.
        """
        return JSONResponse({
            "status": "healthy",
            "uptime_seconds": round(_runtime(request).uptime_seconds, 1),
        })

    @app.get("/ready")
    async def ready(request: Request) -> JSONResponse:
        """
        Readiness probe - is the pipeline running?

        Returns 503 until the runtime has started.
        """
        runtime = _runtime(request)
        body = {
            "link_state": runtime.link.state.connection.value,
            "recording_state": runtime.recorder.state.value,
        }
        if runtime.ready:
            return JSONResponse({"status": "ready", **body})
        return JSONResponse({"status": "not_ready", **body}, status_code=503)

    @app.get("/metrics")
    async def metrics(request: Request) -> JSONResponse:
        """Detailed metrics for observability."""
        return JSONResponse(_runtime(request).get_metrics())

    @app.get("/health-metrics")
    async def health_metrics(request: Request) -> JSONResponse:
        latest = _runtime(request).recorder.latest_metrics
        if latest is None:
            return JSONResponse({"error": "No health metrics available yet"}, status_code=503)
        return JSONResponse(latest.model_dump(mode="json"))

    @app.get("/prediction")
    async def prediction(request: Request) -> JSONResponse:
        latest = _runtime(request).recorder.latest_prediction
        if latest is None:
            return JSONResponse({"error": "No prediction available yet"}, status_code=503)
        return JSONResponse(latest.model_dump(mode="json"))

    @app.post("/prediction")
    async def predict_now(request: Request) -> JSONResponse:
        """Run the analysis on demand."""
        result = await _runtime(request).recorder.analyze_now()
        return JSONResponse(result.model_dump(mode="json"))

    @app.get("/buffer")
    async def buffer(request: Request) -> JSONResponse:
        return JSONResponse(to_payload(_runtime(request).ingest.snapshot()))

    @app.post("/recordings")
    async def start_recording(request: Request) -> JSONResponse:
        recorder = _runtime(request).recorder
        if not await recorder.start():
            return JSONResponse(
                {"error": "Recording already in progress", "state": recorder.state.value},
                status_code=409,
            )
        return JSONResponse(
            {"status": "started", "duration_seconds": recorder.duration_seconds},
            status_code=202,
        )

    @app.post("/recordings/stop")
    async def stop_recording(request: Request) -> JSONResponse:
        result = await _runtime(request).recorder.stop()
        return JSONResponse({
            "status": "stopped",
            "prediction": result.model_dump(mode="json") if result else None,
        })

    @app.post("/link/scan")
    async def scan(request: Request) -> JSONResponse:
        _runtime(request).link.scan()
        return JSONResponse({"status": "scanning"}, status_code=202)

    @app.post("/link/disconnect")
    async def disconnect(request: Request) -> JSONResponse:
        _runtime(request).link.disconnect()
        return JSONResponse({"status": "disconnecting"}, status_code=202)

    # =========================================================================
    # WebSocket Endpoints
    # =========================================================================

    @app.websocket("/ws/events")
    async def event_stream(websocket: WebSocket) -> None:
        """WebSocket endpoint for real-time UI events."""
        await websocket.accept()
        bus = websocket.app.state.runtime.bus
        subscription = bus.subscribe()
        logger.info("Client connected to /ws/events")

        async def forward() -> None:
            while True:
                event = await subscription.get()
                await websocket.send_json(to_payload(event))

        forward_task = spawn(forward(), name="ws_events_forward")
        try:
            # Client messages are ignored; receiving detects the disconnect
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            forward_task.cancel()
            bus.unsubscribe(subscription)
            logger.info("Client disconnected from /ws/events")

    return app


app = create_app()


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    # Container platforms use PORT env var
    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        "cardio_stream.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )
