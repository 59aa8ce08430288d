"""Control API for a running load test."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from controller import __version__
from controller.core.execution_engine import LoadTestEngine

logger = logging.getLogger(__name__)

router = APIRouter()


def get_engine(request: Request) -> LoadTestEngine:
    """Get the engine the app was created for."""
    return request.app.state.engine


@router.get("/health")
async def health_check():
    """Check controller health."""
    return {"status": "healthy", "version": __version__}


@router.get("/status")
async def get_status(engine: LoadTestEngine = Depends(get_engine)):
    """Get the current run state."""
    return engine.get_state()


@router.get("/metrics")
async def get_metrics(engine: LoadTestEngine = Depends(get_engine)):
    """Get a summary of every metric recorded so far."""
    snapshot = engine.metrics.snapshot()
    return {
        "run_id": engine.run_id,
        "metrics": {
            name: summary.model_dump(mode="json", exclude_none=True)
            for name, summary in snapshot.summaries().items()
        },
    }


@router.get("/thresholds")
async def get_thresholds(engine: LoadTestEngine = Depends(get_engine)):
    """Evaluate the thresholds against the metrics recorded so far."""
    results = engine.threshold_evaluator.evaluate(engine.metrics.snapshot())
    return {
        "run_id": engine.run_id,
        "passed": all(r.passed for r in results),
        "thresholds": [
            {
                "metric": r.expression.metric_name,
                "expression": r.expression.source,
                "observed": r.observed,
                "passed": r.passed,
                "message": r.message,
            }
            for r in results
        ],
    }


@router.post("/stop")
async def stop_run(engine: LoadTestEngine = Depends(get_engine)):
    """Gracefully stop the run; thresholds are still evaluated."""
    logger.info(f"Stop requested through the control API for run {engine.run_id}")
    engine.stop()
    return {"message": "Stop signal sent", "run_id": engine.run_id, "status": engine.status.value}


def create_app(engine: LoadTestEngine) -> FastAPI:
    """Create and configure the control API application."""
    app = FastAPI(
        title="reviewload controller",
        version=__version__,
        description="Control surface of a running load test",
    )
    app.state.engine = engine

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "error": str(exc)},
        )

    app.include_router(router)
    return app
