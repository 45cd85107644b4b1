"""FastAPI health endpoints for liveness and readiness probes."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from .models import HealthStatus, PollerStatus

if TYPE_CHECKING:
    from .poller import Poller


def create_health_app(poller: Poller) -> FastAPI:
    """Build the health app for *poller*.

    ``/health`` is liveness: 200 while the poll loop runs.  ``/ready``
    additionally waits for the first poll cycle, so a source that has never
    been scanned is not reported ready.  Both answer 503 once the loop stops.
    """
    app = FastAPI(title=f"maildav {poller.config.source_name} health", docs_url=None, redoc_url=None)

    @app.get("/health")
    async def health() -> JSONResponse:
        body = HealthStatus(
            source_name=poller.config.source_name,
            status=poller.status,
            uptime_seconds=time.monotonic() - poller.start_time,
            details=await poller.health_check(),
        )
        code = 200 if poller.status == PollerStatus.RUNNING else 503
        return JSONResponse(content=body.model_dump(mode="json"), status_code=code)

    @app.get("/ready")
    async def ready() -> JSONResponse:
        details = await poller.health_check()
        is_ready = poller.status == PollerStatus.RUNNING and details["cycles"] > 0
        return JSONResponse(
            content={
                "ready": is_ready,
                "cycles": details["cycles"],
                "last_error": details["last_error"],
            },
            status_code=200 if is_ready else 503,
        )

    return app
