from __future__ import annotations

import logging

import httpx
from fastapi import FastAPI, HTTPException, Query, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .config import SpotSwitchSettings, load_settings
from .errors import ConfigurationError, FetchError, InsufficientDataError, SpotSwitchError
from .models import ConfigResponse, JobMarker, PendingAction, RecomputeOutcome, StatusResponse
from .scheduler import LocalScheduleBackend
from .service import recompute, startup
from .state import SpotSwitchState, build_state

logger = logging.getLogger("spotswitch")


def create_app(
    initial_settings: SpotSwitchSettings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    app = FastAPI(title="spotswitch", default_response_class=JSONResponse)
    settings = initial_settings if initial_settings is not None else load_settings()
    state: SpotSwitchState = build_state(settings, transport=transport)
    app.state.spotswitch = state

    async def on_trigger(marker: JobMarker) -> None:
        if marker.instance != settings.instance_id:
            logger.warning("Ignoring trigger for foreign instance %s", marker.instance)
            return
        try:
            await recompute(state)
        except SpotSwitchError as exc:
            logger.warning("Scheduled recompute failed: %s", exc)

    @app.on_event("startup")
    async def on_startup() -> None:
        backend = state.backend
        if isinstance(backend, LocalScheduleBackend):
            backend.bind(on_trigger)
        # SchedulerError propagates and aborts startup
        result = await startup(state)
        logger.info("Schedule reconciliation: %s", result.value)
        if isinstance(backend, LocalScheduleBackend):
            backend.start()
        await state.actions.start()

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        await state.actions.stop()
        if isinstance(state.backend, LocalScheduleBackend):
            state.backend.shutdown()

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.api_route("/recompute", methods=["GET", "POST"], response_model=RecomputeOutcome)
    async def recompute_now(instance: str | None = Query(default=None)) -> RecomputeOutcome:
        if instance is not None and instance != settings.instance_id:
            raise HTTPException(status_code=409, detail=f"unknown instance {instance!r}")
        try:
            return await recompute(state)
        except FetchError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        except InsufficientDataError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        except ConfigurationError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc

    @app.get("/status", response_model=StatusResponse)
    def status() -> StatusResponse:
        return StatusResponse(
            instance_id=settings.instance_id,
            last_outcome=state.last_outcome,
            pending_actions=[
                PendingAction(kind=a.kind, fire_at=a.fire_at) for a in state.actions.pending()
            ],
        )

    @app.get("/config", response_model=ConfigResponse)
    def get_config() -> ConfigResponse:
        return ConfigResponse(data=settings.to_public_dict())

    @app.get("/metrics")
    def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app
