"""
Roadwatch Main Application
==========================

FastAPI entry point for the live traffic overlay engine.

Components:
    - Entity store regenerated by the single-flight refresh scheduler
    - Overlay reconciler drawing the store onto an in-memory map session
    - Animation loops moving vehicles, flashing incidents, pulsing hotspots
    - View rotator cycling camera presets
    - Recommendation service decoding streamed advice

Endpoints:
    GET  /                         - Service information
    GET  /health                   - Liveness probe
    GET  /ready                    - Readiness probe (store seeded?)
    GET  /metrics                  - Scheduler, animation, recommendation metrics
    GET  /snapshot                 - Current entity snapshot
    GET  /overlays                 - Current map overlays and viewport
    POST /refresh                  - Manual refresh (dropped if one is in flight)
    PUT  /viewport/{preset}        - Move the camera to a preset
    POST /recommendations          - Final recommendation for a route
    POST /recommendations/stream   - NDJSON partial drafts, then the final result
    WS   /ws/overlays              - Periodic overlay export
"""

import asyncio
import json
import logging
import os
import random
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, HTTPException, WebSocket
from fastapi.responses import JSONResponse, StreamingResponse

from roadwatch.config import settings
from roadwatch.animation import AnimationLoopManager, AnimationParams
from roadwatch.datasource import DataSource, HttpDataSource, MockDataSource
from roadwatch.errors import ConfigurationError
from roadwatch.models.recommendation import (
    RecommendationDraft,
    RecommendationResult,
    RouteQuery,
)
from roadwatch.overlay import (
    PRESET_NAMES,
    InMemoryMapSession,
    OverlayReconciler,
    ViewRotator,
    apply_preset,
)
from roadwatch.recommendation import RecommendationService
from roadwatch.scheduler import RefreshScheduler, RegenerationParams, Regenerator
from roadwatch.store import EntitySnapshot, EntityStore


logger = logging.getLogger(__name__)


# =============================================================================
# Global State
# =============================================================================

# Shutdown flag
_shutdown_flag: bool = False

_session: Optional[InMemoryMapSession] = None
_store: Optional[EntityStore] = None
_source: Optional[DataSource] = None
_reconciler: Optional[OverlayReconciler] = None
_animation: Optional[AnimationLoopManager] = None
_scheduler: Optional[RefreshScheduler] = None
_rotator: Optional[ViewRotator] = None
_recommendations: Optional[RecommendationService] = None

_startup_time: float = 0.0


# =============================================================================
# Getters
# =============================================================================

def get_session() -> Optional[InMemoryMapSession]:
    return _session

def get_store() -> Optional[EntityStore]:
    return _store

def get_scheduler() -> Optional[RefreshScheduler]:
    return _scheduler

def get_animation() -> Optional[AnimationLoopManager]:
    return _animation

def get_recommendations() -> Optional[RecommendationService]:
    return _recommendations

def is_ready() -> bool:
    return _store is not None and _store.is_seeded


# =============================================================================
# Factories
# =============================================================================

def create_data_source() -> DataSource:
    """
    Create the data source selected in config.

    Raises:
        ConfigurationError: Unknown backend
    """
    backend = settings.datasource.backend

    if backend == "mock":
        logger.info("Using MockDataSource")
        return MockDataSource(
            latency_seconds=settings.datasource.mock.latency_seconds,
            chunk_size=settings.datasource.mock.chunk_size,
            chunk_delay_seconds=settings.datasource.mock.chunk_delay_seconds,
        )

    elif backend == "http":
        logger.info(f"Using HttpDataSource: {settings.datasource.base_url}")
        return HttpDataSource(
            base_url=settings.datasource.base_url,
            completions_url=settings.recommendation.api_url,
            api_key=settings.recommendation.api_key,
            model=settings.recommendation.model,
            temperature=settings.recommendation.temperature,
            max_tokens=settings.recommendation.max_tokens,
            timeout_seconds=settings.datasource.timeout_seconds,
        )

    else:
        raise ConfigurationError(f"Unknown data source backend: {backend}")


def create_regenerator(rng: random.Random) -> Regenerator:
    return Regenerator(
        params=RegenerationParams(**settings.regeneration.model_dump()),
        rng=rng,
    )


def create_animation_params() -> AnimationParams:
    cfg = settings.animation
    return AnimationParams(
        frame_seconds=cfg.frame_ms / 1000.0,
        base_leg_seconds=cfg.base_leg_seconds,
        teleport_probability=cfg.teleport_probability,
        flash_step=cfg.flash_step,
        flash_floor=cfg.flash_floor,
        flash_floor_high=cfg.flash_floor_high,
        pulse_base_radius=cfg.pulse_base_radius,
        pulse_max_radius=cfg.pulse_max_radius,
        pulse_high_scale=cfg.pulse_high_scale,
        pulse_step=cfg.pulse_step,
    )


# =============================================================================
# Serialization
# =============================================================================

def snapshot_to_dict(snapshot: EntitySnapshot) -> dict:
    return {
        "roads": [r.model_dump(mode="json") for r in snapshot.roads],
        "congestion_points": [p.model_dump(mode="json") for p in snapshot.congestion_points],
        "accidents": [a.model_dump(mode="json") for a in snapshot.accidents],
        "vehicles": [v.model_dump(mode="json") for v in snapshot.vehicles],
    }


def result_to_dict(result: RecommendationResult) -> dict:
    return {
        "source": result.source.value,
        "recommendation": result.draft.to_wire(),
    }


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager with graceful shutdown."""
    global _session, _store, _source, _reconciler, _animation
    global _scheduler, _rotator, _recommendations
    global _startup_time, _shutdown_flag

    # Startup
    _startup_time = time.time()
    _shutdown_flag = False
    logger.info(f"Starting {settings.app.name} {settings.app.version}")

    rng = random.Random(settings.random_seed)
    if settings.random_seed is not None:
        logger.info(f"Deterministic run, random_seed={settings.random_seed}")

    _session = InMemoryMapSession()
    _store = EntityStore()
    _source = create_data_source()

    # Overlays and animation
    anim_params = create_animation_params()
    _reconciler = OverlayReconciler(
        _session,
        _store,
        point_radius=anim_params.pulse_base_radius,
    )
    _animation = AnimationLoopManager(_store, _reconciler, _session, anim_params, rng)
    _reconciler.set_position_resolver(_animation)
    _reconciler.on_select(
        lambda detail: logger.info(f"Selected {detail.entity_kind.value} {detail.entity_id}: {detail.title}")
    )

    # Refresh scheduler (reconciler first, so loops find their overlays)
    _scheduler = RefreshScheduler(
        _store,
        _source,
        create_regenerator(rng),
        interval_seconds=settings.refresh.interval_seconds,
        countdown_step_seconds=settings.refresh.countdown_step_seconds,
    )
    _scheduler.subscribe(_reconciler.rebuild)
    _scheduler.subscribe(_animation.sync)

    _recommendations = RecommendationService(_source)

    # Initial load, then timed refreshes
    if not await _scheduler.refresh():
        logger.warning("Initial load failed, will retry on the next tick")
    _scheduler.start()

    # Camera
    _rotator = ViewRotator(
        _session,
        _store,
        interval_seconds=settings.view.rotation_interval_seconds,
        presets=settings.view.rotation_presets,
    )
    if settings.view.rotation_enabled:
        _rotator.start()
    else:
        apply_preset(_session, settings.view.initial_preset, _store.snapshot())

    logger.info("All components started")

    yield

    # Shutdown
    logger.info("Shutting down gracefully...")
    _shutdown_flag = True

    await _rotator.stop()
    await _scheduler.stop()
    _animation.dispose()
    _reconciler.clear()
    await _source.close()

    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="Roadwatch",
    description="Live traffic overlay engine with streamed route recommendations",
    version=settings.app.version,
    lifespan=lifespan,
)


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    return JSONResponse({
        "service": "Roadwatch",
        "version": settings.app.version,
        "name": settings.app.name,
        "status": "running",
        "data_backend": settings.datasource.backend,
        "refresh_interval_seconds": settings.refresh.interval_seconds,
    })


@app.get("/health")
async def health() -> JSONResponse:
    """
    Liveness probe - is the process alive?

    Always returns 200 if the service is running.
    """
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })


@app.get("/ready")
async def ready() -> JSONResponse:
    """
    Readiness probe - has the store been seeded?

    Returns 503 until the first successful refresh.
    """
    scheduler = get_scheduler()
    tick_count = scheduler.state.tick_count if scheduler else 0

    if is_ready():
        return JSONResponse({
            "status": "ready",
            "tick_count": tick_count,
        })
    return JSONResponse(
        {"status": "not_ready", "tick_count": tick_count},
        status_code=503,
    )


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Detailed metrics for observability."""
    scheduler = get_scheduler()
    store = get_store()
    animation = get_animation()
    session = get_session()
    recommendations = get_recommendations()

    refresh_metrics = {}
    if scheduler:
        refresh_metrics = {
            "phase": scheduler.state.phase.value,
            "countdown": scheduler.state.countdown,
            "tick_count": scheduler.state.tick_count,
            **scheduler.metrics.to_dict(),
        }

    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "data_backend": settings.datasource.backend,
        "refresh": refresh_metrics,
        "store": {
            "version": store.version,
            **store.snapshot().counts(),
        } if store else {},
        "animation": {
            "frames": animation.frames,
            **animation.loop_counts(),
        } if animation else {},
        "overlays": {
            "attached": len(session),
            "created": session.created,
            "updated": session.updated,
            "removed": session.removed,
        } if session else {},
        "recommendations": recommendations.metrics.to_dict() if recommendations else {},
    })


@app.get("/snapshot")
async def snapshot() -> JSONResponse:
    """Current entity snapshot."""
    store = get_store()
    if store is None or not store.is_seeded:
        return JSONResponse({"error": "No snapshot available yet"}, status_code=503)
    return JSONResponse(snapshot_to_dict(store.snapshot()))


@app.get("/overlays")
async def overlays() -> JSONResponse:
    """Current map overlays and viewport."""
    session = get_session()
    if session is None:
        return JSONResponse({"error": "Map session not initialized"}, status_code=503)
    return JSONResponse(session.export())


@app.post("/refresh")
async def refresh() -> JSONResponse:
    """Trigger a manual refresh."""
    scheduler = get_scheduler()
    if scheduler is None:
        return JSONResponse({"error": "Scheduler not initialized"}, status_code=503)

    refreshed = await scheduler.refresh(manual=True)
    return JSONResponse({
        "refreshed": refreshed,
        "tick_count": scheduler.state.tick_count,
        "countdown": scheduler.state.countdown,
    })


@app.put("/viewport/{preset}")
async def viewport(preset: str) -> JSONResponse:
    """Move the camera to a named preset."""
    session = get_session()
    store = get_store()
    if session is None or store is None:
        return JSONResponse({"error": "Map session not initialized"}, status_code=503)
    if preset not in PRESET_NAMES:
        raise HTTPException(status_code=404, detail=f"Unknown view preset: {preset}")

    view = apply_preset(session, preset, store.snapshot())
    return JSONResponse({
        "preset": preset,
        "center": view.center.model_dump(),
        "zoom": view.zoom,
    })


@app.post("/recommendations")
async def recommend(query: RouteQuery) -> JSONResponse:
    """Resolve a route query to a final recommendation."""
    service = get_recommendations()
    if service is None:
        return JSONResponse({"error": "Recommendations not initialized"}, status_code=503)

    result = await service.recommend(query)
    return JSONResponse(result_to_dict(result))


@app.post("/recommendations/stream")
async def recommend_stream(query: RouteQuery) -> StreamingResponse:
    """Stream partial drafts as NDJSON, then the final result."""
    service = get_recommendations()
    if service is None:
        raise HTTPException(status_code=503, detail="Recommendations not initialized")

    async def lines() -> AsyncIterator[str]:
        async for item in service.stream(query):
            if isinstance(item, RecommendationDraft):
                payload = {"type": "partial", "recommendation": item.to_wire()}
            else:
                payload = {"type": "final", **result_to_dict(item)}
            yield json.dumps(payload, ensure_ascii=False) + "\n"

    return StreamingResponse(lines(), media_type="application/x-ndjson")


# =============================================================================
# WebSocket Endpoints
# =============================================================================

@app.websocket("/ws/overlays")
async def overlay_stream(websocket: WebSocket) -> None:
    """WebSocket endpoint for live overlay state."""
    await websocket.accept()
    logger.info("Client connected to /ws/overlays")

    try:
        while not _shutdown_flag:
            session = get_session()
            if session is not None:
                await websocket.send_json(session.export())
            await asyncio.sleep(settings.server.overlay_push_seconds)

    except Exception as e:
        logger.warning(f"WebSocket error: {e}")
    finally:
        logger.info("Client disconnected from /ws/overlays")


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    # Cloud Run uses PORT env var
    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        "roadwatch.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )
