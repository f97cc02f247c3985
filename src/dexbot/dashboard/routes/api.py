"""JSON API endpoints for bot status, positions, statistics and strategies."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from dexbot.dashboard.serialize import to_jsonable

log = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/status")
async def get_status(request: Request) -> JSONResponse:
    """Orchestrator status: queue depth, counters, risk state."""
    orchestrator = request.app.state.orchestrator
    return JSONResponse(content=to_jsonable(orchestrator.get_status()))


@router.get("/positions")
async def get_positions(request: Request) -> JSONResponse:
    """Open positions with current valuation."""
    position_manager = request.app.state.position_manager
    positions = position_manager.get_open_positions()
    return JSONResponse(content=[to_jsonable(p) for p in positions])


@router.get("/positions/closed")
async def get_closed_positions(request: Request) -> JSONResponse:
    """Closed position log, most recent first."""
    position_manager = request.app.state.position_manager
    closed = sorted(
        position_manager.get_closed_positions(),
        key=lambda p: p.last_update,
        reverse=True,
    )
    return JSONResponse(content=[to_jsonable(p) for p in closed])


@router.get("/stats")
async def get_stats(request: Request) -> JSONResponse:
    """Trading statistics plus position aggregates."""
    stats = request.app.state.stats.snapshot()
    position_manager = request.app.state.position_manager
    return JSONResponse(
        content={
            "trading": to_jsonable(stats),
            "positions": to_jsonable(position_manager.get_stats()),
        }
    )


@router.get("/strategies")
async def get_strategies(request: Request) -> JSONResponse:
    """Per-strategy internal status."""
    orchestrator = request.app.state.orchestrator
    return JSONResponse(content=to_jsonable(orchestrator.get_strategy_status()))
