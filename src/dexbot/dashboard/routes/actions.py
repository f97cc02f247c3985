"""POST endpoints for bot control."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

log = structlog.get_logger(__name__)

router = APIRouter()


@router.post("/emergency-stop")
async def emergency_stop(request: Request) -> JSONResponse:
    """Sell every open position and stop the bot."""
    controller = request.app.state.emergency_controller
    if controller is None:
        return JSONResponse(status_code=503, content={"error": "emergency controller not configured"})
    if controller.triggered:
        return JSONResponse(status_code=409, content={"error": "emergency stop already triggered"})

    log.warning("emergency_stop_requested_via_dashboard")
    sold, failed = await controller.trigger("dashboard request")
    return JSONResponse(content={"sold": sold, "failed": failed})


@router.post("/bot/stop")
async def stop_bot(request: Request) -> JSONResponse:
    """Stop the bot gracefully without liquidating positions."""
    orchestrator = request.app.state.orchestrator
    try:
        await orchestrator.stop()
        log.info("bot_stopped_via_dashboard")
    except Exception as e:
        log.error("bot_stop_failed", error=str(e))
        return JSONResponse(status_code=500, content={"error": str(e)})
    return JSONResponse(content=orchestrator.get_status())
