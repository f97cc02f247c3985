"""FastAPI dashboard application factory with JSON API and WebSocket hub."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI

from dexbot.dashboard.routes import actions, api, ws
from dexbot.dashboard.routes.ws import DashboardHub


def create_dashboard_app(lifespan: Any = None) -> FastAPI:
    """Create and configure the FastAPI dashboard application.

    Components (orchestrator, position_manager, stats, emergency_controller)
    are attached to ``app.state`` by the caller.

    Args:
        lifespan: Optional async context manager for application lifespan events.

    Returns:
        Configured FastAPI application with WebSocket hub and routes.
    """
    app = FastAPI(
        title="DEX Trading Bot",
        lifespan=lifespan,
    )

    app.state.hub = DashboardHub()
    app.state.emergency_controller = None

    app.include_router(api.router, prefix="/api")
    app.include_router(actions.router, prefix="/actions")
    app.include_router(ws.router)

    return app
