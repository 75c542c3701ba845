import asyncio
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI

from gateway_service.app.http.routers.health import router as health_router
from gateway_service.app.http.routers.mcp import build_router
from gateway_service.core.logging import configure_logging, logger
from gateway_service.protocol.service.gateway_service import GatewayService


async def _reap_idle_sessions(svc: GatewayService, idle_timeout: float, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            await svc.evict_idle(idle_timeout)
        except Exception:
            logger.exception("Idle session sweep failed")


def create_app(settings: Optional[Dict[str, Any]] = None) -> FastAPI:
    """Create and configure the FastAPI application with DI"""
    from gateway_service.core.config import load_settings
    from gateway_service.core.factory import ServiceFactory

    settings = settings if settings is not None else load_settings()
    configure_logging(settings.get("logging", {}))

    gateway = ServiceFactory(settings).get_gateway_service()

    sessions_cfg = settings.get("sessions", {}) or {}
    idle_timeout = float(sessions_cfg.get("idle_timeout_sec", 0) or 0)
    sweep_interval = float(sessions_cfg.get("sweep_interval_sec", 30) or 30)
    grace = float((settings.get("limits", {}) or {}).get("shutdown_grace_sec", 1.0) or 0)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        reaper = None
        if idle_timeout > 0:
            reaper = asyncio.create_task(_reap_idle_sessions(gateway, idle_timeout, sweep_interval))
            logger.info(f"Idle session eviction enabled: timeout={idle_timeout}s, interval={sweep_interval}s")
        try:
            yield
        finally:
            if reaper is not None:
                reaper.cancel()
                try:
                    await reaper
                except asyncio.CancelledError:
                    pass
            logger.info("Shutting down server...")
            await gateway.shutdown(grace=grace)
            logger.info("Server shutdown complete")

    app = FastAPI(title="Session Gateway", lifespan=lifespan)
    # store service and settings on app state
    app.state.gateway = gateway
    app.state.settings = settings

    http_cfg = settings.get("http", {}) or {}
    app.include_router(build_router(http_cfg))
    app.include_router(health_router)
    return app
