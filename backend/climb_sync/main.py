import logging
import os
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware

from .context import SyncContext, build_context
from .logging_config import configure_logging
from .profile_routes import router as profile_router
from .service import ProfileSyncService

logger = logging.getLogger(__name__)


def create_app(context: Optional[SyncContext] = None) -> FastAPI:
    configure_logging()
    context = context or build_context()
    app = FastAPI(title="Climb Sync Backend", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.sync_context = context
    app.state.service = ProfileSyncService(context)
    app.include_router(profile_router)

    info = context.mode.describe()
    logger.info("Backend starting in %s mode (persistence target: %s)", info.mode.value, info.persistence_target)
    logger.info("OpenAI API key configured: %s", bool(context.settings.openai_api_key))

    @app.get("/healthz")
    def health(request: Request) -> Dict[str, Any]:
        env = request.app.state.sync_context.mode.describe()
        return {
            "status": "ok",
            "mode": env.mode.value,
            "persistence_target": env.persistence_target,
            "ai_enabled": env.ai_enabled,
        }

    @app.get("/healthz/database")
    def database_health(request: Request) -> Dict[str, Any]:
        ctx: SyncContext = request.app.state.sync_context
        if ctx.database is None:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="No database configured")
        try:
            ctx.database.ping()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Database health check failed: %s", exc)
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
        return {"status": "ok", "persistence_mode": ctx.mode.describe().persistence_target}

    @app.on_event("shutdown")
    def _dispose() -> None:
        context.close()

    return app


def run() -> None:
    import uvicorn

    uvicorn.run(create_app(), host=os.getenv("CLIMB_HOST", "127.0.0.1"), port=int(os.getenv("CLIMB_PORT", "8000")))
