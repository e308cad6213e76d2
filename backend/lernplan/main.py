import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from .config import Settings, get_settings
from .db.monitoring import pool_snapshot
from .db.session import dispose_engine, get_engine
from .logging_config import configure_logging
from .wizard_routes import router as wizard_router
from .wizard_routes import shutdown_controllers


configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    logger.info("Learning plan backend starting (persistence=%s)", settings.persistence_mode)
    yield
    shutdown_controllers()
    dispose_engine()
    logger.info("Learning plan backend stopped")


app = FastAPI(title="Learning Plan Wizard Backend", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(wizard_router)


@app.get("/healthz")
def health(settings: Settings = Depends(get_settings)) -> Dict[str, str]:
    return {"status": "ok", "persistence_mode": settings.persistence_mode}


@app.get("/healthz/database")
def database_health(settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    try:
        engine = get_engine()
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except Exception as exc:  # noqa: BLE001
        logger.warning("Database health check failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return {
        "status": "ok",
        "persistence_mode": settings.persistence_mode,
        "pool": pool_snapshot(engine),
    }
