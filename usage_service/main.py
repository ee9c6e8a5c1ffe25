from contextlib import asynccontextmanager
from fastapi import FastAPI
import structlog
from .config import Settings, settings
from .db import Database
from .logging import setup_logging
from .api.routes import router as api_router

log = structlog.get_logger()

def create_app(app_settings: Settings | None = None) -> FastAPI:
    app_settings = app_settings or settings
    setup_logging(app_settings.service_name)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database = Database(app_settings.db_path, app_settings.db_busy_timeout_seconds)
        database.initialize()
        app.state.settings = app_settings
        app.state.database = database
        log.info("service_started", db_path=app_settings.db_path)
        yield
        log.info("service_stopped")

    app = FastAPI(title=app_settings.service_name, lifespan=lifespan)
    app.include_router(api_router)
    return app

app = create_app()
