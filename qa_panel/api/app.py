from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from qa_panel.api.middleware import register_middleware
from qa_panel.api.router import api_router
from qa_panel.config.settings import settings
from qa_panel.core.logger import configure_logging, get_logger
from qa_panel.db.database import init_db
from qa_panel.engine.bootstrap import AutotestService
from qa_panel.schemas.response_schemas import API_VERSION

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL, settings.APP_ENV)
    logger.info("app.startup", env=settings.APP_ENV, version=API_VERSION)
    service: AutotestService | None = app.state.autotests
    if service is None:
        await init_db()
        service = AutotestService(settings.state_db_path)
        app.state.autotests = service
    service.start()
    logger.info("app.startup.autotests_ready", resumed_runs=len(service.resumed_run_ids))
    yield
    service.shutdown()
    logger.info("app.shutdown")


def create_app(service: AutotestService | None = None) -> FastAPI:
    app = FastAPI(
        title="QA Admin Panel",
        version=API_VERSION,
        description="Autotest runs dashboard backend with simulated test execution",
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )
    app.state.autotests = service
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_middleware(app)
    app.include_router(api_router, prefix="/api/v1")
    return app


app = create_app()
