"""
Pulse Omega HTTP application.

``create_app(pipeline)`` serves an already-built pipeline (tests, embedding).
Without one, the app builds the production stack from the environment on
startup: structlog, the SQLAlchemy store and a ChatOpenAI-backed oracle.
"""
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pulse_omega.api.endpoints.omega import router as omega_router
from pulse_omega.config import OmegaSettings
from pulse_omega.llm.oracle import ChatModelOracle, build_chat_model
from pulse_omega.logging_config import get_logger, setup_logging
from pulse_omega.orchestrator import OmegaPipeline
from pulse_omega.persistence.database import (
    close_db_connections,
    create_engine,
    create_session_factory,
    init_models,
)
from pulse_omega.persistence.sql_store import SQLAlchemyRecordStore

logger = get_logger(__name__)

ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:8000"
).split(",")


@asynccontextmanager
async def _production_lifespan(app: FastAPI):
    settings = OmegaSettings.from_env()
    setup_logging(level=settings.log_level, json_logs=settings.json_logs)

    engine = create_engine(settings.database_url)
    await init_models(engine)
    store = SQLAlchemyRecordStore(create_session_factory(engine))
    app.state.pipeline = OmegaPipeline(
        ChatModelOracle(build_chat_model(settings)),
        store=store,
        context_provider=store,
        settings=settings,
    )
    logger.info("omega_service_started", model=settings.llm_model)
    try:
        yield
    finally:
        await close_db_connections(engine)
        logger.info("omega_service_stopped")


def create_app(pipeline: Optional[OmegaPipeline] = None) -> FastAPI:
    app = FastAPI(
        title="Pulse Omega",
        lifespan=None if pipeline is not None else _production_lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )
    if pipeline is not None:
        app.state.pipeline = pipeline

    app.include_router(omega_router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
