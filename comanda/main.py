import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from comanda.core.config import CORS_ORIGINS, DATABASE_URL, IS_DEV
from comanda.core.database import Base, engine
from comanda.core.logging_setup import configure_logging
from comanda.core.startup_checks import ensure_migrations_applied, validate_database_environment
from comanda.middleware.observability import ObservabilityMiddleware
from comanda.middleware.venue_context import VenueContextMiddleware
import comanda.models  # garante que os models são importados antes do create_all
import comanda.services.event_handlers  # registra handlers do event bus

from comanda.routers.orders import router as orders_router
from comanda.routers.payments import router as payments_router
from comanda.routers.kitchen import router as kitchen_router
from comanda.routers.events import router as events_router
from comanda.routers.internal_metrics import router as internal_metrics_router

configure_logging()

logger = logging.getLogger(__name__)
STARTUP_PREFIX = "[STARTUP]"
REPO_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_CONFIG_PATH = Path(
    os.getenv("ALEMBIC_CONFIG", str(REPO_ROOT / "alembic.ini"))
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    _startup_tasks()
    yield


def _startup_tasks() -> None:
    try:
        validate_database_environment()
        # Cria tabelas (dev). Em produção, use migrations.
        if DATABASE_URL.startswith("sqlite") and IS_DEV:
            Base.metadata.create_all(bind=engine)
        ensure_migrations_applied(engine=engine, alembic_config_path=ALEMBIC_CONFIG_PATH)
    except Exception:
        logger.exception("%s ERROR startup failed", STARTUP_PREFIX)
        raise
    logger.info("%s ready", STARTUP_PREFIX)


app = FastAPI(
    title="Comanda POS API",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ObservabilityMiddleware)
app.add_middleware(VenueContextMiddleware)

# Routers
app.include_router(orders_router)
app.include_router(payments_router)
app.include_router(kitchen_router)
app.include_router(events_router)
app.include_router(internal_metrics_router)


@app.get("/")
def root():
    return {"status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}
