import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy import text

from app.db.base import Base, SessionLocal, engine, get_db
from app.core.config import settings
from app.routers import ledger as ledger_router
from app.services.scheduler import rollover_loop, run_rollover_tick
from app.core.errors import (
    LedgerException,
    ledger_exception_handler,
    validation_exception_handler,
    unhandled_exception_handler,
)

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, close a stale day, then keep checking for the boundary."""
    logger.info("Starting daily objectives ledger (%s)", settings.APP_ENV)
    Base.metadata.create_all(bind=engine)

    try:
        await asyncio.to_thread(run_rollover_tick, SessionLocal, settings.STORAGE_KEY)
    except Exception:
        logger.exception("Startup rollover check failed")

    stop = asyncio.Event()
    task = None
    if settings.ROLLOVER_SCHEDULER_ENABLED:
        task = asyncio.create_task(
            rollover_loop(SessionLocal, settings.STORAGE_KEY, settings.ROLLOVER_CHECK_SECONDS, stop)
        )
    try:
        yield
    finally:
        stop.set()
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Daily objectives ledger stopped")


app = FastAPI(
    title="Daily Objectives Ledger API",
    description=(
        "**Local daily objectives tracker**\n\n"
        "Records completed objectives, point-valued activities and manual "
        "adjustments for the current day, and rolls each day into a "
        "persistent history with a rolling total.\n\n"
        "All error responses follow the `{code, message, details}` envelope."
    ),
    version="3.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Exception handlers (most specific first) ---
app.add_exception_handler(LedgerException, ledger_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# --- Routers ---
app.include_router(ledger_router.router)


@app.get("/health", tags=["health"], summary="Health check")
def health(db: Session = Depends(get_db)):
    """
    Returns `{"status": "ok", "db": "ok"}` when the local ledger storage is
    reachable. Returns HTTP 503 otherwise.
    """
    try:
        db.execute(text("SELECT 1"))
        db_status = "ok"
    except Exception:
        logger.exception("Health check could not reach the database")
        db_status = "unreachable"

    if db_status != "ok":
        return JSONResponse(
            status_code=503,
            content={"status": "error", "db": db_status},
        )
    return {"status": "ok", "db": "ok", "env": settings.APP_ENV}
