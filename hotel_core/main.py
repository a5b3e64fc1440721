"""
Hotel core application entry point
Booking & folio ledger HTTP API
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from hotel_core import __version__
from hotel_core.config import settings
from hotel_core.database import init_db
from hotel_core.errors import CoreError, ValidationError, ConflictError, NotFoundError
from hotel_core.routers import availability, reservations, folios, reports
from hotel_core.scheduler import APSchedulerBackend, schedule_reconciliation

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

scheduler_backend = APSchedulerBackend()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and start the reconciliation job"""
    init_db()
    if schedule_reconciliation(scheduler_backend):
        scheduler_backend.start()
    logger.info(f"{settings.APP_NAME} {__version__} started")
    yield
    scheduler_backend.shutdown()


app = FastAPI(
    title=settings.APP_NAME,
    description="Booking & folio ledger core",
    version=__version__,
    lifespan=lifespan
)

STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (ValidationError, 422),
    (ConflictError, 409),
)


@app.exception_handler(CoreError)
async def core_error_handler(request: Request, exc: CoreError):
    status_code = next(
        (code for kind, code in STATUS_BY_ERROR if isinstance(exc, kind)), 500
    )
    if status_code == 500:
        logger.error(f"Unhandled core error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.code}
    )


app.include_router(availability.router)
app.include_router(reservations.router)
app.include_router(folios.router)
app.include_router(reports.router)


@app.get("/")
def root():
    return {"name": settings.APP_NAME, "version": __version__}


@app.get("/health")
def health():
    return {"status": "healthy"}
