import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Import all models to ensure they're registered with SQLAlchemy Base
from . import (
    models,  # noqa: F401
    models_calendar_sync,  # noqa: F401
)
from .database import Base, engine
from .exceptions import (
    ExternalUnavailable,
    NotFoundError,
    PersistenceError,
    SlotConflictError,
    ValidationError,
)
from .routes.availability import router as availability_router
from .routes.business_hours import router as business_hours_router
from .routes.calendar_sync import router as calendar_sync_router
from .routes.email import router as email_router
from .routes.reservations import router as reservations_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",") if o.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")
            raise

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="BookingSync API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content={"detail": str(exc), "field": exc.field})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(SlotConflictError)
async def slot_conflict_handler(request: Request, exc: SlotConflictError):
    return JSONResponse(
        status_code=409,
        content={
            "detail": str(exc),
            "bucketStart": exc.bucket_start.isoformat() if exc.bucket_start else None,
        },
    )


@app.exception_handler(ExternalUnavailable)
async def external_unavailable_handler(request: Request, exc: ExternalUnavailable):
    logger.warning(f"⚠️ External service failure on {request.url.path}: {exc}")
    return JSONResponse(status_code=502, content={"detail": str(exc), "service": exc.service})


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    logger.error(f"❌ Persistence failure on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal storage error"})


app.include_router(availability_router)
app.include_router(reservations_router)
app.include_router(business_hours_router)
app.include_router(calendar_sync_router)
app.include_router(email_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
