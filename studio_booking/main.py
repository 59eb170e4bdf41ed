import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Import models so they're registered with SQLAlchemy Base
from . import models  # noqa: F401
from .config import ADMIN_TOKEN, CORS_ORIGINS, LOG_LEVEL
from .database import Base, SessionLocal, engine
from .domain.appointments.router import router as appointments_router
from .errors import CalendarSyncError
from .routes.google_calendar import router as google_calendar_router
from .services.calendar_config import CalendarConfigStore

# Configure logging
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


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

    if ADMIN_TOKEN:
        db = SessionLocal()
        try:
            CalendarConfigStore(db).ensure_admin_token(ADMIN_TOKEN)
        finally:
            db.close()
    else:
        logger.warning("⚠️ ADMIN_TOKEN not set - dashboard access depends on an existing admin_config row")

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="Studio Booking API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(CalendarSyncError)
async def calendar_sync_exception_handler(request: Request, exc: CalendarSyncError):
    """Sync failures are reported as a success flag plus a readable message"""
    logger.error(f"❌ Calendar sync error on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": jsonable_errors(exc)})


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    # ctx may hold exception instances that JSONResponse cannot encode
    return jsonable_encoder([{k: v for k, v in error.items() if k != "ctx"} for error in exc.errors()])


app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=[
        "authorization",
        "content-type",
        "x-admin-token",
        "x-goog-channel-id",
        "x-goog-channel-token",
        "x-goog-resource-id",
        "x-goog-resource-state",
        "x-goog-resource-uri",
    ],
)

app.include_router(appointments_router)
app.include_router(google_calendar_router)


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
