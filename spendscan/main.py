"""
SpendScan Backend — FastAPI application entry‑point.
"""
import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from spendscan.config import settings
from spendscan.database import Base, SessionLocal, engine
from spendscan.exceptions import register_exception_handlers
from spendscan.pipeline.previews import sweep_expired

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(name)-30s  %(levelname)-5s  %(message)s",
)
logger = logging.getLogger(__name__)


def sweep_once() -> int:
    db = SessionLocal()
    try:
        return sweep_expired(db)
    finally:
        db.close()


async def sweep_previews_periodically(interval: float) -> None:
    """Delete expired previews every *interval* seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        try:
            await asyncio.to_thread(sweep_once)
        except Exception as e:
            logger.error("Preview sweep failed: %s", e, exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: ensure data dirs + tables exist
    os.makedirs(settings.DATA_DIR, exist_ok=True)
    os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
    # Import models so Base.metadata knows about them
    import spendscan.models  # noqa: F401
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ready (%s)", settings.DATABASE_URL)

    sweeper = None
    if settings.PREVIEW_SWEEP_INTERVAL_SEC > 0:
        sweeper = asyncio.create_task(
            sweep_previews_periodically(settings.PREVIEW_SWEEP_INTERVAL_SEC)
        )
        logger.info("Preview sweep every %ss", settings.PREVIEW_SWEEP_INTERVAL_SEC)

    yield

    if sweeper is not None:
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass
    logger.info("Shutting down")


app = FastAPI(
    title="SpendScan",
    description="Receipt / statement upload → AI extraction → preview → verified transactions",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_exception_handlers(app)


@app.get("/")
async def root():
    return {"service": "SpendScan", "version": "0.1.0", "status": "running"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


# ── Register API router ──────────────────────────────────────────────────
from spendscan.routers.uploads import router as uploads_router  # noqa: E402

app.include_router(uploads_router, prefix="/api", tags=["Uploads"])
