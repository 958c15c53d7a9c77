# embedvideo/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from embedvideo import repo
from embedvideo.config import get_settings
from embedvideo.db import Base, SessionLocal, engine
from embedvideo.dispatcher import JobDispatcher

# ────────────────────────────────
# Import Routers
# ────────────────────────────────
from embedvideo.routes import admin, upload, videos, webhook

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def ensure_demo_api_key(db) -> None:
    if not settings.demo_api_key:
        return
    if repo.get_api_key(db, settings.demo_api_key) is None:
        repo.create_api_key(db, key=settings.demo_api_key, app_name="demo", owner="system")
        logger.info("Demo API key created")


# ────────────────────────────────
# Startup / Shutdown
# ────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as db:
        ensure_demo_api_key(db)

    enabled = [e for e in settings.encoders if e.enabled]
    if enabled:
        logger.info("Encoders available (%d):", len(enabled))
        for e in enabled:
            logger.info("  - %s: %s", e.name, e.url)
    else:
        logger.warning("⚠️ No encoders configured! Jobs will fail to dispatch.")

    dispatcher = JobDispatcher(
        SessionLocal,
        settings.encoders,
        webhook_url=settings.webhook_url,
        webhook_api_key=settings.webhook_api_key,
        gateway_url=settings.ipfs_gateway_url,
        request_timeout=settings.encoder_timeout_sec,
        batch_size=settings.dispatch_batch_size,
    )
    app.state.dispatcher = dispatcher
    dispatcher.start(settings.dispatch_interval_sec)

    yield

    logger.info("Shutting down gracefully...")
    dispatcher.stop()
    engine.dispose()


# ────────────────────────────────
# Initialize FastAPI
# ────────────────────────────────
app = FastAPI(title="Embed Video Upload API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ────────────────────────────────
# Register Routers
# ────────────────────────────────
app.include_router(upload.router)
app.include_router(videos.router)
app.include_router(webhook.router)
app.include_router(admin.router)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception on %s %s: %s", request.method, request.url.path, exc, exc_info=True)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# ────────────────────────────────
# Health Check Endpoint
# ────────────────────────────────
@app.get("/health")
def health_check():
    return {"status": "ok", "service": "embedvideo-upload"}
