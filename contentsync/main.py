import os
import logging
from datetime import datetime, timezone
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contentsync.db import Base, engine, ensure_sqlite_schema
from contentsync.api import content, creative, screen
from contentsync.models import content_item as _content_item_model  # noqa: F401
from contentsync.models import creative as _creative_model  # noqa: F401
from contentsync.models import screen as _screen_model  # noqa: F401
from contentsync.services.content_service import ContentService, get_content_service

Base.metadata.create_all(bind=engine)
ensure_sqlite_schema()

LOG_LEVEL = os.getenv("SIGNAGE_LOG_LEVEL", "INFO").strip().upper() or "INFO"
SYNC_ENABLED = os.getenv("SIGNAGE_SYNC_ENABLED", "1").strip().lower() in {"1", "true", "yes", "on"}
QUIET_ACCESS_LOG = os.getenv("SIGNAGE_QUIET_ACCESS_LOG", "1").strip().lower() in {"1", "true", "yes", "on"}
QUIET_HTTPX_LOG = os.getenv("SIGNAGE_QUIET_HTTPX_LOG", "1").strip().lower() in {"1", "true", "yes", "on"}

_package_logger = logging.getLogger("contentsync")
_package_logger.setLevel(LOG_LEVEL)
if not _package_logger.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter("%(levelname)s:     %(name)s - %(message)s"))
    _package_logger.addHandler(_handler)

if QUIET_ACCESS_LOG:
    # Keep warning/error lines, suppress normal access noise (200/201 etc).
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

if QUIET_HTTPX_LOG:
    # httpx logs every device API request at INFO; a full sync makes hundreds.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

app = FastAPI(title="Content Sync")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.get("/")
def root():
    return {
        "ok": True,
        "service": "contentsync",
        "time_utc": datetime.now(timezone.utc).isoformat(),
        "docs": "/docs",
    }

@app.get("/healthz")
def healthz(service: ContentService = Depends(get_content_service)):
    return {"ok": True, "sync_enabled": SYNC_ENABLED, **service.health()}


@app.on_event("startup")
async def startup_events() -> None:
    if not SYNC_ENABLED:
        logger.info("Content sync disabled by SIGNAGE_SYNC_ENABLED")
        return
    service = get_content_service()
    if not service.client.is_configured():
        logger.warning("Device API token missing; syncs will fail until it is configured")
    await service.start()


@app.on_event("shutdown")
async def shutdown_events() -> None:
    await get_content_service().stop()

app.include_router(screen.router)
app.include_router(content.router)
app.include_router(creative.router)
