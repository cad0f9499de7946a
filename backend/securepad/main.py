"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from securepad.alerts.dispatcher import AlertDispatcher
from securepad.config import get_settings
from securepad.db.session import get_session, init_db
from securepad.files.blobstore import LocalBlobStore
from securepad.files.routes import router as files_router
from securepad.pads.routes import router as pads_router
from securepad.retention.engine import RetentionScheduler, run_retention_tick
from securepad.summarize import Summarizer

log = logging.getLogger(__name__)


def _setup_logging() -> None:
    """Configure logging from settings (stderr always; optional file)."""
    settings = get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    fmt = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    root = logging.getLogger("securepad")
    root.setLevel(level)
    root.handlers.clear()
    sh = logging.StreamHandler()
    sh.setLevel(level)
    sh.setFormatter(fmt)
    root.addHandler(sh)
    if settings.log_file and str(settings.log_file).strip():
        try:
            fh = logging.FileHandler(settings.log_file, encoding="utf-8")
            fh.setLevel(level)
            fh.setFormatter(fmt)
            root.addHandler(fh)
            root.info("Logging to file %s", settings.log_file)
        except OSError as e:
            root.warning("Could not open log file %s: %s", settings.log_file, e)
    else:
        root.debug("Logging to stderr only (no log_file set)")


_setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and collaborators; run retention once now and then on a timer."""
    settings = get_settings()
    log.info("Startup: initializing database and storage")
    await init_db()
    settings.storage_base_path.mkdir(parents=True, exist_ok=True)
    app.state.blob_store = LocalBlobStore(settings.storage_base_path)
    app.state.dispatcher = AlertDispatcher(settings)
    app.state.summarizer = Summarizer(settings)
    if not app.state.dispatcher.enabled:
        log.warning("Email alerts disabled: SMTP configuration missing")

    scheduler = None
    if settings.retention_enabled:

        async def _tick():
            return await run_retention_tick(get_session, app.state.blob_store, settings)

        scheduler = RetentionScheduler(_tick, settings.retention_interval_minutes * 60)
        scheduler.start()
    log.info("Startup complete")
    yield
    log.info("Shutdown")
    if scheduler is not None:
        await scheduler.stop()
    await app.state.dispatcher.drain()


app = FastAPI(title="SecurePad API", version="0.1.0", lifespan=lifespan)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    """Add security headers to all responses."""
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    return response


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Return generic 500 without leaking stack trace or internals."""
    if isinstance(exc, HTTPException):
        raise exc
    log.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


app.include_router(pads_router)
app.include_router(files_router)


@app.get("/health")
def health() -> JSONResponse:
    """Health check for Docker and load balancers."""
    return JSONResponse(content={"status": "ok"})


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    uvicorn.run("securepad.main:app", host="0.0.0.0", port=get_settings().port)
