"""FastAPI application setup, reaper lifecycle and static page serving."""

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from . import session_manager
from .api import device_router, web_router
from .config import settings
from utils.logging_utils import get_tagged_logger, setup_logging

logger = get_tagged_logger(__name__, tag="app/main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: configure logging and start the expiry reaper.
    Shutdown: stop the reaper. Sessions are dropped with the process.
    """
    setup_logging(level=settings.log_level)
    if settings.reaper_enabled:
        session_manager.start_reaper()
    else:
        logger.warning("Expiry reaper disabled; idle sessions will not be evicted")
    yield
    session_manager.stop_reaper()


app = FastAPI(title="STB Web Settings", lifespan=lifespan)

_STATIC_DIR = Path(__file__).resolve().parent.parent / "static"

# Serve /static files
app.mount("/static", StaticFiles(directory=_STATIC_DIR), name="static")


# Serve index.html at "/"
@app.get("/")
def serve_index():
    """Serve the settings page where the human enters the session key."""
    return FileResponse(_STATIC_DIR / "index.html")


app.include_router(device_router)
app.include_router(web_router)
