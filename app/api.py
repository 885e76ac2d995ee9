"""HTTP surface for the roster app: the static shell plus config and health probes."""

from __future__ import annotations

from contextlib import asynccontextmanager
import datetime
import logging
import sys
from pathlib import Path
from typing import Any, Dict

from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.responses import FileResponse, JSONResponse

# Keep the flat absolute imports (e.g. "import settings") resolvable under uvicorn.
APP_DIR = Path(__file__).resolve().parent
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from database import init_database  # noqa: E402
from logging_config import setup_logging  # noqa: E402
import settings as app_settings  # noqa: E402
from settings import STATIC_DIR, remote_config  # noqa: E402

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    setup_logging()
    init_database()
    logger.info("Roster server ready; remote configured at %s", remote_config()["supabase"]["url"])
    yield


app = FastAPI(title="Staff Roster", version="0.1", lifespan=lifespan)


@app.get("/")
def index() -> FileResponse:
    return FileResponse(STATIC_DIR / "index.html")


@app.get("/api/config")
def client_config() -> JSONResponse:
    return JSONResponse(content=remote_config(app_settings.settings))


@app.get("/api/health")
def health() -> JSONResponse:
    payload: Dict[str, Any] = {
        "status": "ok",
        "timestamp": datetime.datetime.now(datetime.timezone.utc),
        "database": bool(app_settings.settings.DATABASE_URL),
    }
    return JSONResponse(content=jsonable_encoder(payload))
