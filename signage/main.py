import logging
import os
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from signage.api import group, media, playlist, schedule, screen, tv
from signage.db import init_db
from signage.errors import SignageError
from signage.scheduling.store import ScheduleLocks
from signage.services.notifier import ScreenNotifier
from signage.services.storage import STORAGE_DIR, ensure_storage

API_KEY = os.getenv("SIGNAGE_API_KEY", "").strip()
LOG_LEVEL = os.getenv("SIGNAGE_LOG_LEVEL", "INFO").strip().upper() or "INFO"
QUIET_ACCESS_LOG = os.getenv("SIGNAGE_QUIET_ACCESS_LOG", "1").strip().lower() in {"1", "true", "yes", "on"}

logger = logging.getLogger(__name__)
logging.getLogger("signage").setLevel(LOG_LEVEL)

if QUIET_ACCESS_LOG:
    # Keep warning/error lines, suppress normal access noise (200/201 etc).
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

app = FastAPI(title="signage-api")
app.state.notifier = ScreenNotifier()
app.state.schedule_locks = ScheduleLocks()
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SignageError)
async def signage_error_handler(request: Request, exc: SignageError):
    return JSONResponse(exc.payload(), status_code=exc.status_code)


@app.get("/")
def root():
    return {
        "ok": True,
        "service": "signage-api",
        "time_utc": datetime.now(timezone.utc).isoformat(),
        "docs": "/docs",
    }


@app.get("/healthz")
def healthz():
    return {"ok": True, "notify_revision": app.state.notifier.revision}


@app.on_event("startup")
async def startup_events() -> None:
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    init_db()
    ensure_storage()
    logger.info("signage-api ready (api key %s)", "on" if API_KEY else "off")


@app.middleware("http")
async def api_key_middleware(request: Request, call_next):
    if not API_KEY:
        return await call_next(request)
    path = request.url.path
    if path.startswith("/docs") or path.startswith("/openapi.json") or path.startswith("/redoc") or path.startswith("/storage"):
        return await call_next(request)
    if request.headers.get("X-API-Key") != API_KEY:
        return JSONResponse({"detail": "Unauthorized"}, status_code=401)
    return await call_next(request)


app.include_router(schedule.router)
app.include_router(screen.router)
app.include_router(group.router)
app.include_router(playlist.router)
app.include_router(media.router)
app.include_router(tv.router)

app.mount("/storage", StaticFiles(directory=STORAGE_DIR, check_dir=False), name="storage")
