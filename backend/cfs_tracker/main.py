from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Dict

import socketio
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from loguru import logger
from pymongo.errors import PyMongoError

from .database import db, ensure_indexes, settings
from .realtime import hub, sio
from .routers import auth, contact, donations, inventory, schools, stats
from .utils.logging import configure_logging
from .utils.security import hash_password
from .workflow.errors import WorkflowError

configure_logging(settings.log_level)

app = FastAPI(title="CFS Tracker API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(donations.router)
app.include_router(schools.router)
app.include_router(inventory.router)
app.include_router(contact.router)
app.include_router(stats.router)


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("{} {} failed: {}", request.method, request.url.path, exc.message)
    return JSONResponse({"detail": exc.message}, status_code=exc.status_code)


@app.get("/health")
async def healthcheck() -> Dict[str, str]:
    return {"status": "ok", "message": "CFS Tracker API is running"}


@app.websocket("/ws/events")
async def events_websocket(websocket: WebSocket) -> None:
    await hub.connect(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        hub.disconnect(websocket)


@sio.event
async def connect(sid, environ):  # pragma: no cover - socket handshake
    await hub.notify("socket_connected", {"sid": sid})


@sio.event
async def disconnect(sid):  # pragma: no cover - socket handshake
    await hub.notify("socket_disconnected", {"sid": sid})


socket_app = socketio.ASGIApp(sio, other_asgi_app=app)


@app.on_event("startup")
async def prepare_database() -> None:
    try:
        await ensure_indexes(db)
        if settings.seed_admin_password:
            users = db.get_collection("users")
            existing = await users.find_one({"email": settings.seed_admin_email})
            if not existing:
                await users.insert_one(
                    {
                        "email": settings.seed_admin_email,
                        "name": settings.seed_admin_name,
                        "password": hash_password(settings.seed_admin_password),
                        "role": "admin",
                        "created_at": datetime.utcnow(),
                    }
                )
                logger.info("Seeded admin account {}", settings.seed_admin_email)
    except PyMongoError as exc:  # pragma: no cover - external service
        logger.warning("MongoDB unavailable; skipping index creation and admin seeding: {}", exc)


DIST_DIR = Path(__file__).resolve().parent.parent / "frontend_dist"
INDEX_FILE = DIST_DIR / "index.html"
ASSETS_DIR = DIST_DIR / "assets"

if ASSETS_DIR.exists():
    app.mount("/assets", StaticFiles(directory=ASSETS_DIR), name="assets")


def spa_available() -> bool:
    return INDEX_FILE.exists()


@app.get("/", include_in_schema=False, response_model=None)
async def serve_root() -> JSONResponse | FileResponse:
    if spa_available():
        return FileResponse(INDEX_FILE)
    return JSONResponse({"status": "ok", "message": "frontend bundle missing; API operational"})


@app.get("/{full_path:path}", include_in_schema=False, response_model=None)
async def serve_spa(full_path: str) -> FileResponse | JSONResponse:
    if not spa_available() or full_path.startswith("api/"):
        return JSONResponse({"detail": "Not Found"}, status_code=404)

    candidate = (DIST_DIR / full_path).resolve()
    if candidate.is_file() and DIST_DIR.resolve() in candidate.parents:
        return FileResponse(candidate)
    return FileResponse(INDEX_FILE)
