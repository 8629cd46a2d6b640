"""NFS Export Manager — FastAPI backend entry point."""

import asyncio
import logging
import os
import shutil
import sys

from fastapi import Cookie, Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from exceptions import ExportError
from models import LoginRequest, LoginResponse, UserInfo
from services.cmd import ValidationError
from services.nfs_exports import EXPORTFS_CMD, EXPORTS_FILE
from middleware.auth import check_rate_limit, get_current_user, login, logout, prune_login_attempts
from routes import exports, system
from db import cleanup_sessions, close_db

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="NFS Export Manager",
    version="0.1.0",
    description="Idempotent management of /etc/exports entries",
)

cors_origins = os.environ.get("CORS_ORIGINS", "http://localhost:5173").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Exception handlers ---


@app.exception_handler(ExportError)
async def export_error_handler(request: Request, exc: ExportError) -> JSONResponse:
    """Map export exceptions to HTTP responses with safe error messages."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message},
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Map input validation errors to 400 responses."""
    return JSONResponse(
        status_code=400,
        content={"error": str(exc)},
    )


# --- Lifecycle ---


async def session_cleanup_task() -> None:
    while True:
        await asyncio.sleep(3600)
        try:
            removed = await cleanup_sessions()
            logger.debug("Removed %d expired sessions", removed)
            prune_login_attempts()
        except Exception:
            logger.exception("Session cleanup failed")


@app.on_event("startup")
async def startup() -> None:
    """Check that exportfs is available; exports can still be edited without it."""
    exportfs_path = shutil.which(EXPORTFS_CMD[0])
    if not exportfs_path:
        logger.critical(
            "Required command not found: %s. "
            "Install the NFS server: apt install nfs-kernel-server",
            EXPORTFS_CMD[0],
        )
    else:
        logger.info("exportfs found: %s (exports file %s)", exportfs_path, EXPORTS_FILE)

    app.state.cleanup_task = asyncio.create_task(session_cleanup_task())


@app.on_event("shutdown")
async def shutdown() -> None:
    app.state.cleanup_task.cancel()
    await close_db()


# --- Auth routes ---


@app.post("/api/auth/login", response_model=LoginResponse)
async def auth_login(body: LoginRequest, response: Response):
    if not check_rate_limit(body.username):
        raise HTTPException(status_code=429, detail="Too many login attempts. Try again later.")
    return await login(body.username, body.password, response)


@app.post("/api/auth/logout")
async def auth_logout(response: Response, nfs_session: str | None = Cookie(None)):
    return await logout(response, nfs_session)


@app.get("/api/auth/me", response_model=UserInfo)
async def auth_me(user: dict = Depends(get_current_user)):
    return user


# --- Mount routers ---

app.include_router(exports.router, prefix="/api/exports", tags=["exports"])
app.include_router(system.router, prefix="/api/system", tags=["system"])


# --- Health check (unauthenticated) ---


@app.get("/api/health")
async def health() -> dict:
    """Health check — verifies exportfs is available."""
    exportfs_available = shutil.which(EXPORTFS_CMD[0]) is not None

    return {
        "status": "ok" if exportfs_available else "degraded",
        "exportfs": exportfs_available,
        "exports_file": str(EXPORTS_FILE),
    }
