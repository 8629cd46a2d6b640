"""PAM authentication middleware and session management.

Uses python-pam to authenticate against system users.
Sessions are stored in SQLite (see db.py).
"""

import logging
import time
from collections import deque

import pam
from fastapi import Cookie, HTTPException, Request, Response

from db import create_session, delete_session, get_session

logger = logging.getLogger(__name__)

_pam = pam.pam()

COOKIE_NAME = "nfs_session"

# Login attempts allowed per username within the window
RATE_LIMIT_ATTEMPTS = 5
RATE_LIMIT_WINDOW = 300  # seconds

# Tracked usernames before check_rate_limit sweeps stale ones
RATE_LIMIT_MAX_KEYS = 10000

_login_attempts: dict[str, deque[float]] = {}


def _prune(attempts: deque[float], now: float) -> None:
    while attempts and now - attempts[0] > RATE_LIMIT_WINDOW:
        attempts.popleft()


def prune_login_attempts() -> int:
    """Drop usernames with no attempts left in the window. Returns count dropped."""
    now = time.monotonic()
    stale = []
    for username, attempts in _login_attempts.items():
        _prune(attempts, now)
        if not attempts:
            stale.append(username)
    for username in stale:
        del _login_attempts[username]
    return len(stale)


def check_rate_limit(username: str) -> bool:
    """Record a login attempt; False once the username exceeds the limit."""
    now = time.monotonic()
    if len(_login_attempts) >= RATE_LIMIT_MAX_KEYS:
        prune_login_attempts()
        # Still full: forget the longest-tracked usernames
        while len(_login_attempts) >= RATE_LIMIT_MAX_KEYS:
            del _login_attempts[next(iter(_login_attempts))]
    attempts = _login_attempts.setdefault(username, deque())
    _prune(attempts, now)
    if len(attempts) >= RATE_LIMIT_ATTEMPTS:
        logger.warning("Login rate limit hit for %s", username)
        return False
    attempts.append(now)
    return True


def authenticate_user(username: str, password: str) -> bool:
    """Authenticate a user via PAM."""
    return _pam.authenticate(username, password)


async def login(username: str, password: str, response: Response) -> dict:
    """Authenticate and create a session cookie."""
    if not authenticate_user(username, password):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    _login_attempts.pop(username, None)
    session_id = await create_session(username)
    response.set_cookie(
        key=COOKIE_NAME,
        value=session_id,
        httponly=True,
        samesite="lax",
        path="/api",
        max_age=86400,
    )
    logger.info("User %s logged in", username)
    return {"username": username, "message": "Login successful"}


async def logout(response: Response, session_id: str | None = None) -> dict:
    """Delete the session and clear the cookie."""
    if session_id:
        await delete_session(session_id)
    response.delete_cookie(key=COOKIE_NAME, path="/api")
    return {"message": "Logged out"}


async def get_current_user(
    request: Request,
    nfs_session: str | None = Cookie(None),
) -> dict:
    """Dependency: get the current authenticated user from the session cookie.

    Also validates the X-Requested-With header for CSRF protection on
    state-changing requests (POST, PUT, DELETE, PATCH).
    """
    if request.method in ("POST", "PUT", "DELETE", "PATCH"):
        if request.headers.get("X-Requested-With") != "XMLHttpRequest":
            raise HTTPException(status_code=403, detail="Missing CSRF header")

    if not nfs_session:
        raise HTTPException(status_code=401, detail="Not authenticated")

    session = await get_session(nfs_session)
    if session is None:
        raise HTTPException(status_code=401, detail="Session expired or invalid")

    return {"username": session["username"]}
