"""Shared fixtures for the NFS Export Manager test suite.

Provides:
- sys.path setup so imports work like the backend does (from services.cmd, etc.)
- In-memory SQLite database fixture for pure async db tests
- FastAPI TestClient with mocked auth dependency and in-app db patching
- Temporary exports file / lock file in place of /etc/exports
- Mock exportfs and getent fixtures (prevent real subprocess calls)
"""

import sys
import os
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
import aiosqlite

# --- Path setup: backend/ must be on sys.path so bare imports work ---
BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

import db as db_module
from services import nfs_exports


PASSWD = (
    "root:x:0:0:root:/root:/bin/bash\n"
    "daemon:x:1:1:daemon:/usr/sbin:/usr/sbin/nologin\n"
    "alice:x:1000:1000:Alice,,,:/home/alice:/bin/bash\n"
    "nobody:x:65534:65534:nobody:/nonexistent:/usr/sbin/nologin\n"
)

GROUP = (
    "root:x:0:\n"
    "users:x:100:alice\n"
    "nogroup:x:65534:\n"
)


# ---------------------------------------------------------------------------
# In-memory database fixture (for pure async tests like test_db.py)
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def test_db():
    """Create an in-memory SQLite database with the full schema.

    Sets db_module._db directly so all db module functions use the
    in-memory database instead of the on-disk one.
    """
    conn = await aiosqlite.connect(":memory:")
    conn.row_factory = aiosqlite.Row
    await conn.executescript(db_module.SCHEMA)
    await conn.commit()

    original_db = db_module._db
    db_module._db = conn

    yield conn

    db_module._db = original_db
    await conn.close()


# ---------------------------------------------------------------------------
# Exports file and subprocess fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def exports_file(tmp_path, monkeypatch):
    """Point the exports service at a temporary exports file (not created)."""
    path = tmp_path / "exports"
    monkeypatch.setattr(nfs_exports, "EXPORTS_FILE", path)
    monkeypatch.setattr(nfs_exports, "LOCK_PATH", tmp_path / "run" / "exports.lock")
    return path


@pytest.fixture
def mock_exportfs():
    """Patch the exportfs runner. Default return is success with empty output."""
    mock = AsyncMock(return_value=("", "", 0))
    with patch("services.nfs_exports.run_cmd", mock):
        yield mock


def _getent_side_effect(cmd):
    database = cmd[1]
    if database == "passwd":
        return PASSWD, "", 0
    if database == "group":
        return GROUP, "", 0
    return "", f"Unknown database: {database}", 1


@pytest.fixture
def mock_getent():
    """Patch getent with a small fixed passwd and group database."""
    mock = AsyncMock(side_effect=_getent_side_effect)
    with patch("services.identity.run_cmd", mock):
        yield mock


# ---------------------------------------------------------------------------
# FastAPI TestClient with authentication bypassed
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_current_user():
    """Return a fake user dict used to override the auth dependency."""
    return {"username": "testadmin"}


@pytest.fixture
def client(mock_current_user):
    """Provide a synchronous httpx TestClient for the FastAPI app.

    - Authentication is bypassed (get_current_user returns a fixed user).
    - The db module's get_db is replaced so it lazily creates an
      in-memory connection on the TestClient's event loop.
    """
    from fastapi.testclient import TestClient
    from middleware.auth import get_current_user
    from main import app

    async def _override_user():
        return mock_current_user

    app.dependency_overrides[get_current_user] = _override_user

    _test_conn = None
    original_get_db = db_module.get_db
    original_db = db_module._db

    async def _test_get_db():
        nonlocal _test_conn
        if _test_conn is None:
            _test_conn = await aiosqlite.connect(":memory:")
            _test_conn.row_factory = aiosqlite.Row
            await _test_conn.executescript(db_module.SCHEMA)
            await _test_conn.commit()
            db_module._db = _test_conn
        return _test_conn

    db_module.get_db = _test_get_db

    with TestClient(app, raise_server_exceptions=False) as c:
        yield c

    db_module.get_db = original_get_db
    db_module._db = original_db
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Headers required for mutating requests (CSRF protection)."""
    return {"X-Requested-With": "XMLHttpRequest"}
