"""Tests for db.py — SQLite database operations.

Uses the in-memory test_db fixture from conftest.py.

Covers:
- Session CRUD: create, get, delete, expiry cleanup
- Audit log: write entries, retrieve with limit/offset/target
"""

import time

import pytest

import db as db_module


# ===================================================================
# Session management
# ===================================================================


class TestSessions:

    @pytest.mark.asyncio
    async def test_create_session_returns_hex_id(self, test_db):
        sid = await db_module.create_session("alice")
        assert isinstance(sid, str)
        assert len(sid) == 32

    @pytest.mark.asyncio
    async def test_get_session_returns_dict(self, test_db):
        sid = await db_module.create_session("alice")
        session = await db_module.get_session(sid)
        assert session["username"] == "alice"
        assert session["id"] == sid

    @pytest.mark.asyncio
    async def test_get_session_not_found(self, test_db):
        assert await db_module.get_session("nonexistent_session_id") is None

    @pytest.mark.asyncio
    async def test_get_session_expired(self, test_db):
        sid = await db_module.create_session("alice")
        await test_db.execute(
            "UPDATE sessions SET expires_at = ? WHERE id = ?",
            (time.time() - 100, sid),
        )
        await test_db.commit()

        assert await db_module.get_session(sid) is None
        cursor = await test_db.execute("SELECT COUNT(*) FROM sessions WHERE id = ?", (sid,))
        row = await cursor.fetchone()
        assert row[0] == 0

    @pytest.mark.asyncio
    async def test_delete_session(self, test_db):
        sid = await db_module.create_session("alice")
        await db_module.delete_session(sid)
        assert await db_module.get_session(sid) is None

    @pytest.mark.asyncio
    async def test_cleanup_sessions(self, test_db):
        keep = await db_module.create_session("alice")
        expire = await db_module.create_session("bob")
        await test_db.execute(
            "UPDATE sessions SET expires_at = ? WHERE id = ?",
            (time.time() - 1, expire),
        )
        await test_db.commit()

        assert await db_module.cleanup_sessions() == 1
        assert await db_module.get_session(keep) is not None


# ===================================================================
# Audit log
# ===================================================================


class TestAuditLog:

    @pytest.mark.asyncio
    async def test_write_and_read(self, test_db):
        await db_module.audit_log(
            "admin", "export.apply", "/srv/data 10.0.0.0/24",
            detail="/srv/data 10.0.0.0/24(rw,sync)",
        )
        entries = await db_module.get_audit_log()
        assert len(entries) == 1
        entry = entries[0]
        assert entry["username"] == "admin"
        assert entry["action"] == "export.apply"
        assert entry["detail"] == "/srv/data 10.0.0.0/24(rw,sync)"
        assert entry["success"] == 1

    @pytest.mark.asyncio
    async def test_failure_recorded(self, test_db):
        await db_module.audit_log("admin", "export.reload", "exportfs", detail="boom", success=False)
        entries = await db_module.get_audit_log()
        assert entries[0]["success"] == 0

    @pytest.mark.asyncio
    async def test_newest_first_with_limit_offset(self, test_db):
        for i in range(5):
            await db_module.audit_log("admin", "export.apply", f"/srv/{i} *")
        entries = await db_module.get_audit_log(limit=2, offset=1)
        assert [e["target"] for e in entries] == ["/srv/3 *", "/srv/2 *"]

    @pytest.mark.asyncio
    async def test_filter_by_target(self, test_db):
        await db_module.audit_log("admin", "export.apply", "/srv/a *")
        await db_module.audit_log("admin", "export.apply", "/srv/b *")
        await db_module.audit_log("admin", "export.remove", "/srv/a *")
        entries = await db_module.get_audit_log(target="/srv/a *")
        assert [e["action"] for e in entries] == ["export.remove", "export.apply"]
