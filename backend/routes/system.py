"""System information API routes."""

import os

from fastapi import APIRouter, Depends

from middleware.auth import get_current_user
from models import AuditEntry, NfsStatus
from services.cmd import run_cmd
from db import get_audit_log

router = APIRouter()

NFS_SERVICE = os.environ.get("NFS_SERVICE", "nfs-server")


@router.get("/audit", response_model=list[AuditEntry])
async def get_audit(
    limit: int = 100,
    offset: int = 0,
    target: str | None = None,
    user: dict = Depends(get_current_user),
):
    """Get audit log entries, newest first."""
    return await get_audit_log(limit=limit, offset=offset, target=target)


@router.get("/nfs-status", response_model=NfsStatus)
async def nfs_status(user: dict = Depends(get_current_user)):
    """Report whether the NFS server unit is active."""
    stdout, _, rc = await run_cmd(["systemctl", "is-active", NFS_SERVICE])
    state = stdout.strip() or "unknown"
    return {"service": NFS_SERVICE, "active": rc == 0, "state": state}
