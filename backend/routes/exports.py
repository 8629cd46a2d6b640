"""NFS export management API routes."""

from fastapi import APIRouter, Depends

from exceptions import ExportError
from middleware.auth import get_current_user
from models import (
    ExportDeclaration,
    ExportEntry,
    ExportPreview,
    ExportRemoveRequest,
    ExportResult,
)
from services import nfs_exports
from services.cmd import ValidationError
from db import audit_log

router = APIRouter()


def _target(body: ExportDeclaration | ExportRemoveRequest) -> str:
    return f"{body.directory} {body.network}"


def _error_detail(e: ExportError | ValidationError) -> str:
    return e.message if isinstance(e, ExportError) else str(e)


@router.get("", response_model=list[ExportEntry])
async def list_exports(user: dict = Depends(get_current_user)):
    """List directory/network entries in the exports file."""
    return nfs_exports.list_exports()


@router.put("", response_model=ExportResult)
async def apply_export(body: ExportDeclaration, user: dict = Depends(get_current_user)):
    """Add or replace the export line for a directory/network pair."""
    try:
        line = await nfs_exports.format_export_line(body)
        changed = await nfs_exports.apply_export(body, line=line)
    except (ExportError, ValidationError) as e:
        await audit_log(user["username"], "export.apply", _target(body), detail=_error_detail(e), success=False)
        raise
    await audit_log(user["username"], "export.apply", _target(body), detail=line if changed else "unchanged")
    return {"changed": changed, "directory": body.directory, "network": body.network, "line": line}


@router.delete("", response_model=ExportResult)
async def remove_export(body: ExportRemoveRequest, user: dict = Depends(get_current_user)):
    """Remove the export line(s) for a directory/network pair."""
    try:
        changed = await nfs_exports.remove_export(body)
    except (ExportError, ValidationError) as e:
        await audit_log(user["username"], "export.remove", _target(body), detail=_error_detail(e), success=False)
        raise
    await audit_log(user["username"], "export.remove", _target(body), detail="" if changed else "unchanged")
    return {"changed": changed, "directory": body.directory, "network": body.network, "line": None}


@router.post("/preview", response_model=ExportPreview)
async def preview_export(body: ExportDeclaration, user: dict = Depends(get_current_user)):
    """Show the line and match pattern a declaration produces, without writing."""
    line = await nfs_exports.format_export_line(body)
    pattern = nfs_exports.format_export_pattern(body)
    return {"line": line, "pattern": pattern.pattern}


@router.post("/reload")
async def reload_exports(user: dict = Depends(get_current_user)):
    """Run exportfs -ar regardless of file changes."""
    try:
        await nfs_exports.reload_exports()
    except ExportError as e:
        await audit_log(user["username"], "export.reload", "exportfs", detail=e.message, success=False)
        raise
    await audit_log(user["username"], "export.reload", "exportfs")
    return {"message": "NFS exports reloaded"}
