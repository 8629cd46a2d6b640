"""NFS exports management.

Reconciles one ``<directory> <network>(options)`` line per declaration in the
exports file (/etc/exports unless NFS_EXPORTS_FILE is set) and re-exports
when the file actually changes. Comments, blank lines and other exports are
never touched.
"""

import asyncio
import fcntl
import logging
import os
import re
import shlex
import tempfile
from pathlib import Path

from exceptions import ExportPermissionError, IdentityNotFoundError, parse_exportfs_error
from services.cmd import (
    run_cmd,
    validate_export_directory,
    validate_export_option,
    validate_network,
)
from services.identity import find_gid, find_uid

logger = logging.getLogger(__name__)

EXPORTS_FILE = Path(os.environ.get("NFS_EXPORTS_FILE", "/etc/exports"))
LOCK_PATH = Path(os.environ.get("NFS_EXPORTS_LOCK", "/run/nfs-export-manager.lock"))
EXPORTFS_CMD = shlex.split(os.environ.get("NFS_EXPORTFS_CMD", "exportfs -ar"))

# host(opts) host2 host3(opts) ...
_CLIENT_RE = re.compile(r"(\S+?)(?:\(([^)]*)\))?(?=\s|$)")


async def format_export_line(decl) -> str:
    """Build the exports line for a declaration.

    Anonymous user/group names are resolved to ``anonuid=``/``anongid=``
    options appended after the declared options. The declaration itself is
    not modified.
    """
    validate_export_directory(decl.directory)
    validate_network(decl.network)

    options = list(decl.options)
    if decl.anon_user:
        uid = await find_uid(decl.anon_user)
        if uid is None:
            raise IdentityNotFoundError(f"Unknown anonymous user: {decl.anon_user}")
        options.append(f"anonuid={uid}")
    if decl.anon_group:
        gid = await find_gid(decl.anon_group)
        if gid is None:
            raise IdentityNotFoundError(f"Unknown anonymous group: {decl.anon_group}")
        options.append(f"anongid={gid}")
    for option in options:
        validate_export_option(option)

    ro_rw = "rw" if decl.writeable else "ro"
    sync_async = "sync" if decl.sync else "async"
    clause = ",".join(options)
    if clause:
        clause = f",{clause}"
    return f"{decl.directory} {decl.network}({ro_rw},{sync_async}{clause})"


def format_export_pattern(decl) -> re.Pattern[str]:
    """Pattern matching the exports line for the declaration's directory and network.

    Only lines whose first client is ``decl.network`` match; a line listing
    the network after another client is not seen by apply or remove.
    """
    return re.compile(
        rf"^{re.escape(decl.directory)} {re.escape(decl.network)}(?:\(|$)"
    )


def _split_lines(text: str) -> list[str]:
    """Split on newlines only, keeping terminators."""
    return [line for line in re.split(r"(?<=\n)", text) if line]


def _matches(pattern: re.Pattern[str], line: str) -> bool:
    return pattern.search(line.rstrip("\r\n")) is not None


def replace_or_add_line(text: str, pattern: re.Pattern[str], line: str) -> str:
    """Replace every line matching ``pattern`` with ``line``, or append it."""
    found = False
    new_lines = []
    for existing in _split_lines(text):
        if _matches(pattern, existing):
            found = True
            body = existing.rstrip("\r\n")
            new_lines.append(line + existing[len(body):])
        else:
            new_lines.append(existing)

    if not found:
        if new_lines and not new_lines[-1].endswith("\n"):
            new_lines[-1] += "\n"
        new_lines.append(line + "\n")
    return "".join(new_lines)


def delete_lines(text: str, pattern: re.Pattern[str]) -> str:
    """Drop every line matching ``pattern``."""
    return "".join(
        existing for existing in _split_lines(text) if not _matches(pattern, existing)
    )


def _read_exports() -> str | None:
    try:
        return EXPORTS_FILE.read_text(encoding="utf-8", errors="surrogateescape")
    except FileNotFoundError:
        return None


def _write_exports(content: str) -> None:
    """Atomically replace the exports file, keeping its permission bits."""
    try:
        mode = EXPORTS_FILE.stat().st_mode & 0o7777
    except FileNotFoundError:
        mode = 0o644

    fd, tmp_name = tempfile.mkstemp(dir=EXPORTS_FILE.parent, prefix=f".{EXPORTS_FILE.name}.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", errors="surrogateescape") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, EXPORTS_FILE)
    except Exception:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    dir_fd = os.open(EXPORTS_FILE.parent, os.O_RDONLY)
    try:
        os.fsync(dir_fd)
    finally:
        os.close(dir_fd)


def _with_lock(fn):
    """Execute fn while holding an exclusive lock on LOCK_PATH."""
    LOCK_PATH.parent.mkdir(parents=True, exist_ok=True)
    with open(LOCK_PATH, "a") as lf:
        fcntl.flock(lf, fcntl.LOCK_EX)
        try:
            return fn()
        finally:
            fcntl.flock(lf, fcntl.LOCK_UN)


async def _locked(fn):
    """Run a read-modify-write of the exports file in a thread, under the lock."""
    try:
        return await asyncio.to_thread(_with_lock, fn)
    except PermissionError as e:
        raise ExportPermissionError(f"Cannot update {EXPORTS_FILE}: {e.strerror}") from e


async def reload_exports() -> None:
    """Re-export all NFS shares via exportfs -ar."""
    _, stderr, rc = await run_cmd(EXPORTFS_CMD)
    if rc != 0:
        logger.error("%s failed: %s", " ".join(EXPORTFS_CMD), stderr.strip())
        raise parse_exportfs_error(stderr, rc)
    logger.info("Reloaded NFS exports")


def list_exports() -> list[dict]:
    """Parse the exports file, returns [{directory, network, options}]."""
    text = _read_exports()
    if text is None:
        return []

    exports = []
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split(None, 1)
        if len(parts) < 2:
            continue
        directory, rest = parts
        for match in _CLIENT_RE.finditer(rest):
            opts = match.group(2) or ""
            exports.append({
                "directory": directory,
                "network": match.group(1),
                "options": [o.strip() for o in opts.split(",") if o.strip()],
            })
    return exports


async def apply_export(decl, line: str | None = None) -> bool:
    """Make the exports file contain the declaration's line. Idempotent.

    ``line`` is the result of format_export_line(decl) when the caller has
    already built it. Returns True when the file changed, in which case the
    export table has been reloaded.
    """
    pattern = format_export_pattern(decl)
    if line is None:
        line = await format_export_line(decl)

    def _update() -> bool:
        current = _read_exports()
        if not current:
            new = line + "\n"
        else:
            new = replace_or_add_line(current, pattern, line)
        if new == current:
            return False
        _write_exports(new)
        return True

    changed = await _locked(_update)
    if not changed:
        logger.debug("Export already up to date: %s", line)
        return False

    logger.info("Updated NFS export: %s", line)
    await reload_exports()
    return True


async def remove_export(decl) -> bool:
    """Remove every exports line for the declaration's directory and network.

    Returns True when lines were removed and the export table reloaded.
    A missing exports file is a no-op.
    """
    validate_export_directory(decl.directory)
    validate_network(decl.network)
    pattern = format_export_pattern(decl)

    def _update() -> bool:
        current = _read_exports()
        if current is None:
            return False
        new = delete_lines(current, pattern)
        if new == current:
            return False
        _write_exports(new)
        return True

    changed = await _locked(_update)
    if not changed:
        logger.debug("No export to remove for %s %s", decl.directory, decl.network)
        return False

    logger.info("Removed NFS export: %s %s", decl.directory, decl.network)
    await reload_exports()
    return True
