"""User and group id lookups against the system directory (getent)."""

import logging

from exceptions import ExportError
from services.cmd import run_cmd, validate_identity_name

logger = logging.getLogger(__name__)


async def _getent(database: str) -> list[list[str]]:
    """Return the colon-split entries of a getent database."""
    stdout, stderr, rc = await run_cmd(["getent", database])
    if rc != 0:
        raise ExportError(
            f"getent {database} failed: {stderr.strip()}", stderr=stderr, returncode=rc
        )
    return [line.split(":") for line in stdout.strip().splitlines() if line]


async def find_uid(username: str) -> int | None:
    """Return the UID of the first passwd entry named ``username``, or None."""
    validate_identity_name(username, "user")
    for parts in await _getent("passwd"):
        # name:password:uid:gid:gecos:home:shell
        if len(parts) >= 3 and parts[0] == username:
            return int(parts[2])
    logger.debug("No passwd entry for %s", username)
    return None


async def find_gid(groupname: str) -> int | None:
    """Return the GID of the first group entry named ``groupname``, or None."""
    validate_identity_name(groupname, "group")
    for parts in await _getent("group"):
        # name:password:gid:members
        if len(parts) >= 3 and parts[0] == groupname:
            return int(parts[2])
    logger.debug("No group entry for %s", groupname)
    return None
