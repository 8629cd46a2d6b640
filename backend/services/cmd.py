"""Shared command runner and input validation for export management.

All subprocess calls (exportfs, getent, systemctl) go through run_cmd().
All user-supplied export fields are validated before they reach the
exports file or a command line.
"""

import asyncio
import logging
import re

logger = logging.getLogger(__name__)

# Limit concurrent subprocess calls
_cmd_semaphore = asyncio.Semaphore(4)

# --- Validation patterns ---
# Export directories: absolute, unquoted (no whitespace, parens, quotes or comments)
_EXPORT_DIR_RE = re.compile(r"^/[^\s()\"'#]*$")

# Client specs: host, *.wildcard, @netgroup, address, address/mask
_NETWORK_RE = re.compile(r"^[^\s()\"',#]+$")

# Export options: keyword or keyword=value (sec=krb5:krb5i, fsid=0, mp=/mnt)
_OPTION_RE = re.compile(r"^[A-Za-z0-9_=:./@+-]+$")

# User and group names, including the trailing $ used for machine accounts
_IDENTITY_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.-]{0,31}\$?$")


class ValidationError(ValueError):
    """Raised when an export field or identity name fails validation."""


def validate_export_directory(path: str) -> str:
    """Validate and return an absolute export directory."""
    if not path or not _EXPORT_DIR_RE.fullmatch(path):
        raise ValidationError(
            f"Invalid export directory: {path!r}. "
            "Must be an absolute path without whitespace, quotes, parentheses or '#'"
        )
    return path


def validate_network(network: str) -> str:
    """Validate and return an NFS client specification."""
    if not network or not _NETWORK_RE.fullmatch(network):
        raise ValidationError(
            f"Invalid network: {network!r}. "
            "Must be a single host, wildcard, netgroup or address[/mask]"
        )
    return network


def validate_export_option(option: str) -> str:
    """Validate a single export option (no commas or whitespace)."""
    if not option or not _OPTION_RE.fullmatch(option):
        raise ValidationError(
            f"Invalid export option: {option!r}. "
            "Must contain only [A-Za-z0-9_=:./@+-]"
        )
    return option


def validate_identity_name(name: str, kind: str = "user") -> str:
    """Validate a user or group name before looking it up."""
    if not name or not _IDENTITY_NAME_RE.fullmatch(name):
        raise ValidationError(f"Invalid {kind} name: {name!r}")
    return name


async def run_cmd(cmd: list[str]) -> tuple[str, str, int]:
    """Run a command with concurrency limiting.

    Returns (stdout, stderr, returncode).
    """
    async with _cmd_semaphore:
        logger.debug("Running command: %s", " ".join(cmd))
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            binary = cmd[0] if cmd else "(empty)"
            logger.error("Command not found: %s", binary)
            return "", f"{binary}: command not found", 127
        stdout, stderr = await proc.communicate()
        return stdout.decode(), stderr.decode(), proc.returncode
