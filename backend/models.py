"""Pydantic models for request/response validation."""

from pydantic import BaseModel, Field


# --- Auth ---


class LoginRequest(BaseModel):
    username: str
    password: str


class LoginResponse(BaseModel):
    username: str
    message: str = "Login successful"


class UserInfo(BaseModel):
    username: str


# --- Error ---


class ErrorResponse(BaseModel):
    error: str


# --- Exports ---


class ExportDeclaration(BaseModel):
    """Desired state of one directory/network export line."""

    directory: str = Field(..., description="Absolute path being exported")
    network: str = Field(..., description="Client spec: host, address[/mask], *.domain, @netgroup")
    writeable: bool = False
    sync: bool = True
    options: list[str] = Field(default_factory=list, description="Extra options, e.g. no_subtree_check")
    anon_user: str | None = Field(None, description="Resolved to anonuid=<uid>")
    anon_group: str | None = Field(None, description="Resolved to anongid=<gid>")


class ExportRemoveRequest(BaseModel):
    directory: str
    network: str


class ExportEntry(BaseModel):
    directory: str
    network: str
    options: list[str] = Field(default_factory=list)


class ExportResult(BaseModel):
    changed: bool
    directory: str
    network: str
    line: str | None = None


class ExportPreview(BaseModel):
    line: str
    pattern: str


# --- System ---


class AuditEntry(BaseModel):
    id: int
    timestamp: float
    username: str
    action: str
    target: str
    detail: str = ""
    success: bool = True


class NfsStatus(BaseModel):
    service: str
    active: bool
    state: str
