"""
Pydantic models for vaults, their contents, and the local-only
state (upload tasks, permissions) derived from them.

Remote records (Vault, Member, MediaAsset, Folder, LikeRecord) mirror
rows in the relational store. UploadTask and Permissions never leave
the client.
"""

from __future__ import annotations

import mimetypes
import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator


def new_id() -> str:
    """Short random record id."""
    return uuid.uuid4().hex[:12]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemberRole(str, Enum):
    """Role a member holds inside a vault."""

    OWNER = "owner"
    ADMIN = "admin"
    VIEWER = "viewer"


class MediaType(str, Enum):
    """Coarse media classification used for previews."""

    IMAGE = "image"
    VIDEO = "video"
    FILE = "file"


class UploadStatus(str, Enum):
    """Lifecycle of a single upload task."""

    QUEUED = "queued"
    UPLOADING = "uploading"
    FINALIZING = "finalizing"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (UploadStatus.COMPLETE, UploadStatus.ERROR)

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK = {
    UploadStatus.QUEUED: 0,
    UploadStatus.UPLOADING: 1,
    UploadStatus.FINALIZING: 2,
    UploadStatus.COMPLETE: 3,
    UploadStatus.ERROR: 3,
}


class ChangeTable(str, Enum):
    """Tables covered by the per-vault change feed."""

    ASSETS = "assets"
    FOLDERS = "folders"


class ChangeKind(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class AuthEvent(str, Enum):
    """Identity provider state-change events."""

    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_DELETED = "USER_DELETED"


# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------


class Identity(BaseModel):
    """An authenticated user as reported by the identity provider."""

    user_id: str
    email: Optional[str] = None


class AuthenticatedActor(BaseModel):
    """A signed-in user acting on a vault."""

    kind: Literal["authenticated"] = "authenticated"
    user_id: str

    @property
    def actor_id(self) -> str:
        return self.user_id


class AnonymousActor(BaseModel):
    """A visitor without an identity, tracked by a persisted guest id."""

    kind: Literal["anonymous"] = "anonymous"
    guest_id: str = Field(default_factory=lambda: f"guest-{uuid.uuid4().hex[:16]}")

    @property
    def actor_id(self) -> str:
        return self.guest_id


Actor = Annotated[Union[AuthenticatedActor, AnonymousActor], Field(discriminator="kind")]


def actor_for(identity: Optional[Identity], guest: AnonymousActor) -> Union[AuthenticatedActor, AnonymousActor]:
    """Pick the actor for the current session."""
    if identity is not None:
        return AuthenticatedActor(user_id=identity.user_id)
    return guest


# ---------------------------------------------------------------------------
# Remote records
# ---------------------------------------------------------------------------


class Vault(BaseModel):
    """A shared media collection (an "event")."""

    id: str = Field(default_factory=new_id)
    owner_id: str
    name: str = ""
    description: str = ""
    is_public: bool = False
    allow_uploads: bool = False
    allow_downloads: bool = True
    passkey: Optional[str] = None
    code: str = ""
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("passkey", mode="before")
    @classmethod
    def _empty_passkey_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value == "":
            return None
        return value


class Member(BaseModel):
    """Durable (vault, user, role) membership."""

    vault_id: str
    user_id: str
    role: MemberRole = MemberRole.VIEWER
    joined_at: datetime = Field(default_factory=utcnow)


class Folder(BaseModel):
    """A folder inside a vault. Parent is fixed at creation."""

    id: str = Field(default_factory=new_id)
    vault_id: str
    parent_id: Optional[str] = None
    name: str
    created_at: datetime = Field(default_factory=utcnow)


class MediaAsset(BaseModel):
    """An uploaded file registered in a vault."""

    id: str = Field(default_factory=new_id)
    vault_id: str
    folder_id: Optional[str] = None
    uploader_id: str
    url: str
    storage_path: str
    file_name: str
    type: MediaType = MediaType.FILE
    size_bytes: int = 0
    like_count: int = 0
    created_at: datetime = Field(default_factory=utcnow)


class LikeRecord(BaseModel):
    asset_id: str
    actor_id: str
    created_at: datetime = Field(default_factory=utcnow)


class ChangeEvent(BaseModel):
    """One notification from the relational store's change feed."""

    table: ChangeTable
    kind: ChangeKind
    vault_id: str
    record_id: str


# ---------------------------------------------------------------------------
# Local-only state
# ---------------------------------------------------------------------------


class Permissions(BaseModel):
    """Effective permission set for one actor on one vault."""

    can_view: bool = False
    can_upload: bool = False
    can_download: bool = False
    is_owner: bool = False
    is_admin: bool = False


class JoinResult(BaseModel):
    """Outcome of a passkey join attempt."""

    success: bool
    message: str


class UploadFile(BaseModel):
    """A local file handed to the upload queue."""

    name: str
    data: bytes
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def resolved_content_type(self) -> str:
        if self.content_type:
            return self.content_type
        guessed, _ = mimetypes.guess_type(self.name)
        return guessed or "application/octet-stream"

    @classmethod
    def from_path(cls, path: Path) -> "UploadFile":
        path = Path(path)
        return cls(name=path.name, data=path.read_bytes())


class UploadTask(BaseModel):
    """Progress of one file through the upload pipeline."""

    id: str = Field(default_factory=new_id)
    file_name: str
    vault_id: str
    folder_id: Optional[str] = None
    progress: int = 0
    status: UploadStatus = UploadStatus.QUEUED
    error: Optional[str] = None
    attempts: int = 1
    created_at: datetime = Field(default_factory=utcnow)
