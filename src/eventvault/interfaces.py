"""
Collaborator contracts — identity, relational store, blob store.

The engine only ever talks to these abstract classes. Concrete
implementations live in ``eventvault.backends``; a hosted backend
plugs in by subclassing the same contracts.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Iterable, Optional

from .models import (
    AuthEvent,
    ChangeEvent,
    ChangeTable,
    Folder,
    Identity,
    LikeRecord,
    MediaAsset,
    Member,
    Vault,
)

logger = logging.getLogger("eventvault.interfaces")

Unsubscribe = Callable[[], None]
ChangeCallback = Callable[[ChangeEvent], None]
AuthCallback = Callable[[AuthEvent, Optional[Identity]], None]
ProgressCallback = Callable[[int, int], None]
ErrorHook = Callable[[Exception], Awaitable[None]]


class IdentityProvider(ABC):
    """Source of the current session's identity."""

    @abstractmethod
    async def get_session(self) -> Optional[Identity]:
        """Return the signed-in identity, or None."""

    @abstractmethod
    def on_auth_state_change(self, callback: AuthCallback) -> Unsubscribe:
        """Register for auth state changes. Returns an unsubscribe callable."""

    @abstractmethod
    async def sign_out(self) -> None:
        """End the current session."""


class RelationalStore(ABC):
    """CRUD over vault records plus a per-vault change feed.

    Error hooks are called with every exception a store operation
    raises, before it propagates. They are how request-level
    middleware observes responses without patching the store.
    """

    def __init__(self) -> None:
        self._error_hooks: list[ErrorHook] = []

    def add_error_hook(self, hook: ErrorHook) -> None:
        if hook not in self._error_hooks:
            self._error_hooks.append(hook)

    def remove_error_hook(self, hook: ErrorHook) -> None:
        if hook in self._error_hooks:
            self._error_hooks.remove(hook)

    async def report_error(self, exc: Exception) -> None:
        """Hand an operation failure to every registered hook."""
        for hook in list(self._error_hooks):
            try:
                await hook(exc)
            except Exception as hook_exc:
                logger.error("Error hook failed on %r: %s", exc, hook_exc)

    # -- vaults --------------------------------------------------------

    @abstractmethod
    async def get_vault(self, vault_id: str) -> Vault:
        """Fetch a vault. Raises NotFound."""

    @abstractmethod
    async def find_vaults_by_code(self, code: str) -> list[Vault]:
        """Exact-match lookup by join code. Empty list when unknown."""

    @abstractmethod
    async def create_vault(self, vault: Vault) -> Vault:
        """Insert a vault. Raises Conflict on a duplicate code."""

    @abstractmethod
    async def update_vault(self, vault: Vault) -> Vault:
        """Replace a vault's settings. Raises NotFound."""

    @abstractmethod
    async def delete_vault(self, vault_id: str) -> None:
        """Delete a vault and cascade to its members, folders and assets."""

    @abstractmethod
    async def list_vaults(self, owner_id: str) -> list[Vault]:
        """Vaults owned by a user, newest first."""

    # -- members -------------------------------------------------------

    @abstractmethod
    async def get_membership(self, vault_id: str, user_id: str) -> Optional[Member]:
        """Return the membership row or None."""

    @abstractmethod
    async def insert_membership(self, member: Member) -> Member:
        """Insert a membership. Raises Conflict when it already exists."""

    # -- folders -------------------------------------------------------

    @abstractmethod
    async def get_folder(self, folder_id: str) -> Folder:
        """Fetch a folder. Raises NotFound."""

    @abstractmethod
    async def list_folders(self, vault_id: str, parent_id: Optional[str]) -> list[Folder]:
        """Direct children of ``parent_id`` (None = root)."""

    @abstractmethod
    async def list_all_folders(self, vault_id: str) -> list[Folder]:
        """Every folder in a vault."""

    @abstractmethod
    async def insert_folder(self, folder: Folder) -> Folder:
        """Insert a folder."""

    @abstractmethod
    async def delete_folders(self, folder_ids: Iterable[str]) -> None:
        """Delete folder rows. Atomic: raises without deleting anything on failure."""

    # -- assets --------------------------------------------------------

    @abstractmethod
    async def get_asset(self, asset_id: str) -> MediaAsset:
        """Fetch an asset. Raises NotFound."""

    @abstractmethod
    async def list_assets(self, vault_id: str, folder_id: Optional[str]) -> list[MediaAsset]:
        """Assets directly inside ``folder_id`` (None = root)."""

    @abstractmethod
    async def list_assets_in_folders(
        self, vault_id: str, folder_ids: Iterable[str]
    ) -> list[MediaAsset]:
        """Assets inside any of the given folders."""

    @abstractmethod
    async def insert_asset(self, asset: MediaAsset) -> MediaAsset:
        """Register an uploaded asset."""

    @abstractmethod
    async def delete_assets(self, asset_ids: Iterable[str]) -> None:
        """Delete asset rows. Atomic: raises without deleting anything on failure."""

    # -- likes ---------------------------------------------------------

    @abstractmethod
    async def has_like(self, asset_id: str, actor_id: str) -> bool:
        """Whether the actor currently likes the asset."""

    @abstractmethod
    async def insert_like(self, like: LikeRecord) -> None:
        """Insert a like. Raises Conflict when it already exists."""

    @abstractmethod
    async def delete_like(self, asset_id: str, actor_id: str) -> bool:
        """Remove a like. Returns False if there was none."""

    # -- change feed ---------------------------------------------------

    @abstractmethod
    def subscribe(
        self,
        vault_id: str,
        tables: Iterable[ChangeTable],
        callback: ChangeCallback,
    ) -> Unsubscribe:
        """Deliver change notifications for a vault's tables."""


class BlobStore(ABC):
    """Object storage for uploaded bytes."""

    @abstractmethod
    async def upload(
        self,
        path: str,
        data: bytes,
        content_type: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> str:
        """Store bytes at ``path`` and return the public URL."""

    @abstractmethod
    async def remove(self, paths: Iterable[str]) -> None:
        """Remove stored objects. Unknown paths are ignored."""

    @abstractmethod
    async def download(self, path: str) -> bytes:
        """Fetch stored bytes. Raises NotFound."""
