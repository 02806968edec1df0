"""
VaultWorkspace — one open vault, wired together.

Composes access resolution, the collection view, selection, the
mutation ledger, the sync channel and likes around a single vault id,
and uses the session's upload queue for uploads.

Usage:
    ws = VaultWorkspace(vault_id, store, blobs, session, uploads)
    perms = await ws.open()
    if not perms.can_view:
        await ws.request_join("1234")
    await ws.enqueue_upload([UploadFile.from_path(p)])
    await ws.delete_items(asset_ids=[...])
    ws.close()
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

from .access import AccessResolver
from .archive import ArchiveReport, export_archive
from .collection import CollectionView
from .errors import AccessDenied, NotFound
from .interfaces import BlobStore, RelationalStore
from .ledger import DeleteOutcome, MutationLedger
from .likes import LikeService
from .models import (
    AnonymousActor,
    AuthenticatedActor,
    Folder,
    JoinResult,
    Permissions,
    UploadFile,
    UploadTask,
    Vault,
)
from .selection import ItemKind, SelectionModel
from .session import SessionManager
from .sync_channel import SyncChannel
from .uploads import UploadQueue

logger = logging.getLogger("eventvault.workspace")


class VaultWorkspace:
    """Everything needed to browse and change one vault.

    Closing the workspace stops the sync channel but not uploads: the
    queue belongs to the session, so in-flight files finish even after
    the user has moved on.

    Args:
        vault_id: Vault to open.
        store: Relational store.
        blobs: Blob store.
        session: Current session (identity and grants).
        uploads: Session-wide upload queue.
        folder_id: Folder to open in (None = root).
    """

    def __init__(
        self,
        vault_id: str,
        store: RelationalStore,
        blobs: BlobStore,
        session: SessionManager,
        uploads: UploadQueue,
        folder_id: Optional[str] = None,
    ) -> None:
        self._vault_id = vault_id
        self._store = store
        self._blobs = blobs
        self._session = session
        self._uploads = uploads
        self._initial_folder = folder_id
        self._vault: Optional[Vault] = None
        self._access = AccessResolver(store, session.grants)
        self._likes = LikeService(store)

        self.permissions = Permissions()
        self.view = CollectionView(store, vault_id)
        self.selection = SelectionModel()
        self.ledger = MutationLedger(store, blobs, self.view, self.selection)
        self.sync = SyncChannel(store, self.view.reload)

    @property
    def vault_id(self) -> str:
        return self._vault_id

    @property
    def vault(self) -> Optional[Vault]:
        return self._vault

    @property
    def actor(self) -> Union[AuthenticatedActor, AnonymousActor]:
        return self._session.actor

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------

    async def open(self) -> Permissions:
        """Load the vault, resolve access and, if visible, start syncing.

        Raises:
            NotFound: If the vault does not exist.
        """
        self._vault = await self._store.get_vault(self._vault_id)
        permissions = await self.resolve_access()
        if not permissions.can_view:
            logger.info("Vault %s opened without view access", self._vault_id)
            return permissions

        self.subscribe(self._vault_id)
        if self._initial_folder is not None and self.view.folder_id is None:
            await self.view.navigate(self._initial_folder)
        else:
            await self.view.reload()
        return permissions

    def close(self) -> None:
        """Tear down the sync channel and drop the selection."""
        self.sync.unsubscribe()
        self.selection.clear()

    def subscribe(self, vault_id: str) -> Callable[[], None]:
        """Open the change feed for the vault. Requires view access."""
        if vault_id != self._vault_id:
            raise ValueError(f"Workspace is bound to vault {self._vault_id}, not {vault_id}")
        if self._vault is None or not self.permissions.can_view:
            raise AccessDenied("Cannot subscribe to a vault without view access")
        return self.sync.subscribe(vault_id)

    # -------------------------------------------------------------------
    # Access
    # -------------------------------------------------------------------

    async def resolve_access(self) -> Permissions:
        """Derive permissions fresh for the current actor.

        The vault row is re-read so flag changes are picked up; if that
        read fails for any reason other than NotFound, the last known
        vault is used.
        """
        vault = await self._refresh_vault()
        self.permissions = await self._access.resolve(self._session.actor, vault)
        showing = self.sync.is_open or self.view.assets or self.view.folders
        if not self.permissions.can_view and showing:
            logger.info("View access to vault %s lost, closing", self._vault_id)
            self.close()
            self.view.clear()
        return self.permissions

    async def request_join(self, passkey: str) -> JoinResult:
        """Unlock the vault with its passkey and reopen it on success."""
        vault = await self._require_vault()
        result = await self._access.request_join(self._session.actor, vault, passkey)
        if result.success:
            await self.open()
        return result

    # -------------------------------------------------------------------
    # Listing
    # -------------------------------------------------------------------

    async def reload(self) -> None:
        await self.view.reload()

    async def navigate(self, folder_id: Optional[str]) -> None:
        """Move to another folder. Clears the selection."""
        self.selection.clear()
        await self.view.navigate(folder_id)

    async def create_folder(self, name: str) -> Folder:
        await self._require(lambda p: p.can_upload, "upload")
        return await self.view.create_folder(name)

    # -------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------

    def toggle_selection(self, item_id: str) -> bool:
        kind = ItemKind.FOLDER if self.view.find_folder(item_id) else ItemKind.ASSET
        return self.selection.toggle(item_id, kind)

    def select_all(self) -> None:
        asset_ids, folder_ids = self.view.scope_ids()
        self.selection.select_all(asset_ids, folder_ids)

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------

    async def enqueue_upload(
        self,
        files: Iterable[UploadFile],
        folder_id: Optional[str] = None,
        actor: Optional[Union[AuthenticatedActor, AnonymousActor]] = None,
    ) -> list[UploadTask]:
        """Queue files for upload into ``folder_id`` (None = root).

        Raises:
            AccessDenied: If the actor may not upload.
        """
        await self._require(lambda p: p.can_upload, "upload")
        return await self._uploads.enqueue_upload(
            self._vault_id, files, folder_id, actor or self._session.actor
        )

    async def delete_items(
        self,
        asset_ids: Iterable[str] = (),
        folder_ids: Iterable[str] = (),
    ) -> DeleteOutcome:
        """Delete items from the current view, rolling back on failure.

        Raises:
            AccessDenied: If the actor may not delete.
        """
        await self._require(lambda p: p.can_upload, "delete")
        return await self.ledger.delete_items(asset_ids, folder_ids)

    async def delete_selected(self) -> DeleteOutcome:
        return await self.delete_items(self.selection.asset_ids, self.selection.folder_ids)

    async def toggle_like(self, asset_id: str) -> bool:
        """Like or unlike an asset of this vault. Returns the new state.

        Raises:
            AccessDenied: If the actor may not view the vault.
            NotFound: If the asset does not belong to this vault.
        """
        await self._require(lambda p: p.can_view, "view")
        asset = await self._store.get_asset(asset_id)
        if asset.vault_id != self._vault_id:
            raise NotFound(f"Asset {asset_id} not found")
        return await self._likes.toggle(asset_id, self._session.actor)

    async def export(
        self,
        destination: Path,
        asset_ids: Optional[Iterable[str]] = None,
    ) -> ArchiveReport:
        """Write assets of the current view to a ZIP file.

        Exports the given ids, else the selection, else everything
        in the view.

        Raises:
            AccessDenied: If the actor may not download.
        """
        await self._require(lambda p: p.can_download, "download")
        if asset_ids is not None:
            wanted = set(asset_ids)
        elif self.selection.asset_ids:
            wanted = set(self.selection.asset_ids)
        else:
            wanted = None

        assets = [a for a in self.view.assets if wanted is None or a.id in wanted]
        if wanted is None:
            folder_name = (self._vault.name if self._vault else "") or "EventFiles"
        else:
            folder_name = "Selected_Files"
        return await export_archive(self._blobs, assets, destination, folder_name=folder_name)

    # -------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------

    async def _require_vault(self) -> Vault:
        if self._vault is None:
            self._vault = await self._store.get_vault(self._vault_id)
        return self._vault

    async def _refresh_vault(self) -> Vault:
        if self._vault is None:
            return await self._require_vault()
        try:
            self._vault = await self._store.get_vault(self._vault_id)
        except NotFound:
            raise
        except Exception as exc:
            logger.warning("Vault %s refresh failed, using last known: %s", self._vault_id, exc)
        return self._vault

    async def _require(self, check: Callable[[Permissions], bool], action: str) -> Permissions:
        permissions = await self.resolve_access()
        if not check(permissions):
            raise AccessDenied(f"Not allowed to {action} in vault {self._vault_id}")
        return permissions
