"""
Folder/file listing for one (vault, folder) scope.

The view is a local cache of the remote store. It is rewritten as a
whole on every reload and never patched item by item, so interleaved
reloads and optimistic deletes cannot lose each other's updates.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

from .errors import NotFound
from .interfaces import RelationalStore
from .models import Folder, MediaAsset, MediaType

logger = logging.getLogger("eventvault.collection")

ViewListener = Callable[["CollectionView"], None]


def sort_folders(folders: Iterable[Folder]) -> list[Folder]:
    return sorted(folders, key=lambda f: (f.name.casefold(), f.name))


def sort_assets(assets: Iterable[MediaAsset]) -> list[MediaAsset]:
    return sorted(assets, key=lambda a: a.created_at, reverse=True)


class CollectionView:
    """Sorted folders and files of the current scope.

    Ids passed to ``hide()`` stay out of the listing until
    ``unhide()``, even if a reload that started earlier returns them.
    The ledger hides ids for the lifetime of a delete.

    Args:
        store: Relational store to load from.
        vault_id: Vault being viewed.
        folder_id: Initial folder (None = root).
    """

    def __init__(
        self,
        store: RelationalStore,
        vault_id: str,
        folder_id: Optional[str] = None,
    ) -> None:
        self._store = store
        self._vault_id = vault_id
        self._folder_id = folder_id
        self._folders: list[Folder] = []
        self._assets: list[MediaAsset] = []
        self._current_folder: Optional[Folder] = None
        self._hidden: set[str] = set()
        self._generation = 0
        self._scope = 0
        self._listeners: list[ViewListener] = []

    @property
    def vault_id(self) -> str:
        return self._vault_id

    @property
    def folder_id(self) -> Optional[str]:
        return self._folder_id

    @property
    def scope(self) -> int:
        """Bumped on every navigation, including one still loading."""
        return self._scope

    @property
    def folders(self) -> list[Folder]:
        return list(self._folders)

    @property
    def assets(self) -> list[MediaAsset]:
        return list(self._assets)

    @property
    def breadcrumb(self) -> list[Folder]:
        """Trail from the root to the current folder.

        Only the current folder is looked up; intermediate ancestors
        are not reconstructed.
        """
        return [self._current_folder] if self._current_folder else []

    def on_change(self, listener: ViewListener) -> None:
        self._listeners.append(listener)

    # -------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------

    async def reload(self) -> None:
        """Replace the listing with the store's current contents."""
        self._generation += 1
        generation = self._generation
        folder_id = self._folder_id

        folders = await self._store.list_folders(self._vault_id, folder_id)
        assets = await self._store.list_assets(self._vault_id, folder_id)

        if generation != self._generation or folder_id != self._folder_id:
            logger.debug("Discarding stale reload of %s/%s", self._vault_id, folder_id)
            return

        self.replace(folders=folders, assets=assets)

    async def navigate(self, folder_id: Optional[str]) -> None:
        """Switch scope to another folder and load it.

        Raises:
            NotFound: If the folder does not exist in this vault.
        """
        self._scope += 1
        current: Optional[Folder] = None
        if folder_id is not None:
            current = await self._store.get_folder(folder_id)
            if current.vault_id != self._vault_id:
                raise NotFound(f"Folder {folder_id} not found")

        self._folder_id = folder_id
        self._current_folder = current
        self._folders = []
        self._assets = []
        await self.reload()

    def replace(
        self,
        folders: Optional[Iterable[Folder]] = None,
        assets: Optional[Iterable[MediaAsset]] = None,
    ) -> None:
        """Full-collection replace of either list."""
        if folders is not None:
            self._folders = sort_folders(f for f in folders if f.id not in self._hidden)
        if assets is not None:
            self._assets = sort_assets(a for a in assets if a.id not in self._hidden)
        self._notify()

    def clear(self) -> None:
        """Drop the listing. Reloads already in flight are discarded."""
        self._generation += 1
        self.replace(folders=[], assets=[])

    def hide(self, ids: Iterable[str]) -> None:
        self._hidden.update(ids)

    def unhide(self, ids: Iterable[str]) -> None:
        self._hidden.difference_update(ids)

    async def create_folder(self, name: str) -> Folder:
        """Create a folder in the current scope and reload."""
        name = name.strip()
        if not name:
            raise ValueError("Folder name cannot be empty")
        folder = await self._store.insert_folder(
            Folder(vault_id=self._vault_id, parent_id=self._folder_id, name=name)
        )
        logger.info("Created folder '%s' in vault %s", name, self._vault_id)
        await self.reload()
        return folder

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------

    def scope_ids(self) -> tuple[list[str], list[str]]:
        return [a.id for a in self._assets], [f.id for f in self._folders]

    def find_asset(self, asset_id: str) -> Optional[MediaAsset]:
        return next((a for a in self._assets if a.id == asset_id), None)

    def find_folder(self, folder_id: str) -> Optional[Folder]:
        return next((f for f in self._folders if f.id == folder_id), None)

    def filter(self, term: str) -> list[MediaAsset]:
        """Assets whose file name contains ``term`` (case-insensitive)."""
        needle = term.strip().casefold()
        if not needle:
            return self.assets
        return [a for a in self._assets if needle in a.file_name.casefold()]

    def neighbour(self, asset_id: str, direction: int) -> Optional[MediaAsset]:
        """Next/previous image for the preview, or None at either end."""
        images = [a for a in self._assets if a.type == MediaType.IMAGE]
        index = next((i for i, a in enumerate(images) if a.id == asset_id), None)
        if index is None:
            return None
        target = index + direction
        if 0 <= target < len(images):
            return images[target]
        return None

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as exc:
                logger.error("View listener failed: %s", exc)
