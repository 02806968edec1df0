"""
Multi-select state for the current folder scope.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable

from .models import Permissions


class ItemKind(str, Enum):
    ASSET = "asset"
    FOLDER = "folder"


class SelectionModel:
    """Selected asset and folder ids.

    While anything is selected (``is_selecting``), tapping an item
    toggles it instead of opening a preview. Selection is only cleared
    by an explicit call. A background reload never touches it.
    """

    def __init__(self) -> None:
        self._assets: set[str] = set()
        self._folders: set[str] = set()

    @property
    def asset_ids(self) -> frozenset[str]:
        return frozenset(self._assets)

    @property
    def folder_ids(self) -> frozenset[str]:
        return frozenset(self._folders)

    @property
    def count(self) -> int:
        return len(self._assets) + len(self._folders)

    @property
    def is_selecting(self) -> bool:
        return self.count > 0

    def is_selected(self, item_id: str) -> bool:
        return item_id in self._assets or item_id in self._folders

    def toggle(self, item_id: str, kind: ItemKind = ItemKind.ASSET) -> bool:
        """Flip an item's membership. Returns True if it is now selected."""
        target = self._folders if kind == ItemKind.FOLDER else self._assets
        if item_id in target:
            target.remove(item_id)
            return False
        target.add(item_id)
        return True

    def select_all(self, asset_ids: Iterable[str], folder_ids: Iterable[str] = ()) -> None:
        """Select everything in scope, or clear if it already is."""
        scope_assets = set(asset_ids)
        scope_folders = set(folder_ids)
        if scope_assets <= self._assets and scope_folders <= self._folders:
            self.clear()
            return
        self._assets = scope_assets
        self._folders = scope_folders

    def discard(self, asset_ids: Iterable[str] = (), folder_ids: Iterable[str] = ()) -> None:
        self._assets.difference_update(asset_ids)
        self._folders.difference_update(folder_ids)

    def clear(self) -> None:
        self._assets.clear()
        self._folders.clear()

    def snapshot(self) -> tuple[frozenset[str], frozenset[str]]:
        return self.asset_ids, self.folder_ids

    def restore(self, snapshot: tuple[frozenset[str], frozenset[str]]) -> None:
        assets, folders = snapshot
        self._assets = set(assets)
        self._folders = set(folders)

    def can_bulk_delete(self, permissions: Permissions) -> bool:
        return self.is_selecting and permissions.can_upload

    def can_bulk_download(self, permissions: Permissions) -> bool:
        return self.is_selecting and permissions.can_download
