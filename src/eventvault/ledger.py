"""
Optimistic mutations with rollback.

A mutation is applied to local state first, then committed remotely:

    snapshot() -> apply() -> remote() -> commit
                                      \\-> restore(snapshot) + surface error

The rollback always happens after the remote call has failed, never
speculatively. Deletes are the only destructive mutation and are
built on this pattern by MutationLedger.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Iterable, Optional, TypeVar

from pydantic import BaseModel, Field

from .collection import CollectionView
from .interfaces import BlobStore, RelationalStore
from .models import Folder, MediaAsset
from .selection import SelectionModel

logger = logging.getLogger("eventvault.ledger")

S = TypeVar("S")
R = TypeVar("R")


@dataclass
class OptimisticResult(Generic[R]):
    """Outcome of one optimistic mutation."""

    ok: bool
    value: Optional[R] = None
    error: Optional[Exception] = None


async def optimistic(
    snapshot: Callable[[], S],
    apply: Callable[[], None],
    remote: Callable[[], Awaitable[R]],
    restore: Callable[[S], None],
) -> OptimisticResult[R]:
    """Apply a change locally, commit it remotely, roll back on failure.

    Args:
        snapshot: Captures the local state to restore.
        apply: Applies the change to local state.
        remote: Performs the remote commit.
        restore: Puts the snapshot back.

    Returns:
        OptimisticResult with the remote value, or the error that
        triggered the rollback.
    """
    saved = snapshot()
    apply()
    try:
        value = await remote()
    except Exception as exc:
        restore(saved)
        return OptimisticResult(ok=False, error=exc)
    return OptimisticResult(ok=True, value=value)


class DeleteOutcome(BaseModel):
    """What a delete did, as reported to the caller."""

    ok: bool
    asset_ids: list[str] = Field(default_factory=list)
    folder_ids: list[str] = Field(default_factory=list)
    error: Optional[str] = None
    blob_error: Optional[str] = None

    @property
    def is_noop(self) -> bool:
        return self.ok and not self.asset_ids and not self.folder_ids


ErrorListener = Callable[[DeleteOutcome], None]


@dataclass
class _DeletePlan:
    assets: list[MediaAsset]
    folders: list[Folder]
    asset_ids: list[str]
    folder_ids: list[str]
    blob_error: Optional[str] = None


class MutationLedger:
    """Deletes assets and folders optimistically against a CollectionView.

    Folder deletes cascade: every descendant folder and every asset in
    any of them is removed too.

    Args:
        store: Relational store holding the metadata rows.
        blobs: Blob store holding the file bytes.
        view: Local listing to mutate.
        selection: Selection to prune.
    """

    def __init__(
        self,
        store: RelationalStore,
        blobs: BlobStore,
        view: CollectionView,
        selection: SelectionModel,
    ) -> None:
        self._store = store
        self._blobs = blobs
        self._view = view
        self._selection = selection
        self._error_listeners: list[ErrorListener] = []

    def on_error(self, listener: ErrorListener) -> None:
        """Register a listener for rolled-back deletes (the user alert)."""
        self._error_listeners.append(listener)

    async def delete_items(
        self,
        asset_ids: Iterable[str] = (),
        folder_ids: Iterable[str] = (),
    ) -> DeleteOutcome:
        """Delete assets and folders shown in the current view.

        Ids that are not in the local view are ignored; if none are
        left the call is a no-op.
        """
        local_assets = {a.id: a for a in self._view.assets}
        local_folders = {f.id: f for f in self._view.folders}
        target_assets = [local_assets[i] for i in dict.fromkeys(asset_ids) if i in local_assets]
        target_folders = [local_folders[i] for i in dict.fromkeys(folder_ids) if i in local_folders]

        if not target_assets and not target_folders:
            return DeleteOutcome(ok=True)

        shown_ids = [a.id for a in target_assets] + [f.id for f in target_folders]
        plan = _DeletePlan(
            assets=target_assets,
            folders=target_folders,
            asset_ids=[a.id for a in target_assets],
            folder_ids=[f.id for f in target_folders],
        )

        removed_folders = list(target_folders)
        removed_assets = list(target_assets)
        scope = self._view.scope
        moved_away = False

        def snapshot() -> tuple[Any, ...]:
            return removed_folders, removed_assets, self._selection.snapshot()

        def apply() -> None:
            self._view.hide(shown_ids)
            self._view.replace(
                folders=[f for f in self._view.folders if f.id not in plan.folder_ids],
                assets=[a for a in self._view.assets if a.id not in plan.asset_ids],
            )
            self._selection.discard(plan.asset_ids, plan.folder_ids)

        def restore(saved: tuple[Any, ...]) -> None:
            nonlocal moved_away
            folders, assets, selection = saved
            self._view.unhide(shown_ids)
            if self._view.scope != scope:
                # The listing now belongs to another folder.
                moved_away = True
                return
            # Put back only what this delete took out; concurrent deletes
            # that committed in the meantime stay gone.
            current_folders = self._view.folders
            current_assets = self._view.assets
            folder_ids = {f.id for f in current_folders}
            asset_ids = {a.id for a in current_assets}
            self._view.replace(
                folders=current_folders + [f for f in folders if f.id not in folder_ids],
                assets=current_assets + [a for a in assets if a.id not in asset_ids],
            )
            self._selection.restore(selection)

        result = await optimistic(snapshot, apply, lambda: self._commit(plan), restore)

        if not result.ok:
            outcome = DeleteOutcome(
                ok=False,
                asset_ids=plan.asset_ids,
                folder_ids=plan.folder_ids,
                error=str(result.error) or type(result.error).__name__,
                blob_error=plan.blob_error,
            )
            logger.error(
                "Delete of %d asset(s), %d folder(s) rolled back: %s",
                len(plan.asset_ids), len(plan.folder_ids), outcome.error,
            )
            if moved_away:
                await self._refresh_view()
            self._surface(outcome)
            return outcome

        self._view.unhide(shown_ids)
        self._selection.clear()
        logger.info(
            "Deleted %d asset(s), %d folder(s) from vault %s",
            len(plan.asset_ids), len(plan.folder_ids), self._view.vault_id,
        )
        return DeleteOutcome(
            ok=True,
            asset_ids=plan.asset_ids,
            folder_ids=plan.folder_ids,
            blob_error=plan.blob_error,
        )

    # -------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------

    async def _commit(self, plan: _DeletePlan) -> None:
        vault_id = self._view.vault_id

        if plan.folder_ids:
            all_folders = await self._store.list_all_folders(vault_id)
            plan.folder_ids = descendants(all_folders, plan.folder_ids)
            nested = await self._store.list_assets_in_folders(vault_id, plan.folder_ids)
            known = set(plan.asset_ids)
            for asset in nested:
                if asset.id not in known:
                    plan.assets.append(asset)
                    plan.asset_ids.append(asset.id)
                    known.add(asset.id)

        paths = [a.storage_path for a in plan.assets if a.storage_path]
        if paths:
            try:
                await self._blobs.remove(paths)
            except Exception as exc:
                plan.blob_error = str(exc) or type(exc).__name__
                logger.warning(
                    "Blob removal failed for %d object(s), continuing: %s", len(paths), exc
                )

        if plan.asset_ids:
            await self._store.delete_assets(plan.asset_ids)
        if plan.folder_ids:
            await self._store.delete_folders(plan.folder_ids)

    async def _refresh_view(self) -> None:
        try:
            await self._view.reload()
        except Exception as exc:
            logger.warning("Reload after rolled-back delete failed: %s", exc)

    def _surface(self, outcome: DeleteOutcome) -> None:
        for listener in list(self._error_listeners):
            try:
                listener(outcome)
            except Exception as exc:
                logger.error("Delete error listener failed: %s", exc)


def descendants(folders: Iterable[Folder], roots: Iterable[str]) -> list[str]:
    """Ids of ``roots`` and every folder below them, parents first."""
    children: dict[Optional[str], list[str]] = {}
    for folder in folders:
        children.setdefault(folder.parent_id, []).append(folder.id)

    ordered: list[str] = []
    seen: set[str] = set()
    queue = list(dict.fromkeys(roots))
    while queue:
        current = queue.pop(0)
        if current in seen:
            continue
        seen.add(current)
        ordered.append(current)
        queue.extend(children.get(current, []))
    return ordered
