"""
SyncChannel — reacts to the remote change feed by reloading the view.

Any insert, update or delete on a vault's assets or folders triggers a
full reload of the current folder scope. There is no incremental
patching: local optimistic deletes, remote writers and this client's
own uploads all land in the same tables, and a full reload of a
bounded folder is cheaper than merging three writers.

Notifications that arrive while a reload is running are coalesced into
one follow-up reload.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .interfaces import RelationalStore, Unsubscribe
from .models import ChangeEvent, ChangeTable

logger = logging.getLogger("eventvault.sync_channel")

Reload = Callable[[], Awaitable[None]]

WATCHED_TABLES = (ChangeTable.ASSETS, ChangeTable.FOLDERS)


class SyncChannel:
    """One change-feed subscription, bound to one vault at a time.

    Args:
        store: Relational store providing the change feed.
        reload: Coroutine function reloading the current scope.
    """

    def __init__(self, store: RelationalStore, reload: Reload) -> None:
        self._store = store
        self._reload = reload
        self._vault_id: Optional[str] = None
        self._unsubscribe: Optional[Unsubscribe] = None
        self._reload_task: Optional[asyncio.Task] = None
        self._dirty = False
        self.notifications = 0
        self.reloads = 0

    @property
    def vault_id(self) -> Optional[str]:
        return self._vault_id

    @property
    def is_open(self) -> bool:
        return self._unsubscribe is not None

    def subscribe(self, vault_id: str) -> Callable[[], None]:
        """Open the channel for a vault.

        Opening for the same vault again is a no-op; opening for a
        different vault tears the old subscription down first.

        Returns:
            A callable that closes the channel.
        """
        if self.is_open and self._vault_id == vault_id:
            return self.unsubscribe
        if self.is_open:
            self.unsubscribe()

        self._vault_id = vault_id
        self._unsubscribe = self._store.subscribe(vault_id, WATCHED_TABLES, self._on_change)
        logger.info("Sync channel open for vault %s", vault_id)
        return self.unsubscribe

    def unsubscribe(self) -> None:
        """Close the channel. Safe to call more than once."""
        if self._unsubscribe is None:
            return
        self._unsubscribe()
        self._unsubscribe = None
        if self._reload_task is not None and not self._reload_task.done():
            self._reload_task.cancel()
        self._reload_task = None
        self._dirty = False
        logger.info("Sync channel closed for vault %s", self._vault_id)
        self._vault_id = None

    async def drain(self) -> None:
        """Wait for any scheduled reload to finish."""
        while self._reload_task is not None and not self._reload_task.done():
            try:
                await asyncio.shield(self._reload_task)
            except asyncio.CancelledError:
                if self._reload_task is None or self._reload_task.cancelled():
                    return
                raise

    # -------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------

    def _on_change(self, event: ChangeEvent) -> None:
        if not self.is_open or event.vault_id != self._vault_id:
            return
        self.notifications += 1
        logger.debug(
            "Change on %s: %s %s", event.table.value, event.kind.value, event.record_id
        )
        if self._reload_task is not None and not self._reload_task.done():
            self._dirty = True
            return
        self._reload_task = asyncio.get_running_loop().create_task(self._run_reloads())

    async def _run_reloads(self) -> None:
        while True:
            self._dirty = False
            try:
                await self._reload()
                self.reloads += 1
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("Reload after change notification failed: %s", exc)
            if not self._dirty:
                return
