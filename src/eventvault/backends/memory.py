"""
In-process backends — relational store, blob store and identity
provider held in plain dicts.

Every operation yields to the event loop once, so callers see the
same interleaving they would against a remote service. A FaultPlan
lets tests (and dry runs) make specific operations fail.

Usage:
    store = MemoryStore()
    store.faults.add("delete_assets", TransientNetwork("boom"), keys={"a2"})
    await store.delete_assets(["a1", "a2"])   # raises, deletes nothing
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from ..errors import Conflict, NotFound
from ..interfaces import (
    AuthCallback,
    BlobStore,
    ChangeCallback,
    IdentityProvider,
    ProgressCallback,
    RelationalStore,
    Unsubscribe,
)
from ..models import (
    AuthEvent,
    ChangeEvent,
    ChangeKind,
    ChangeTable,
    Folder,
    Identity,
    LikeRecord,
    MediaAsset,
    Member,
    Vault,
)

logger = logging.getLogger("eventvault.backends.memory")

CHUNK_SIZE = 256 * 1024  # 256 KB


# ---------------------------------------------------------------------------
# Fault injection
# ---------------------------------------------------------------------------


@dataclass
class _Fault:
    operation: str
    error: Exception
    keys: frozenset[str] = frozenset()
    times: int = 1


@dataclass
class FaultPlan:
    """Scheduled failures for named operations.

    A fault with no keys fires on the next call of its operation.
    A keyed fault fires only when the call touches one of the keys.
    """

    faults: list[_Fault] = field(default_factory=list)

    def add(
        self,
        operation: str,
        error: Exception,
        keys: Optional[Iterable[str]] = None,
        times: int = 1,
    ) -> None:
        self.faults.append(_Fault(operation, error, frozenset(keys or ()), times))

    def clear(self) -> None:
        self.faults.clear()

    def take(self, operation: str, keys: Iterable[str] = (), substring: bool = False) -> Optional[Exception]:
        """Consume and return the matching fault's error, if any."""
        keys = list(keys)
        for fault in list(self.faults):
            if fault.operation != operation:
                continue
            if fault.keys:
                if substring:
                    hit = any(k in key for k in fault.keys for key in keys)
                else:
                    hit = bool(fault.keys.intersection(keys))
                if not hit:
                    continue
            fault.times -= 1
            if fault.times <= 0:
                self.faults.remove(fault)
            return fault.error
        return None


@dataclass
class _Subscriber:
    vault_id: str
    tables: frozenset[ChangeTable]
    callback: ChangeCallback


# ---------------------------------------------------------------------------
# MemoryStore
# ---------------------------------------------------------------------------


class MemoryStore(RelationalStore):
    """Relational store backed by dicts, with a synchronous change feed."""

    def __init__(self) -> None:
        super().__init__()
        self.vaults: dict[str, Vault] = {}
        self.members: dict[tuple[str, str], Member] = {}
        self.folders: dict[str, Folder] = {}
        self.assets: dict[str, MediaAsset] = {}
        self.likes: dict[tuple[str, str], LikeRecord] = {}
        self.faults = FaultPlan()
        self._subscribers: list[_Subscriber] = []

    # -- vaults --------------------------------------------------------

    async def get_vault(self, vault_id: str) -> Vault:
        await self._enter("get_vault", [vault_id])
        vault = self.vaults.get(vault_id)
        if vault is None:
            raise NotFound(f"Vault {vault_id} not found")
        return vault.model_copy()

    async def find_vaults_by_code(self, code: str) -> list[Vault]:
        await self._enter("find_vaults_by_code", [code])
        return [v.model_copy() for v in self.vaults.values() if v.code == code]

    async def create_vault(self, vault: Vault) -> Vault:
        await self._enter("create_vault", [vault.id])
        if vault.id in self.vaults or any(v.code == vault.code for v in self.vaults.values()):
            raise Conflict(f"Vault {vault.id} / code {vault.code} already exists")
        self.vaults[vault.id] = vault.model_copy()
        self._committed()
        return vault.model_copy()

    async def update_vault(self, vault: Vault) -> Vault:
        await self._enter("update_vault", [vault.id])
        if vault.id not in self.vaults:
            raise NotFound(f"Vault {vault.id} not found")
        self.vaults[vault.id] = vault.model_copy()
        self._committed()
        return vault.model_copy()

    async def delete_vault(self, vault_id: str) -> None:
        await self._enter("delete_vault", [vault_id])
        if self.vaults.pop(vault_id, None) is None:
            raise NotFound(f"Vault {vault_id} not found")
        for key in [k for k in self.members if k[0] == vault_id]:
            del self.members[key]
        doomed_assets = [a.id for a in self.assets.values() if a.vault_id == vault_id]
        doomed_folders = [f.id for f in self.folders.values() if f.vault_id == vault_id]
        for asset_id in doomed_assets:
            del self.assets[asset_id]
        for key in [k for k in self.likes if k[0] in doomed_assets]:
            del self.likes[key]
        for folder_id in doomed_folders:
            del self.folders[folder_id]
        self._committed()
        for asset_id in doomed_assets:
            self._emit(ChangeTable.ASSETS, ChangeKind.DELETE, vault_id, asset_id)
        for folder_id in doomed_folders:
            self._emit(ChangeTable.FOLDERS, ChangeKind.DELETE, vault_id, folder_id)

    async def list_vaults(self, owner_id: str) -> list[Vault]:
        await self._enter("list_vaults", [owner_id])
        owned = [v.model_copy() for v in self.vaults.values() if v.owner_id == owner_id]
        owned.sort(key=lambda v: v.created_at, reverse=True)
        return owned

    # -- members -------------------------------------------------------

    async def get_membership(self, vault_id: str, user_id: str) -> Optional[Member]:
        await self._enter("get_membership", [vault_id, user_id])
        member = self.members.get((vault_id, user_id))
        return member.model_copy() if member else None

    async def insert_membership(self, member: Member) -> Member:
        await self._enter("insert_membership", [member.vault_id, member.user_id])
        key = (member.vault_id, member.user_id)
        if key in self.members:
            raise Conflict(f"Membership {key} already exists")
        self.members[key] = member.model_copy()
        self._committed()
        return member.model_copy()

    # -- folders -------------------------------------------------------

    async def get_folder(self, folder_id: str) -> Folder:
        await self._enter("get_folder", [folder_id])
        folder = self.folders.get(folder_id)
        if folder is None:
            raise NotFound(f"Folder {folder_id} not found")
        return folder.model_copy()

    async def list_folders(self, vault_id: str, parent_id: Optional[str]) -> list[Folder]:
        await self._enter("list_folders", [vault_id])
        return [
            f.model_copy()
            for f in self.folders.values()
            if f.vault_id == vault_id and f.parent_id == parent_id
        ]

    async def list_all_folders(self, vault_id: str) -> list[Folder]:
        await self._enter("list_all_folders", [vault_id])
        return [f.model_copy() for f in self.folders.values() if f.vault_id == vault_id]

    async def insert_folder(self, folder: Folder) -> Folder:
        await self._enter("insert_folder", [folder.id])
        if folder.parent_id is not None and folder.parent_id not in self.folders:
            raise NotFound(f"Parent folder {folder.parent_id} not found")
        self.folders[folder.id] = folder.model_copy()
        self._committed()
        self._emit(ChangeTable.FOLDERS, ChangeKind.INSERT, folder.vault_id, folder.id)
        return folder.model_copy()

    async def delete_folders(self, folder_ids: Iterable[str]) -> None:
        ids = list(folder_ids)
        await self._enter("delete_folders", ids)
        removed = [self.folders.pop(fid) for fid in ids if fid in self.folders]
        self._committed()
        for folder in removed:
            self._emit(ChangeTable.FOLDERS, ChangeKind.DELETE, folder.vault_id, folder.id)

    # -- assets --------------------------------------------------------

    async def get_asset(self, asset_id: str) -> MediaAsset:
        await self._enter("get_asset", [asset_id])
        asset = self.assets.get(asset_id)
        if asset is None:
            raise NotFound(f"Asset {asset_id} not found")
        return asset.model_copy()

    async def list_assets(self, vault_id: str, folder_id: Optional[str]) -> list[MediaAsset]:
        await self._enter("list_assets", [vault_id])
        found = [
            a.model_copy()
            for a in self.assets.values()
            if a.vault_id == vault_id and a.folder_id == folder_id
        ]
        found.sort(key=lambda a: a.created_at, reverse=True)
        return found

    async def list_assets_in_folders(
        self, vault_id: str, folder_ids: Iterable[str]
    ) -> list[MediaAsset]:
        wanted = set(folder_ids)
        await self._enter("list_assets_in_folders", [vault_id, *wanted])
        return [
            a.model_copy()
            for a in self.assets.values()
            if a.vault_id == vault_id and a.folder_id in wanted
        ]

    async def insert_asset(self, asset: MediaAsset) -> MediaAsset:
        await self._enter("insert_asset", [asset.id, asset.file_name])
        self.assets[asset.id] = asset.model_copy()
        self._committed()
        self._emit(ChangeTable.ASSETS, ChangeKind.INSERT, asset.vault_id, asset.id)
        return asset.model_copy()

    async def delete_assets(self, asset_ids: Iterable[str]) -> None:
        ids = list(asset_ids)
        await self._enter("delete_assets", ids)
        removed = [self.assets.pop(aid) for aid in ids if aid in self.assets]
        gone = {a.id for a in removed}
        for key in [k for k in self.likes if k[0] in gone]:
            del self.likes[key]
        self._committed()
        for asset in removed:
            self._emit(ChangeTable.ASSETS, ChangeKind.DELETE, asset.vault_id, asset.id)

    # -- likes ---------------------------------------------------------

    async def has_like(self, asset_id: str, actor_id: str) -> bool:
        await self._enter("has_like", [asset_id, actor_id])
        return (asset_id, actor_id) in self.likes

    async def insert_like(self, like: LikeRecord) -> None:
        await self._enter("insert_like", [like.asset_id, like.actor_id])
        asset = self.assets.get(like.asset_id)
        if asset is None:
            raise NotFound(f"Asset {like.asset_id} not found")
        key = (like.asset_id, like.actor_id)
        if key in self.likes:
            raise Conflict(f"Like {key} already exists")
        self.likes[key] = like.model_copy()
        self.assets[asset.id] = asset.model_copy(update={"like_count": asset.like_count + 1})
        self._committed()
        self._emit(ChangeTable.ASSETS, ChangeKind.UPDATE, asset.vault_id, asset.id)

    async def delete_like(self, asset_id: str, actor_id: str) -> bool:
        await self._enter("delete_like", [asset_id, actor_id])
        if self.likes.pop((asset_id, actor_id), None) is None:
            return False
        asset = self.assets.get(asset_id)
        if asset is not None:
            self.assets[asset_id] = asset.model_copy(
                update={"like_count": max(0, asset.like_count - 1)}
            )
        self._committed()
        if asset is not None:
            self._emit(ChangeTable.ASSETS, ChangeKind.UPDATE, asset.vault_id, asset_id)
        return True

    # -- change feed ---------------------------------------------------

    def subscribe(
        self,
        vault_id: str,
        tables: Iterable[ChangeTable],
        callback: ChangeCallback,
    ) -> Unsubscribe:
        sub = _Subscriber(vault_id, frozenset(tables), callback)
        self._subscribers.append(sub)
        logger.debug("Change feed subscriber added for vault %s", vault_id)

        def unsubscribe() -> None:
            if sub in self._subscribers:
                self._subscribers.remove(sub)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    # -------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------

    async def _enter(self, operation: str, keys: Iterable[str] = ()) -> None:
        """Suspend once, then raise any scheduled fault for this call."""
        await asyncio.sleep(0)
        error = self.faults.take(operation, keys)
        if error is not None:
            await self.report_error(error)
            raise error

    def _committed(self) -> None:
        """Called after every successful mutation."""

    def _emit(self, table: ChangeTable, kind: ChangeKind, vault_id: str, record_id: str) -> None:
        event = ChangeEvent(table=table, kind=kind, vault_id=vault_id, record_id=record_id)
        for sub in list(self._subscribers):
            if sub.vault_id != vault_id or table not in sub.tables:
                continue
            try:
                sub.callback(event)
            except Exception as exc:
                logger.error("Change feed callback failed for %s: %s", vault_id, exc)


# ---------------------------------------------------------------------------
# MemoryBlobStore
# ---------------------------------------------------------------------------


class MemoryBlobStore(BlobStore):
    """Blob store holding bytes in a dict.

    Uploads report progress once per chunk and yield between chunks.

    Args:
        base_url: Prefix for public URLs.
        chunk_size: Progress granularity in bytes.
    """

    def __init__(self, base_url: str = "memory://media", chunk_size: int = CHUNK_SIZE) -> None:
        self._base_url = base_url.rstrip("/")
        self._chunk_size = max(1, chunk_size)
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.faults = FaultPlan()

    async def upload(
        self,
        path: str,
        data: bytes,
        content_type: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> str:
        total = len(data)
        sent = 0
        while True:
            await asyncio.sleep(0)
            error = self.faults.take("upload", [path], substring=True)
            if error is not None:
                raise error
            sent = min(total, sent + self._chunk_size)
            if on_progress is not None:
                on_progress(sent, total)
            if sent >= total:
                break
        self._write(path, data, content_type)
        return self.public_url(path)

    async def remove(self, paths: Iterable[str]) -> None:
        paths = list(paths)
        await asyncio.sleep(0)
        error = self.faults.take("remove", paths, substring=True)
        if error is not None:
            raise error
        for path in paths:
            self._delete(path)

    async def download(self, path: str) -> bytes:
        await asyncio.sleep(0)
        error = self.faults.take("download", [path], substring=True)
        if error is not None:
            raise error
        return self._read(path)

    def public_url(self, path: str) -> str:
        return f"{self._base_url}/{path}"

    def _write(self, path: str, data: bytes, content_type: str) -> None:
        self.objects[path] = (bytes(data), content_type)

    def _read(self, path: str) -> bytes:
        if path not in self.objects:
            raise NotFound(f"Object {path} not found")
        return self.objects[path][0]

    def _delete(self, path: str) -> None:
        self.objects.pop(path, None)


# ---------------------------------------------------------------------------
# MemoryIdentityProvider
# ---------------------------------------------------------------------------


class MemoryIdentityProvider(IdentityProvider):
    """Identity provider with a settable identity.

    Args:
        identity: Initially signed-in identity, or None.
        delay: Seconds get_session() waits before answering.
    """

    def __init__(self, identity: Optional[Identity] = None, delay: float = 0.0) -> None:
        self._identity = identity
        self._delay = delay
        self._callbacks: list[AuthCallback] = []

    async def get_session(self) -> Optional[Identity]:
        if self._delay:
            await asyncio.sleep(self._delay)
        else:
            await asyncio.sleep(0)
        return self._identity

    def on_auth_state_change(self, callback: AuthCallback) -> Unsubscribe:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def sign_in(self, identity: Identity) -> None:
        self._identity = identity
        self.emit(AuthEvent.SIGNED_IN, identity)

    async def sign_out(self) -> None:
        await asyncio.sleep(0)
        self._identity = None
        self.emit(AuthEvent.SIGNED_OUT, None)

    def emit(self, event: AuthEvent, identity: Optional[Identity]) -> None:
        for cb in list(self._callbacks):
            try:
                cb(event, identity)
            except Exception as exc:
                logger.error("Auth callback failed on %s: %s", event.value, exc)
