"""
Local filesystem backends — the in-process store persisted to disk.

Storage layout:
    ~/.eventvault/store/
    ├── tables.json         # vaults, members, folders, assets, likes
    └── blobs/
        └── <vault_id>/
            └── <token>-<file name>

The change feed is in-process only: a second process writing the
same directory is picked up on the next explicit reload, not pushed.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from ..errors import NotFound
from ..models import Folder, LikeRecord, MediaAsset, Member, Vault
from .memory import MemoryBlobStore, MemoryStore

logger = logging.getLogger("eventvault.backends.local")


class LocalStore(MemoryStore):
    """MemoryStore that snapshots its tables to ``tables.json``.

    Args:
        root: Directory holding the store.
    """

    def __init__(self, root: Path) -> None:
        super().__init__()
        self._root = Path(root).expanduser()
        self._tables_file = self._root / "tables.json"
        self._load()

    @property
    def root(self) -> Path:
        return self._root

    def _load(self) -> None:
        if not self._tables_file.exists():
            return
        try:
            data = json.loads(self._tables_file.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Failed to load store tables from %s: %s", self._tables_file, exc)
            return

        for raw in data.get("vaults", []):
            vault = Vault.model_validate(raw)
            self.vaults[vault.id] = vault
        for raw in data.get("members", []):
            member = Member.model_validate(raw)
            self.members[(member.vault_id, member.user_id)] = member
        for raw in data.get("folders", []):
            folder = Folder.model_validate(raw)
            self.folders[folder.id] = folder
        for raw in data.get("assets", []):
            asset = MediaAsset.model_validate(raw)
            self.assets[asset.id] = asset
        for raw in data.get("likes", []):
            like = LikeRecord.model_validate(raw)
            self.likes[(like.asset_id, like.actor_id)] = like

    def _committed(self) -> None:
        self._root.mkdir(parents=True, exist_ok=True)
        data = {
            "vaults": [v.model_dump(mode="json") for v in self.vaults.values()],
            "members": [m.model_dump(mode="json") for m in self.members.values()],
            "folders": [f.model_dump(mode="json") for f in self.folders.values()],
            "assets": [a.model_dump(mode="json") for a in self.assets.values()],
            "likes": [lk.model_dump(mode="json") for lk in self.likes.values()],
        }
        tmp_path = self._tables_file.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        tmp_path.replace(self._tables_file)


class LocalBlobStore(MemoryBlobStore):
    """Blob store writing objects under ``<root>/blobs``.

    Public URLs are ``file://`` URIs of the stored files.
    """

    def __init__(self, root: Path, chunk_size: int = 256 * 1024) -> None:
        self._blob_dir = (Path(root).expanduser() / "blobs").resolve()
        super().__init__(base_url=self._blob_dir.as_uri(), chunk_size=chunk_size)

    def _object_path(self, path: str) -> Path:
        target = (self._blob_dir / path).resolve()
        if self._blob_dir not in target.parents:
            raise ValueError(f"Refusing path outside blob directory: {path}")
        return target

    def _write(self, path: str, data: bytes, content_type: str) -> None:
        target = self._object_path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    def _read(self, path: str) -> bytes:
        target = self._object_path(path)
        if not target.is_file():
            raise NotFound(f"Object {path} not found")
        return target.read_bytes()

    def _delete(self, path: str) -> None:
        target = self._object_path(path)
        if target.is_file():
            target.unlink()
