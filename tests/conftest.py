"""Shared test fixtures for eventvault."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from eventvault.access import SessionGrantStore
from eventvault.backends import MemoryBlobStore, MemoryIdentityProvider, MemoryStore
from eventvault.config import EventVaultConfig
from eventvault.models import (
    AnonymousActor,
    AuthenticatedActor,
    Folder,
    Identity,
    MediaAsset,
    MediaType,
    Member,
    MemberRole,
    Vault,
    utcnow,
)
from eventvault.session import SessionManager
from eventvault.uploads import UploadQueue


@pytest.fixture
def store() -> MemoryStore:
    """Provide an empty in-memory relational store."""
    return MemoryStore()


@pytest.fixture
def blobs() -> MemoryBlobStore:
    """Provide a blob store with tiny chunks so progress fires often."""
    return MemoryBlobStore(chunk_size=4)


@pytest.fixture
def grants() -> SessionGrantStore:
    return SessionGrantStore()


@pytest.fixture
def config() -> EventVaultConfig:
    """Configuration with no artificial waits."""
    return EventVaultConfig(
        completion_display_seconds=60.0,
        stabilization_delay=0.0,
        session_timeout=0.2,
        upload_retry_backoff=0.0,
    )


@pytest.fixture
def uploads(store: MemoryStore, blobs: MemoryBlobStore, config: EventVaultConfig) -> UploadQueue:
    return UploadQueue(store, blobs, config)


@pytest.fixture
def alice() -> AuthenticatedActor:
    return AuthenticatedActor(user_id="alice")


@pytest.fixture
def guest() -> AnonymousActor:
    return AnonymousActor(guest_id="guest-test")


@pytest.fixture
def provider() -> MemoryIdentityProvider:
    """Identity provider with alice signed in."""
    return MemoryIdentityProvider(Identity(user_id="alice", email="alice@example.com"))


@pytest.fixture
def session(provider: MemoryIdentityProvider, grants: SessionGrantStore, guest: AnonymousActor) -> SessionManager:
    """Session for alice. Call ``await session.bootstrap()`` before use."""
    return SessionManager(provider, grants, guest=guest, timeout=0.2)


@pytest.fixture
def tmp_home(tmp_path: Path) -> Path:
    """Provide a temporary EventVault home directory."""
    home = tmp_path / ".eventvault"
    home.mkdir()
    return home


# ---------------------------------------------------------------------------
# Seeding helpers
# ---------------------------------------------------------------------------


def make_vault(**overrides) -> Vault:
    """Build a private vault owned by 'owner' with a fixed code."""
    fields = {
        "id": "v1",
        "owner_id": "owner",
        "name": "Summer Party",
        "code": "ABC123",
        "is_public": False,
        "allow_uploads": False,
        "allow_downloads": True,
    }
    fields.update(overrides)
    return Vault(**fields)


def seed_vault(store: MemoryStore, **overrides) -> Vault:
    vault = make_vault(**overrides)
    store.vaults[vault.id] = vault
    return vault


def seed_member(store: MemoryStore, vault_id: str, user_id: str, role: MemberRole) -> Member:
    member = Member(vault_id=vault_id, user_id=user_id, role=role)
    store.members[(vault_id, user_id)] = member
    return member


def seed_folder(store: MemoryStore, folder_id: str, name: str, parent_id=None, vault_id: str = "v1") -> Folder:
    folder = Folder(id=folder_id, vault_id=vault_id, parent_id=parent_id, name=name)
    store.folders[folder.id] = folder
    return folder


def seed_asset(
    store: MemoryStore,
    asset_id: str,
    file_name: str,
    folder_id=None,
    blobs: MemoryBlobStore = None,
    vault_id: str = "v1",
    media_type: MediaType = MediaType.IMAGE,
    age_minutes: int = 0,
) -> MediaAsset:
    """Insert an asset row and, if a blob store is given, its bytes."""
    path = f"{vault_id}/{asset_id}-{file_name}"
    asset = MediaAsset(
        created_at=utcnow() - timedelta(minutes=age_minutes),
        id=asset_id,
        vault_id=vault_id,
        folder_id=folder_id,
        uploader_id="owner",
        url=f"memory://media/{path}",
        storage_path=path,
        file_name=file_name,
        type=media_type,
        size_bytes=3,
    )
    store.assets[asset.id] = asset
    if blobs is not None:
        blobs.objects[path] = (b"abc", "image/jpeg")
    return asset
