"""
Vault administration — create, edit and delete vaults.

Only the owner may change or delete a vault. New vaults get a random
join code; a code collision is retried with a fresh code.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from .codes import generate_vault_code
from .errors import AccessDenied, Conflict
from .interfaces import BlobStore, RelationalStore
from .models import AuthenticatedActor, Vault

logger = logging.getLogger("eventvault.vaults")

EDITABLE_FIELDS = {"name", "description", "is_public", "allow_uploads", "allow_downloads", "passkey"}


async def create_vault(
    store: RelationalStore,
    owner: AuthenticatedActor,
    name: str,
    description: str = "",
    is_public: bool = False,
    allow_uploads: bool = False,
    allow_downloads: bool = True,
    passkey: Optional[str] = None,
    code_attempts: int = 5,
) -> Vault:
    """Create a vault owned by ``owner``.

    Raises:
        ValueError: If the name is empty.
        Conflict: If no free join code was found.
    """
    name = name.strip()
    if not name:
        raise ValueError("Vault name cannot be empty")

    for _ in range(max(1, code_attempts)):
        vault = Vault(
            owner_id=owner.user_id,
            name=name,
            description=description,
            is_public=is_public,
            allow_uploads=allow_uploads,
            allow_downloads=allow_downloads,
            passkey=passkey,
            code=generate_vault_code(),
        )
        try:
            created = await store.create_vault(vault)
        except Conflict:
            logger.debug("Vault code %s taken, trying another", vault.code)
            continue
        logger.info("Created vault %s (%s) for %s", created.id, created.code, owner.user_id)
        return created

    raise Conflict("Could not allocate a unique vault code")


async def update_vault(
    store: RelationalStore,
    actor: AuthenticatedActor,
    vault_id: str,
    **changes: Any,
) -> Vault:
    """Change a vault's settings. Only EDITABLE_FIELDS may change.

    Raises:
        AccessDenied: If the actor is not the owner.
        ValueError: On an unknown field.
    """
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot edit vault field(s): {', '.join(sorted(unknown))}")

    vault = await store.get_vault(vault_id)
    _require_owner(actor, vault)
    updated = Vault.model_validate({**vault.model_dump(), **changes})
    saved = await store.update_vault(updated)
    logger.info("Updated vault %s: %s", vault_id, ", ".join(sorted(changes)))
    return saved


async def delete_vault(
    store: RelationalStore,
    blobs: BlobStore,
    actor: AuthenticatedActor,
    vault_id: str,
) -> None:
    """Delete a vault, its rows and (best-effort) its stored files.

    Raises:
        AccessDenied: If the actor is not the owner.
    """
    vault = await store.get_vault(vault_id)
    _require_owner(actor, vault)

    folders = await store.list_all_folders(vault_id)
    assets = await store.list_assets(vault_id, None)
    assets += await store.list_assets_in_folders(vault_id, [f.id for f in folders])
    paths = [a.storage_path for a in assets if a.storage_path]
    if paths:
        try:
            await blobs.remove(paths)
        except Exception as exc:
            logger.warning("Blob cleanup failed for vault %s: %s", vault_id, exc)

    await store.delete_vault(vault_id)
    logger.info("Deleted vault %s", vault_id)


async def list_owned_vaults(store: RelationalStore, actor: AuthenticatedActor) -> list[Vault]:
    return await store.list_vaults(actor.user_id)


def _require_owner(actor: AuthenticatedActor, vault: Vault) -> None:
    if actor.user_id != vault.owner_id:
        raise AccessDenied("Only the vault owner can do this")
