"""
Access resolution — who may view, upload and download a vault.

Permissions are derived on every call from four signals, first match
wins for view access:

    1. actor is the vault owner           -> full access
    2. membership role is owner/admin     -> full access
    3. any membership                     -> view
    4. vault is public                    -> view (+ viewer membership
                                             for a signed-in actor)
    5. session grant for this vault       -> view
    6. otherwise                          -> nothing

Upload and download follow view access, gated by the vault's flags,
and are always allowed for admins.
"""

from __future__ import annotations

import hmac
import json
import logging
from pathlib import Path
from typing import Optional, Union

from .errors import Conflict
from .interfaces import RelationalStore
from .models import (
    AnonymousActor,
    AuthenticatedActor,
    JoinResult,
    Member,
    MemberRole,
    Permissions,
    Vault,
)

logger = logging.getLogger("eventvault.access")

JOIN_FAILED_MESSAGE = "Invalid code or passkey."
JOIN_OK_MESSAGE = "Access granted."

ActorLike = Union[AuthenticatedActor, AnonymousActor, None]


class SessionGrantStore:
    """Per-session record of vaults unlocked with a passkey.

    Grants live in memory; with a path they are also written to disk
    so a later process in the same session is not re-prompted.

    Args:
        path: Optional JSON file for persistence.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = path
        self._grants: set[str] = self._load()

    def grant(self, vault_id: str) -> None:
        if vault_id in self._grants:
            return
        self._grants.add(vault_id)
        self._save()

    def has_grant(self, vault_id: str) -> bool:
        return vault_id in self._grants

    def revoke(self, vault_id: str) -> None:
        self._grants.discard(vault_id)
        self._save()

    def clear(self) -> None:
        self._grants.clear()
        self._save()

    def __len__(self) -> int:
        return len(self._grants)

    def _load(self) -> set[str]:
        if self._path is None or not self._path.exists():
            return set()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            return set(data.get("vaults", []))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Failed to load session grants: %s", exc)
            return set()

    def _save(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(
            json.dumps({"vaults": sorted(self._grants)}, indent=2),
            encoding="utf-8",
        )


def passkey_matches(candidate: Optional[str], expected: Optional[str]) -> bool:
    """Exact, case-sensitive comparison of a trimmed passkey.

    A vault without a passkey never matches anything.
    """
    if expected is None or candidate is None:
        return False
    return hmac.compare_digest(candidate.strip().encode("utf-8"), expected.encode("utf-8"))


def derive_permissions(
    actor: ActorLike,
    vault: Vault,
    membership: Optional[Member],
    has_grant: bool,
) -> Permissions:
    """Pure permission derivation. No I/O, no side effects."""
    user_id = actor.user_id if isinstance(actor, AuthenticatedActor) else None

    is_owner = False
    is_admin = False
    if user_id is not None and user_id == vault.owner_id:
        is_owner = is_admin = True
        can_view = True
    elif membership is not None and membership.role in (MemberRole.OWNER, MemberRole.ADMIN):
        is_owner = membership.role == MemberRole.OWNER
        is_admin = True
        can_view = True
    elif membership is not None:
        can_view = True
    elif vault.is_public:
        can_view = True
    else:
        can_view = has_grant

    return Permissions(
        can_view=can_view,
        can_upload=is_admin or (vault.allow_uploads and can_view),
        can_download=is_admin or (vault.allow_downloads and can_view),
        is_owner=is_owner,
        is_admin=is_admin,
    )


class AccessResolver:
    """Resolves permissions and runs the passkey join protocol.

    Nothing is cached: every resolve() reads membership fresh, so a
    change of vault, identity or grants is always reflected.

    Args:
        store: Relational store for membership lookups and inserts.
        grants: Session-local passkey grants.
    """

    def __init__(self, store: RelationalStore, grants: SessionGrantStore) -> None:
        self._store = store
        self._grants = grants

    @property
    def grants(self) -> SessionGrantStore:
        return self._grants

    async def resolve(self, actor: ActorLike, vault: Vault) -> Permissions:
        """Derive the actor's permissions on a vault.

        A signed-in actor viewing a public vault without a membership
        is given a viewer membership as a side effect.
        """
        membership = await self._lookup_membership(actor, vault)
        permissions = derive_permissions(
            actor, vault, membership, self._grants.has_grant(vault.id)
        )

        if (
            vault.is_public
            and membership is None
            and isinstance(actor, AuthenticatedActor)
            and not permissions.is_owner
        ):
            await self._ensure_viewer(vault, actor)

        return permissions

    async def request_join(self, actor: ActorLike, vault: Vault, passkey: str) -> JoinResult:
        """Try to unlock a vault with its passkey.

        The failure message is the same whatever the reason, so a
        caller learns nothing about the vault from a failed attempt.
        """
        if not passkey_matches(passkey, vault.passkey):
            logger.info("Join rejected for vault %s", vault.id)
            return JoinResult(success=False, message=JOIN_FAILED_MESSAGE)

        self._grants.grant(vault.id)
        if isinstance(actor, AuthenticatedActor):
            membership = await self._lookup_membership(actor, vault)
            if membership is None and actor.user_id != vault.owner_id:
                await self._ensure_viewer(vault, actor)

        logger.info("Join accepted for vault %s", vault.id)
        return JoinResult(success=True, message=JOIN_OK_MESSAGE)

    # -------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------

    async def _lookup_membership(self, actor: ActorLike, vault: Vault) -> Optional[Member]:
        if not isinstance(actor, AuthenticatedActor):
            return None
        try:
            return await self._store.get_membership(vault.id, actor.user_id)
        except Exception as exc:
            logger.warning(
                "Membership lookup failed for %s on %s, treating as none: %s",
                actor.user_id, vault.id, exc,
            )
            return None

    async def _ensure_viewer(self, vault: Vault, actor: AuthenticatedActor) -> None:
        try:
            await self._store.insert_membership(
                Member(vault_id=vault.id, user_id=actor.user_id, role=MemberRole.VIEWER)
            )
            logger.info("Added viewer %s to vault %s", actor.user_id, vault.id)
        except Conflict:
            logger.debug("Viewer %s already in vault %s", actor.user_id, vault.id)
        except Exception as exc:
            logger.warning(
                "Could not record viewer %s on vault %s: %s", actor.user_id, vault.id, exc
            )
