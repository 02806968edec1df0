"""Shared utilities for all CLI command modules.

Provides the Rich console, the --home/--user options, and the
wiring that turns a home directory into a ready client session.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Coroutine, Optional, TypeVar

import click
from rich.console import Console

from .. import EVENTVAULT_HOME
from ..access import SessionGrantStore
from ..backends import LocalBlobStore, LocalStore, MemoryIdentityProvider
from ..codes import CodeResolver, Found, LookupFailed
from ..config import EventVaultConfig, load_config
from ..models import AuthenticatedActor, Identity, Permissions, UploadStatus
from ..session import SessionManager, load_guest_actor
from ..uploads import UploadQueue
from ..workspace import VaultWorkspace

console = Console()
logger = logging.getLogger("eventvault.cli")

T = TypeVar("T")


def home_option(func):
    return click.option(
        "--home", default=EVENTVAULT_HOME, type=click.Path(), help="EventVault home directory."
    )(func)


def user_option(func):
    return click.option(
        "--user", default=None, help="Act as this user id (omit for guest access)."
    )(func)


def run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


def status_style(status: UploadStatus) -> str:
    """Map upload status to a Rich-formatted label."""
    return {
        UploadStatus.QUEUED: "[dim]QUEUED[/]",
        UploadStatus.UPLOADING: "[cyan]UPLOADING[/]",
        UploadStatus.FINALIZING: "[cyan]FINALIZING[/]",
        UploadStatus.COMPLETE: "[bold green]COMPLETE[/]",
        UploadStatus.ERROR: "[bold red]ERROR[/]",
    }.get(status, "[dim]UNKNOWN[/]")


def yes_no(flag: bool) -> str:
    return "[green]yes[/]" if flag else "[red]no[/]"


def permissions_line(perms: Permissions) -> str:
    return (
        f"view {yes_no(perms.can_view)}  upload {yes_no(perms.can_upload)}  "
        f"download {yes_no(perms.can_download)}  admin {yes_no(perms.is_admin)}"
    )


@dataclass
class CliSession:
    """Store, blobs, session and upload queue for one CLI invocation."""

    home: Path
    config: EventVaultConfig
    store: LocalStore
    blobs: LocalBlobStore
    session: SessionManager
    uploads: UploadQueue

    @property
    def owner(self) -> AuthenticatedActor:
        actor = self.session.actor
        if not isinstance(actor, AuthenticatedActor):
            console.print("\n  [bold red]Sign in required.[/] Pass --user <id>.\n")
            raise click.exceptions.Exit(1)
        return actor

    def workspace(self, vault_id: str, folder_id: Optional[str] = None) -> VaultWorkspace:
        return VaultWorkspace(
            vault_id, self.store, self.blobs, self.session, self.uploads, folder_id=folder_id
        )


async def build_session(home: str, user: Optional[str]) -> CliSession:
    """Wire up a client session rooted at ``home``."""
    home_path = Path(home).expanduser()
    home_path.mkdir(parents=True, exist_ok=True)
    config = load_config(home_path)
    store_root = config.store_path or home_path / "store"

    store = LocalStore(store_root)
    blobs = LocalBlobStore(store_root)
    grants = SessionGrantStore(home_path / "session" / "grants.json")
    guest = load_guest_actor(home_path / "session" / "guest.json")
    provider = MemoryIdentityProvider(Identity(user_id=user) if user else None)

    session = SessionManager(provider, grants, guest=guest, timeout=config.session_timeout)
    session.register_middleware(store)
    await session.bootstrap()

    return CliSession(
        home=home_path,
        config=config,
        store=store,
        blobs=blobs,
        session=session,
        uploads=UploadQueue(store, blobs, config),
    )


async def resolve_vault_id(cli: CliSession, code: str) -> str:
    """Turn a join code into a vault id or exit with a generic message."""
    result = await CodeResolver(cli.store).resolve(code)
    if isinstance(result, Found):
        return result.vault_id
    if isinstance(result, LookupFailed):
        logger.warning("Code lookup failed: %s", result.reason)
    console.print("\n  [bold red]Vault not found or invalid code.[/]\n")
    raise click.exceptions.Exit(1)


async def open_workspace(
    cli: CliSession,
    code: str,
    folder_id: Optional[str] = None,
    require_view: bool = True,
) -> VaultWorkspace:
    """Resolve a code, open the workspace and check view access."""
    vault_id = await resolve_vault_id(cli, code)
    ws = cli.workspace(vault_id, folder_id=folder_id)
    perms = await ws.open()
    if require_view and not perms.can_view:
        console.print("\n  [bold yellow]Restricted access.[/] Join with: "
                      f"eventvault vault join {code} --passkey <passkey>\n")
        ws.close()
        raise click.exceptions.Exit(1)
    return ws
