"""Vault commands: create, list, show, join, set, delete."""

from __future__ import annotations

import json
import sys

import click
from rich.panel import Panel
from rich.table import Table

from ..errors import AccessDenied, VaultError
from ._common import (
    build_session,
    console,
    home_option,
    open_workspace,
    permissions_line,
    resolve_vault_id,
    run,
    user_option,
    yes_no,
)


def register_vault_commands(main: click.Group) -> None:
    """Register the vault command group."""

    @main.group()
    def vault():
        """Vault management — create vaults and hand out join codes."""

    @vault.command("create")
    @click.argument("name")
    @click.option("--description", default="", help="Short description.")
    @click.option("--public", "is_public", is_flag=True, help="Anyone with the code may view.")
    @click.option("--allow-uploads", is_flag=True, help="Let guests upload.")
    @click.option("--no-downloads", is_flag=True, help="Disable downloads for guests.")
    @click.option("--passkey", default=None, help="Passkey for private vaults.")
    @home_option
    @user_option
    def vault_create(name, description, is_public, allow_uploads, no_downloads, passkey, home, user):
        """Create a vault and print its join code."""
        from ..vaults import create_vault

        async def _create():
            cli = await build_session(home, user)
            return await create_vault(
                cli.store, cli.owner, name,
                description=description,
                is_public=is_public,
                allow_uploads=allow_uploads,
                allow_downloads=not no_downloads,
                passkey=passkey,
            )

        try:
            created = run(_create())
        except (ValueError, VaultError) as exc:
            console.print(f"\n  [red]Error:[/] {exc}\n")
            sys.exit(1)

        console.print(f"\n  [green]Created vault:[/] [cyan]{created.name}[/]")
        console.print(f"  Code: [bold]{created.code}[/]")
        console.print(f"  Visibility: {'public' if created.is_public else 'private'}")
        if created.passkey:
            console.print("  [dim]Passkey set, share it with guests separately.[/]")
        console.print()

    @vault.command("list")
    @home_option
    @user_option
    @click.option("--json-out", is_flag=True, help="Output as JSON.")
    def vault_list(home, user, json_out):
        """List vaults you own."""
        from ..vaults import list_owned_vaults

        async def _list():
            cli = await build_session(home, user)
            return await list_owned_vaults(cli.store, cli.owner)

        vaults = run(_list())

        if json_out:
            click.echo(json.dumps(
                [v.model_dump(mode="json", exclude={"passkey"}) for v in vaults], indent=2
            ))
            return

        console.print()
        if not vaults:
            console.print("  [dim]No vaults yet.[/]")
            console.print("  Create one: eventvault vault create \"Summer Party\" --user me")
            console.print()
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2),
                      title=f"Your Vaults ({len(vaults)})")
        table.add_column("Code", style="bold")
        table.add_column("Name", style="cyan")
        table.add_column("Public")
        table.add_column("Uploads")
        table.add_column("Downloads")

        for v in vaults:
            table.add_row(v.code, v.name, yes_no(v.is_public),
                          yes_no(v.allow_uploads), yes_no(v.allow_downloads))

        console.print(table)
        console.print()

    @vault.command("show")
    @click.argument("code")
    @home_option
    @user_option
    def vault_show(code, home, user):
        """Show a vault and your permissions on it."""

        async def _show():
            cli = await build_session(home, user)
            ws = await open_workspace(cli, code, require_view=False)
            ws.close()
            return ws

        ws = run(_show())
        v = ws.vault
        perms = ws.permissions

        lines = [
            f"[bold]Name:[/]         [cyan]{v.name}[/]",
            f"[bold]Code:[/]         {v.code}",
            f"[bold]Visibility:[/]   {'public' if v.is_public else 'private'}",
        ]
        if perms.can_view:
            if v.description:
                lines.append(f"[bold]About:[/]        {v.description}")
            lines.append(f"[bold]Folders:[/]      {len(ws.view.folders)}")
            lines.append(f"[bold]Files:[/]        {len(ws.view.assets)}")
        lines.append(f"[bold]Access:[/]       {permissions_line(perms)}")
        if perms.is_owner:
            lines.append("[bold]Role:[/]         owner")
        elif perms.is_admin:
            lines.append("[bold]Role:[/]         admin")

        console.print()
        console.print(Panel("\n".join(lines), title="Vault", border_style="cyan"))
        if not perms.can_view:
            console.print(f"  [yellow]Restricted.[/] Join with: eventvault vault join {code} --passkey <passkey>")
        console.print()

    @vault.command("join")
    @click.argument("code")
    @click.option("--passkey", prompt=True, hide_input=True, help="The vault's passkey.")
    @home_option
    @user_option
    def vault_join(code, passkey, home, user):
        """Unlock a private vault with its passkey."""

        async def _join():
            cli = await build_session(home, user)
            ws = await open_workspace(cli, code, require_view=False)
            if ws.permissions.can_view:
                ws.close()
                return None
            result = await ws.request_join(passkey)
            ws.close()
            return result

        result = run(_join())
        if result is None:
            console.print("\n  [green]You already have access.[/]\n")
            return
        if not result.success:
            console.print(f"\n  [red]{result.message}[/]\n")
            sys.exit(1)
        console.print(f"\n  [green]{result.message}[/]\n")

    @vault.command("set")
    @click.argument("code")
    @click.option("--name", default=None)
    @click.option("--description", default=None)
    @click.option("--public/--private", "is_public", default=None)
    @click.option("--uploads/--no-uploads", "allow_uploads", default=None)
    @click.option("--downloads/--no-downloads", "allow_downloads", default=None)
    @click.option("--passkey", default=None, help="New passkey (empty string removes it).")
    @home_option
    @user_option
    def vault_set(code, name, description, is_public, allow_uploads, allow_downloads,
                  passkey, home, user):
        """Change a vault's settings (owner only)."""
        from ..vaults import update_vault

        changes = {
            key: value
            for key, value in {
                "name": name,
                "description": description,
                "is_public": is_public,
                "allow_uploads": allow_uploads,
                "allow_downloads": allow_downloads,
                "passkey": passkey,
            }.items()
            if value is not None
        }
        if not changes:
            console.print("\n  [yellow]Nothing to change.[/]\n")
            return

        async def _set():
            cli = await build_session(home, user)
            vault_id = await resolve_vault_id(cli, code)
            return await update_vault(cli.store, cli.owner, vault_id, **changes)

        try:
            updated = run(_set())
        except AccessDenied as exc:
            console.print(f"\n  [red]Error:[/] {exc}\n")
            sys.exit(1)

        console.print(f"\n  [green]Updated vault:[/] [cyan]{updated.name}[/] "
                      f"({', '.join(sorted(changes))})\n")

    @vault.command("delete")
    @click.argument("code")
    @click.option("--yes", is_flag=True, help="Skip the confirmation prompt.")
    @home_option
    @user_option
    def vault_delete(code, yes, home, user):
        """Delete a vault and everything in it (owner only)."""
        from ..vaults import delete_vault

        if not yes:
            click.confirm(f"Delete vault {code} and all its files?", abort=True)

        async def _delete():
            cli = await build_session(home, user)
            vault_id = await resolve_vault_id(cli, code)
            await delete_vault(cli.store, cli.blobs, cli.owner, vault_id)

        try:
            run(_delete())
        except AccessDenied as exc:
            console.print(f"\n  [red]Error:[/] {exc}\n")
            sys.exit(1)
        console.print(f"\n  [green]Deleted vault {code}.[/]\n")
