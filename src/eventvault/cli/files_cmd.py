"""File commands: ls, upload, rm, mkdir, export, like."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click
from rich.table import Table

from ..errors import AccessDenied, NotFound
from ..models import UploadFile, UploadTask
from ._common import (
    build_session,
    console,
    home_option,
    open_workspace,
    run,
    status_style,
    user_option,
)


def _human_size(size: int) -> str:
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size} B"


def register_files_commands(main: click.Group) -> None:
    """Register the files command group."""

    @main.group()
    def files():
        """Vault contents — list, upload, delete and export files."""

    @files.command("ls")
    @click.argument("code")
    @click.option("--folder", "folder_id", default=None, help="Folder id (default: root).")
    @click.option("--search", default="", help="Only files whose name contains this.")
    @home_option
    @user_option
    @click.option("--json-out", is_flag=True, help="Output as JSON.")
    def files_ls(code, folder_id, search, home, user, json_out):
        """List folders and files in a vault."""

        async def _ls():
            cli = await build_session(home, user)
            ws = await open_workspace(cli, code, folder_id=folder_id)
            ws.close()
            return ws

        try:
            ws = run(_ls())
        except NotFound as exc:
            console.print(f"\n  [red]Error:[/] {exc}\n")
            sys.exit(1)

        folders = [] if search else ws.view.folders
        assets = ws.view.filter(search)

        if json_out:
            click.echo(json.dumps({
                "folders": [f.model_dump(mode="json") for f in folders],
                "assets": [a.model_dump(mode="json") for a in assets],
            }, indent=2))
            return

        console.print()
        trail = " / ".join(f.name for f in ws.view.breadcrumb)
        title = f"{ws.vault.name}" + (f" / {trail}" if trail else "")
        if not folders and not assets:
            console.print(f"  [bold]{title}[/]")
            console.print("  [dim]Nothing here yet.[/]")
            console.print()
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2),
                      title=title)
        table.add_column("Id", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Type")
        table.add_column("Size", justify="right")
        table.add_column("Likes", justify="right")

        for f in folders:
            table.add_row(f.id, f"{f.name}/", "folder", "", "")
        for a in assets:
            table.add_row(a.id, a.file_name, a.type.value, _human_size(a.size_bytes), str(a.like_count))

        console.print(table)
        console.print()

    @files.command("upload")
    @click.argument("code")
    @click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
    @click.option("--folder", "folder_id", default=None, help="Target folder id (default: root).")
    @home_option
    @user_option
    def files_upload(code, paths, folder_id, home, user):
        """Upload one or more files into a vault."""
        finished: dict[str, UploadTask] = {}

        async def _upload():
            cli = await build_session(home, user)
            cli.uploads.on_change(lambda task: finished.__setitem__(task.id, task))
            ws = await open_workspace(cli, code)
            try:
                await ws.enqueue_upload([UploadFile.from_path(Path(p)) for p in paths], folder_id)
                await cli.uploads.wait()
            finally:
                ws.close()

        try:
            run(_upload())
        except AccessDenied:
            console.print("\n  [red]Uploads are disabled for this vault.[/]\n")
            sys.exit(1)

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2),
                      title=f"Uploads ({len(finished)})")
        table.add_column("File", style="cyan")
        table.add_column("Status")
        table.add_column("Progress", justify="right")
        table.add_column("Error", style="dim")
        for task in finished.values():
            table.add_row(task.file_name, status_style(task.status), f"{task.progress}%", task.error or "")

        console.print()
        console.print(table)
        console.print()
        if any(t.error for t in finished.values()):
            sys.exit(1)

    @files.command("rm")
    @click.argument("code")
    @click.argument("item_ids", nargs=-1, required=True)
    @click.option("--folder", "folder_id", default=None, help="Folder the items are in.")
    @click.option("--yes", is_flag=True, help="Skip the confirmation prompt.")
    @home_option
    @user_option
    def files_rm(code, item_ids, folder_id, yes, home, user):
        """Delete files and folders (folders take their contents with them)."""
        if not yes:
            click.confirm(f"Delete {len(item_ids)} item(s)? This cannot be undone.", abort=True)

        async def _rm():
            cli = await build_session(home, user)
            ws = await open_workspace(cli, code, folder_id=folder_id)
            try:
                for item_id in item_ids:
                    ws.toggle_selection(item_id)
                return await ws.delete_selected()
            finally:
                ws.close()

        try:
            outcome = run(_rm())
        except AccessDenied:
            console.print("\n  [red]You cannot delete items in this vault.[/]\n")
            sys.exit(1)

        if outcome.is_noop:
            console.print("\n  [yellow]No matching items in this folder.[/]\n")
            return
        if not outcome.ok:
            console.print(f"\n  [red]Delete failed, nothing was removed:[/] {outcome.error}\n")
            sys.exit(1)

        console.print(f"\n  [green]Deleted[/] {len(outcome.asset_ids)} file(s), "
                      f"{len(outcome.folder_ids)} folder(s)")
        if outcome.blob_error:
            console.print(f"  [yellow]Some stored files could not be removed:[/] {outcome.blob_error}")
        console.print()

    @files.command("mkdir")
    @click.argument("code")
    @click.argument("name")
    @click.option("--folder", "folder_id", default=None, help="Parent folder id (default: root).")
    @home_option
    @user_option
    def files_mkdir(code, name, folder_id, home, user):
        """Create a folder."""

        async def _mkdir():
            cli = await build_session(home, user)
            ws = await open_workspace(cli, code, folder_id=folder_id)
            try:
                return await ws.create_folder(name)
            finally:
                ws.close()

        try:
            folder = run(_mkdir())
        except (AccessDenied, ValueError) as exc:
            console.print(f"\n  [red]Error:[/] {exc}\n")
            sys.exit(1)
        console.print(f"\n  [green]Created folder:[/] [cyan]{folder.name}[/] [dim]({folder.id})[/]\n")

    @files.command("export")
    @click.argument("code")
    @click.argument("destination", type=click.Path(dir_okay=False))
    @click.argument("asset_ids", nargs=-1)
    @click.option("--folder", "folder_id", default=None, help="Folder to export from.")
    @home_option
    @user_option
    def files_export(code, destination, asset_ids, folder_id, home, user):
        """Export files to a ZIP archive (all files in the folder by default)."""

        async def _export():
            cli = await build_session(home, user)
            ws = await open_workspace(cli, code, folder_id=folder_id)
            try:
                return await ws.export(Path(destination), list(asset_ids) or None)
            finally:
                ws.close()

        try:
            report = run(_export())
        except AccessDenied:
            console.print("\n  [red]Downloads are disabled for this vault.[/]\n")
            sys.exit(1)

        if report.path is None:
            console.print("\n  [yellow]Nothing to export.[/]\n")
            sys.exit(1)
        console.print(f"\n  [green]Exported[/] {len(report.written)} file(s) to {report.path}")
        for name in report.skipped:
            console.print(f"  [yellow]Skipped:[/] {name}")
        console.print()

    @files.command("like")
    @click.argument("code")
    @click.argument("asset_id")
    @click.option("--folder", "folder_id", default=None, help="Folder the file is in.")
    @home_option
    @user_option
    def files_like(code, asset_id, folder_id, home, user):
        """Like a file, or unlike it if you already do."""

        async def _like():
            cli = await build_session(home, user)
            ws = await open_workspace(cli, code, folder_id=folder_id)
            try:
                return await ws.toggle_like(asset_id)
            finally:
                ws.close()

        try:
            liked = run(_like())
        except NotFound:
            console.print(f"\n  [red]File {asset_id} not found.[/]\n")
            sys.exit(1)
        console.print(f"\n  {'[magenta]Liked[/]' if liked else '[dim]Unliked[/]'} {asset_id}\n")
