"""
EventVault CLI — shared media vaults from the command line.

The main Click group is defined here and every command group is
registered from its own module.

Entry point: eventvault.cli:main
"""

from __future__ import annotations

import logging

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="eventvault")
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to stderr.")
def main(verbose: bool):
    """EventVault — shared media vaults for events.

    Create a vault, hand out its code, collect everyone's photos.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )


# ---------------------------------------------------------------------------
# Register all command groups from modular files
# ---------------------------------------------------------------------------

from .vault_cmd import register_vault_commands
from .files_cmd import register_files_commands

register_vault_commands(main)
register_files_commands(main)
