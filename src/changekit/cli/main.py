"""Click CLI entry point for changekit."""

from __future__ import annotations

import logging

import click
from rich.logging import RichHandler

from changekit._version import __version__
from changekit.core.output import error_console


@click.group()
@click.version_option(version=__version__, prog_name="changekit")
@click.option("--verbose", "-v", is_flag=True, help="Show engine log messages")
def cli(verbose: bool):
    """changekit - apply AI-generated change-sets safely.

    Parse, preview and transactionally apply <changes> documents to a
    project tree. A failed write rolls back the whole run.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=error_console, show_path=False)],
    )


# Import and register subcommands
from changekit.cli.check_cmd import check  # noqa: E402
from changekit.cli.preview_cmd import preview  # noqa: E402
from changekit.cli.apply_cmd import apply  # noqa: E402

cli.add_command(check)
cli.add_command(preview)
cli.add_command(apply)


if __name__ == "__main__":
    cli()
