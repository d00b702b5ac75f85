"""changekit apply command."""

from __future__ import annotations

from pathlib import Path

import click
from rich.prompt import Confirm

from changekit.apply.engine import ChangeEngine
from changekit.core.errors import ParseError
from changekit.core.output import console, print_apply_result, print_preview_report


@click.command()
@click.argument("changes", type=click.File("r", encoding="utf-8"))
@click.option("--root", "-r", "root", default=".", type=click.Path(file_okay=False, exists=True),
              help="Project root the paths are relative to (default: current dir)")
@click.option("--dry-run", is_flag=True, help="Simulate the run without touching any file")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
def apply(changes, root: str, dry_run: bool, yes: bool):
    """Apply a change-set to the project.

    All files are backed up in memory first; if any write fails, every
    file already changed in this run is restored.
    """
    engine = ChangeEngine(Path(root))
    try:
        changeset = engine.parse(changes.read())
    except ParseError as e:
        console.print(f"\n  [red]{e}[/red]\n")
        raise SystemExit(1)

    print_preview_report(engine.preview_report(changeset))

    if not yes and not dry_run:
        if not Confirm.ask(f"  Apply changes to {len(changeset.files)} file(s)?", default=False):
            console.print("  [dim]Cancelled.[/dim]")
            return

    result = engine.apply(changeset, dry_run=dry_run or None)
    print_apply_result(result)

    if not result.success:
        raise SystemExit(1)
