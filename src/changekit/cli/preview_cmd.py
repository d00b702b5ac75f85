"""changekit preview command."""

from __future__ import annotations

from pathlib import Path

import click

from changekit.apply.engine import ChangeEngine
from changekit.core.errors import ParseError
from changekit.core.output import console, print_preview_report


@click.command()
@click.argument("changes", type=click.File("r", encoding="utf-8"))
@click.option("--root", "-r", "root", default=".", type=click.Path(file_okay=False, exists=True),
              help="Project root the paths are relative to (default: current dir)")
@click.option("--report", is_flag=True, help="Print the full plain-text report with match samples")
def preview(changes, root: str, report: bool):
    """Check whether every operation would find its target, without writing anything."""
    engine = ChangeEngine(Path(root))
    try:
        changeset = engine.parse(changes.read())
    except ParseError as e:
        console.print(f"\n  [red]{e}[/red]\n")
        raise SystemExit(1)

    result = engine.preview_report(changeset)
    if report:
        click.echo(engine.preview_text(changeset))
    else:
        print_preview_report(result)

    if not result.success:
        raise SystemExit(1)
