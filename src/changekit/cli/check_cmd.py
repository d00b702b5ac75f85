"""changekit check command."""

from __future__ import annotations

import click

from changekit.apply.parser import ChangeSetParser
from changekit.core.errors import ParseError
from changekit.core.output import console, print_changeset_summary


@click.command()
@click.argument("changes", type=click.File("r", encoding="utf-8"))
def check(changes):
    """Parse a change-set and report its structure and warnings.

    CHANGES is a file holding the model output, or - for stdin.
    """
    try:
        changeset = ChangeSetParser().parse(changes.read())
    except ParseError as e:
        console.print(f"\n  [red]{e}[/red]\n")
        raise SystemExit(1)

    print_changeset_summary(changeset)
