"""Rich terminal formatting for changekit output."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from changekit.core.models import ApplyResult, ChangeSet, FileAction, PreviewReport

console = Console()
error_console = Console(stderr=True)


ACTION_COLORS = {
    FileAction.CREATE: "green",
    FileAction.MODIFY: "yellow",
    FileAction.DELETE: "red",
}


def format_change_line(line: str) -> str:
    """Color a change-log entry by its prefix."""
    text = escape(line)
    if line.startswith("Error:"):
        return f"  [red]{text}[/red]"
    if line.startswith("Warning:"):
        return f"  [yellow]{text}[/yellow]"
    if line.startswith(("Processing ", "Created ", "Modified ", "Deleted ", "Rolled back ")):
        return f"  [bold]{text}[/bold]"
    return f"    [dim]{text}[/dim]"


def print_changeset_summary(changeset: ChangeSet) -> None:
    """Print the files of a parsed change-set and any validation warnings."""
    table = Table(title=f"Change-set v{changeset.version}", title_justify="left")
    table.add_column("Action")
    table.add_column("Path")
    table.add_column("Operations", justify="right")
    for change in changeset.files:
        color = ACTION_COLORS[change.action]
        table.add_row(
            f"[{color}]{change.action.value}[/{color}]",
            escape(change.path),
            str(len(change.operations)),
        )
    console.print(table)

    if changeset.meta:
        console.print(f"  [dim]{escape(changeset.meta.strip())}[/dim]")

    if changeset.warnings:
        console.print("\n  [yellow]Validation warnings:[/yellow]")
        for warning in changeset.warnings:
            console.print(f"    - {escape(warning)}")

    if changeset.diagnostics:
        console.print("\n  [cyan]Pattern diagnostics:[/cyan]")
        for note in changeset.diagnostics:
            console.print(f"    - {escape(note)}")
    console.print()


def print_preview_report(report: PreviewReport) -> None:
    """Print a preview report as one panel."""
    lines = []
    for fp in sorted(report.files, key=lambda f: 0 if f.has_issues else 1):
        icon = "[red]❌[/red]" if fp.has_issues else "[green]✅[/green]"
        status = "" if fp.file_exists else " [dim](missing)[/dim]"
        lines.append(f"  {icon} {fp.action.value:<6} {escape(fp.file_path)}{status}")
        if fp.problem:
            lines.append(f"       [red]{escape(fp.problem)}[/red]")
        for i, op in enumerate(fp.operations, start=1):
            if op.success:
                detail = f"{op.match_count} match(es) via {op.match_method.value}"
                lines.append(f"       #{i} [green]{detail}[/green]")
            else:
                lines.append(f"       #{i} [red]{escape(op.error or 'no matches')}[/red]")
            if op.auto_fixed:
                for fix in op.fixed_details:
                    lines.append(f"          [cyan]auto-fix: {escape(fix)}[/cyan]")

    border = "green" if report.success else "red"
    lines.append("")
    lines.append(f"  {escape(report.message)}")
    console.print(Panel(
        "\n".join(lines),
        title="[bold]Change-set Preview[/bold]",
        border_style=border,
        padding=(0, 1),
    ))


def print_apply_result(result: ApplyResult) -> None:
    """Print the change log and outcome of an apply run."""
    console.print()
    for line in result.changes:
        console.print(format_change_line(line))
    console.print()

    prefix = "[dim](dry run)[/dim] " if result.dry_run else ""
    if result.success:
        console.print(f"  {prefix}[green]✅ {escape(result.message)}[/green]")
    else:
        console.print(f"  {prefix}[red]❌ {escape(result.message)}[/red]")
        for error in result.errors:
            console.print(f"     [red]-> {error.kind.value}: {escape(error.message)}[/red]")
    console.print()
