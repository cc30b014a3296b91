"""flowsync CLI: reconcile a Git tree with an orchestration instance."""

import logging
import sys

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from flowsync import __version__
from flowsync.utils.logging import configure_logging

console = Console()

ACTION_STYLES = {
    "ADDED": "green",
    "UPDATED_TO_TREE": "cyan",
    "UPDATED_TO_INSTANCE": "cyan",
    "UNCHANGED": "dim",
    "DELETED_FROM_TREE": "red",
    "DELETED_FROM_INSTANCE": "red",
    "SKIPPED_PROTECTED": "yellow",
}


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Log progress and debug details")
def main(verbose: bool):
    """flowsync: bidirectional sync between Git and an orchestration instance.

    Compares workflow definitions, namespace files and dashboards stored in
    a Git branch with those on a live instance, decides per resource which
    side wins, records the decisions as a diff and applies them.
    """
    configure_logging(level=logging.DEBUG if verbose else logging.WARNING)


def _print_decisions(records):
    table = Table(title=f"Decisions ({len(records)})")
    table.add_column("Action")
    table.add_column("Kind", style="dim")
    table.add_column("Key", style="cyan")
    table.add_column("File")

    for record in records:
        style = ACTION_STYLES.get(record.action, "")
        action = f"[{style}]{record.action}[/]" if style else record.action
        table.add_row(action, record.kind, escape(record.key), escape(record.file or "-"))

    console.print(table)


def _run(config_path: str, dry_run: bool | None):
    from flowsync.config import load_config
    from flowsync.sync.diff import DiffRecord
    from flowsync.sync.errors import SyncError
    from flowsync.sync.orchestrator import build_orchestrator

    try:
        config = load_config(config_path)
        if dry_run is not None:
            config = config.with_dry_run(dry_run)
        with build_orchestrator(config) as orchestrator:
            result = orchestrator.run()
    except SyncError as e:
        console.print(f"[red]{type(e).__name__}:[/] {escape(str(e))}")
        sys.exit(1)

    records = sorted((DiffRecord.from_decision(d) for d in result.decisions), key=DiffRecord.sort_key)
    _print_decisions(records)

    if result.drift is not None:
        console.print(Panel(escape(result.drift.summary()), title="Drift"))
    if result.plan is not None:
        for violation in result.plan.violations:
            console.print(f"  [yellow]![/] {escape(str(violation))}")
        for key in result.plan.skipped:
            console.print(f"  [yellow]![/] Skipped invalid {key}")
    return result


# ── Plan ─────────────────────────────────────────────────────────────


@main.command()
@click.argument("config_path")
def plan(config_path: str):
    """Show what a sync would do without changing anything.

    CONFIG_PATH is a YAML run configuration. The run is forced to dry-run
    mode; the diff artifact is still recorded.
    """
    console.print(f"\n[bold blue]flowsync[/] plan: {config_path}\n")

    result = _run(config_path, dry_run=True)
    console.print(f"\n[green]Diff recorded:[/] {result.diff_handle}")


# ── Sync ─────────────────────────────────────────────────────────────


@main.command()
@click.argument("config_path")
@click.option("--dry-run", is_flag=True, default=None, help="Plan and record the diff only")
def sync(config_path: str, dry_run: bool | None):
    """Reconcile, apply, commit and push.

    The configuration's own dry-run setting applies unless --dry-run is given.
    """
    console.print(f"\n[bold blue]flowsync[/] sync: {config_path}\n")

    result = _run(config_path, dry_run=dry_run or None)

    if result.dry_run:
        console.print("\n[yellow]Dry run, nothing applied.[/]")
    elif result.commit_id:
        console.print(f"\n[green]Committed[/] {result.commit_id}")
        if result.commit_url:
            console.print(f"  {result.commit_url}")
    else:
        console.print("\n[dim]No changes to commit.[/]")
    console.print(f"[green]Diff recorded:[/] {result.diff_handle}")
    if result.stats_handle:
        console.print(f"[green]Diff stats:[/] {result.stats_handle}")


# ── Diff ─────────────────────────────────────────────────────────────


@main.command()
@click.argument("handle")
@click.option("--artifacts-dir", "-a", default=".flowsync", help="Artifact directory")
def diff(handle: str, artifacts_dir: str):
    """Print a recorded diff artifact."""
    from flowsync.sync.diff import read_diff
    from flowsync.sync.storage import LocalArtifactStorage

    storage = LocalArtifactStorage(artifacts_dir)
    try:
        records = read_diff(storage, handle)
    except FileNotFoundError:
        console.print(f"[red]Diff not found:[/] {handle}")
        sys.exit(1)

    if not records:
        console.print("[yellow]Empty diff.[/]")
        return
    _print_decisions(records)


# ── History ──────────────────────────────────────────────────────────


@main.command()
@click.option("--artifacts-dir", "-a", default=".flowsync", help="Artifact directory")
@click.option("--scope", "-s", default=None, help="Only runs for this scope")
def history(artifacts_dir: str, scope: str | None):
    """List past sync runs."""
    from flowsync.sync.history import RunHistory

    records = RunHistory(artifacts_dir).get_history(scope)
    if not records:
        console.print("[yellow]No runs recorded.[/]")
        return

    table = Table(title=f"Sync Runs ({len(records)})")
    table.add_column("Started", style="dim")
    table.add_column("Scope", style="cyan")
    table.add_column("Source")
    table.add_column("Mode")
    table.add_column("Commit")
    table.add_column("Changes", justify="right")

    for r in records:
        changes = sum(n for action, n in r.counts.items() if action != "UNCHANGED")
        table.add_row(
            r.started_at[:19],
            r.scope,
            r.source_of_truth,
            "dry-run" if r.dry_run else "applied",
            r.commit_id[:12] if r.commit_id else "-",
            str(changes),
        )

    console.print(table)


# ── Validate ─────────────────────────────────────────────────────────


@main.command()
@click.argument("path")
@click.option("--kind", "-k", default="definition", type=click.Choice(["definition", "dashboard"]))
def validate(path: str, kind: str):
    """Check a definition or dashboard file before committing it."""
    from flowsync.validation import validate_dashboard, validate_definition

    with open(path, encoding="utf-8") as f:
        content = f.read()

    validator = validate_definition if kind == "definition" else validate_dashboard
    result = validator(content)
    if result.passed:
        console.print(f"  [green]v[/] {path} is a valid {kind}")
        return

    console.print(f"[red]{path} is not a valid {kind}:[/]")
    for issue in result.issues:
        console.print(f"  [red]x[/] {escape(issue)}")
    sys.exit(1)


# ── Schema ───────────────────────────────────────────────────────────


@main.command(name="schema")
@click.option("--kind", "-k", default="definition", type=click.Choice(["definition", "dashboard"]))
def dump_schema(kind: str):
    """Print the JSON Schema used to validate a kind."""
    import json

    from flowsync.validation.schema import DASHBOARD_SCHEMA, DEFINITION_SCHEMA

    schema = DEFINITION_SCHEMA if kind == "definition" else DASHBOARD_SCHEMA
    click.echo(json.dumps(schema, indent=2))


if __name__ == "__main__":
    main()
