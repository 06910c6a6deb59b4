"""CLI entry points for squadkit."""

from __future__ import annotations

import difflib
import logging
from pathlib import Path

import click
import structlog

from squadkit.config import SquadkitConfig
from squadkit.errors import SquadkitError
from squadkit.models import UPDATE_CATEGORIES, FizzyConfig, RoleCategory, SyncCategory
from squadkit.planner import FileOperation
from squadkit.sync import Outcome, SyncReport


def _configure_logging(verbose: bool) -> None:
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if verbose else logging.WARNING
        ),
    )


def _get_config(ctx: click.Context) -> SquadkitConfig:
    source = ctx.obj.get("source") if ctx.obj else None
    return SquadkitConfig(source_root=source) if source else SquadkitConfig()


def _parse_fizzy(value: str | None, config: SquadkitConfig) -> FizzyConfig | None:
    if value is None:
        return None
    try:
        return FizzyConfig.from_flag(value, placeholder=config.token_placeholder)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--fizzy") from e


def _rel(config: SquadkitConfig, path: str) -> str:
    return f"{config.install_dir}/{path}"


def _diff_preview(target: Path, op: FileOperation, limit: int) -> list[str]:
    dest = target / op.path
    try:
        current = dest.read_text().splitlines(keepends=True)
        incoming = (op.content or b"").decode().splitlines(keepends=True)
    except (OSError, UnicodeDecodeError):
        return ["  (binary or unreadable file)\n"]
    diff = list(difflib.unified_diff(current, incoming, fromfile="current", tofile="catalog"))
    return diff[:limit]


def _make_confirm(config: SquadkitConfig, target: Path, yes: bool):
    if yes:
        return None

    def _confirm(op: FileOperation) -> bool:
        click.echo(f"\n  {_rel(config, op.path)} has local changes:")
        for line in _diff_preview(target, op, config.diff_preview_lines):
            click.echo(line, nl=False)
        click.echo()
        return click.confirm("  Apply update?", default=False)

    return _confirm


_VERBS = {
    Outcome.CREATED: ("Created", "Would create"),
    Outcome.UPDATED: ("Updated", "Would update"),
    Outcome.REMOVED: ("Removed", "Would remove"),
    Outcome.UNCHANGED: ("Up to date", "Up to date"),
    Outcome.SKIPPED: ("Skipped", "Skipped"),
    Outcome.FAILED: ("Failed", "Failed"),
}


def _echo_report(config: SquadkitConfig, target: Path, report: SyncReport) -> None:
    errors = {e.path: e.reason for e in report.errors}
    category: SyncCategory | None = None
    for outcome, op in report.entries:
        # Only declined updates carry content among skips.
        if outcome is Outcome.SKIPPED and op.content is None:
            continue
        if op.category is not category:
            category = op.category
            click.echo(f"\n[{category.value}]")
        verb = _VERBS[outcome][1 if report.dry_run else 0]
        prefix = "[dry-run] " if report.dry_run and outcome is not Outcome.UNCHANGED else ""
        suffix = " (core)" if op.core and outcome is Outcome.CREATED else ""
        if outcome is Outcome.FAILED:
            suffix = f" ({errors.get(op.path, 'error')})"
        click.echo(f"  {prefix}{verb}: {_rel(config, op.path)}{suffix}")
        if report.dry_run and outcome is Outcome.UPDATED and op.confirm:
            for line in _diff_preview(target, op, config.diff_preview_lines):
                click.echo(f"      {line}", nl=False)

    click.echo("\n--- Summary ---")
    click.echo(report.summary())
    if report.dry_run:
        click.echo("\n(dry run: run without --dry-run to apply changes)")


def _finish(report: SyncReport) -> None:
    if report.failed:
        raise click.ClickException(f"{len(report.failed)} file operation(s) failed")


@click.group()
@click.option(
    "--source",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Source catalog directory (default: $SQUADKIT_SOURCE_ROOT or the squadkit checkout).",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
@click.pass_context
def main(ctx: click.Context, source: Path | None, verbose: bool) -> None:
    """squadkit: install and re-sync agent-team configuration into projects."""
    _configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["source"] = source


@main.command("list")
@click.pass_context
def list_agents(ctx: click.Context) -> None:
    """Show the agents available in the source catalog."""
    from squadkit.catalog import load_catalog
    from squadkit.installer import describe_catalog

    config = _get_config(ctx)
    try:
        catalog = load_catalog(config.resolved_source_root(), config)
    except SquadkitError as e:
        raise click.ClickException(str(e)) from e

    summaries = describe_catalog(catalog)
    sections = [
        (RoleCategory.CORE, "Core team (always installed):"),
        (RoleCategory.DEV, "Dev stacks:"),
        (RoleCategory.DEVOPS, "Infrastructure (optional):"),
    ]
    click.echo("squadkit: available agents")
    for category, title in sections:
        click.echo(f"\n{title}")
        for s in (s for s in summaries if s.category is category):
            packs = f"{len(s.packs):2d} skills  {s.pack_lines:5d} lines" if s.packs else " -              "
            click.echo(f"  {s.id:<22} {packs}  {s.description}")
    click.echo()


@main.command()
@click.argument("target", type=click.Path(path_type=Path, file_okay=False))
@click.option("--agents", default="", help="Comma-separated agent ids, e.g. dev-rails,dev-node.")
@click.option("--count", type=click.IntRange(min=1), default=None, help="Instances per selected agent.")
@click.option("--fizzy", default=None, help='Board sync as "url,slug,token,boardId".')
@click.option("--dry-run", is_flag=True, help="Show what would change without writing.")
@click.option("--yes", "-y", is_flag=True, help="Apply changed files without asking.")
@click.pass_context
def install(
    ctx: click.Context,
    target: Path,
    agents: str,
    count: int | None,
    fizzy: str | None,
    dry_run: bool,
    yes: bool,
) -> None:
    """Install agents into TARGET/.claude. Safe to re-run: adds on top of what is there."""
    from squadkit.installer import install as run_install

    config = _get_config(ctx)
    fizzy_config = _parse_fizzy(fizzy, config)
    requested = [a.strip() for a in agents.split(",") if a.strip()]
    root = config.target_root(target)

    click.echo(f"Installing squadkit to {root} ...")
    try:
        result = run_install(
            config,
            target,
            requested,
            count=count,
            fizzy=fizzy_config,
            dry_run=dry_run,
            confirm=_make_confirm(config, root, yes),
        )
    except SquadkitError as e:
        raise click.ClickException(str(e)) from e

    _echo_report(config, root, result.report)

    core = [r for r in result.resolved.role_ids if r not in result.selection.counts]
    stack = sorted(result.selection.counts)
    click.echo("\nInstalled agents:")
    click.echo(f"  Core:  {' '.join(core)}")
    click.echo(f"  Stack: {' '.join(stack) or '(none)'}")
    custom = {r: c for r, c in result.selection.counts.items() if c != 1}
    if custom:
        click.echo("  Counts:")
        for role_id in stack:
            click.echo(f"    {role_id:<20} x{result.selection.counts[role_id]}")
    click.echo(f"  Skills: {len(result.resolved.pack_ids)}")
    if fizzy_config is not None:
        click.echo(f"  Fizzy:  enabled ({fizzy_config.url})")
    click.echo("\nTo add more agents later, just re-run install.")
    _finish(result.report)


@main.command()
@click.argument("target", type=click.Path(path_type=Path, file_okay=False))
@click.argument("category", required=False, type=click.Choice([c.value for c in UPDATE_CATEGORIES]))
@click.option("--dry-run", is_flag=True, help="Show what would change without applying.")
@click.option("--all", "sync_all", is_flag=True, help="Sync all source files, even ones not installed.")
@click.option("--yes", "-y", is_flag=True, help="Apply changed files without asking.")
@click.pass_context
def update(
    ctx: click.Context,
    target: Path,
    category: str | None,
    dry_run: bool,
    sync_all: bool,
    yes: bool,
) -> None:
    """Update installed configs in TARGET/.claude from the source catalog.

    Only files already present are updated unless --all is given. Pipeline
    agent counts and board-sync credentials are always kept.
    """
    from squadkit.installer import update as run_update

    config = _get_config(ctx)
    root = config.target_root(target)
    categories = [SyncCategory(category)] if category else None

    click.echo("=== squadkit update ===")
    click.echo(f"Source: {config.resolved_source_root()}")
    click.echo(f"Target: {root}")
    if dry_run:
        click.echo("(dry run: no changes will be made)")
    if sync_all:
        click.echo("(--all: will create missing files)")

    try:
        result = run_update(
            config,
            target,
            categories=categories,
            dry_run=dry_run,
            sync_all=sync_all,
            confirm=_make_confirm(config, root, yes),
        )
    except SquadkitError as e:
        raise click.ClickException(str(e)) from e

    _echo_report(config, root, result.report)
    _finish(result.report)


@main.command()
@click.argument("target", type=click.Path(path_type=Path, file_okay=False))
@click.option("--fizzy", required=True, help='Board sync as "url,slug,token,boardId" (token may be empty).')
@click.pass_context
def reconfigure(ctx: click.Context, target: Path, fizzy: str) -> None:
    """Set board-sync credentials on an existing install, leaving everything else alone."""
    from squadkit.installer import reconfigure as run_reconfigure

    config = _get_config(ctx)
    fizzy_config = _parse_fizzy(fizzy, config)
    assert fizzy_config is not None
    try:
        path = run_reconfigure(config, target, fizzy_config)
    except SquadkitError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"Fizzy configured in {path}:")
    click.echo(f"  URL:     {fizzy_config.url}")
    click.echo(f"  Slug:    {fizzy_config.account_slug}")
    click.echo(f"  Token:   {fizzy_config.token}")
    click.echo(f"  Board:   {fizzy_config.board_id or '(not set)'}")
