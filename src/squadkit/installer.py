"""Run orchestration: install, update, reconfigure and catalog listing.

Each run loads the catalog and the target state once, builds a Selection,
resolves it, plans, and hands the plan to the synchronizer. Fatal errors
surface before the first write.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path

import structlog

from squadkit.catalog import load_catalog
from squadkit.config import SquadkitConfig
from squadkit.errors import NotInstalledError, SyncIOError
from squadkit.models import (
    GLOBAL_PIPELINE_PATH,
    Catalog,
    FizzyConfig,
    RoleCategory,
    Selection,
    SyncCategory,
)
from squadkit.planner import Plan, PlanMode, build_plan
from squadkit.preserve import render_document, set_field
from squadkit.resolver import ResolvedSet, resolve
from squadkit.state import InstallationState, scan_target
from squadkit.sync import ConfirmFn, SyncReport, apply_plan, write_atomic

log = structlog.get_logger()


@dataclass
class RunResult:
    mode: PlanMode
    target: Path
    selection: Selection
    resolved: ResolvedSet
    plan: Plan
    report: SyncReport


@dataclass
class RoleSummary:
    id: str
    category: RoleCategory
    description: str
    packs: list[str]
    pack_lines: int


def build_install_selection(
    catalog: Catalog,
    state: InstallationState,
    requested: Iterable[str],
    count: int | Mapping[str, int] | None = None,
    fizzy: FizzyConfig | None = None,
) -> Selection:
    """Installed roles ∪ requested ∪ core.

    ``count`` is either one count for every requested role or a per-role
    mapping. Requested roles without an explicit count keep their installed
    count, else 1. Previously installed roles keep their count untouched.
    """
    requested = list(dict.fromkeys(requested))
    installed = state.installed_role_ids(catalog)
    existing_counts = state.installed_counts(catalog)
    if count is None:
        explicit: Mapping[str, int] = {}
    elif isinstance(count, Mapping):
        explicit = count
    else:
        explicit = {role_id: count for role_id in requested}

    counts: dict[str, int] = {}
    for role_id in dict.fromkeys([*installed, *requested]):
        if role_id in catalog.core_role_ids:
            continue
        if role_id in requested and role_id in explicit:
            counts[role_id] = explicit[role_id]
        else:
            counts[role_id] = existing_counts.get(role_id, 1)

    return Selection(
        role_ids=frozenset([*catalog.core_role_ids, *installed, *requested]),
        counts=counts,
        fizzy=fizzy,
    )


def build_update_selection(catalog: Catalog, state: InstallationState, sync_all: bool) -> Selection:
    """Update keeps whatever the target holds; ``--all`` widens it to the whole catalog."""
    role_ids = catalog.role_ids if sync_all else [*catalog.core_role_ids, *state.installed_role_ids(catalog)]
    return Selection(role_ids=frozenset(role_ids))


def _load(config: SquadkitConfig, catalog: Catalog | None) -> Catalog:
    return catalog or load_catalog(config.resolved_source_root(), config)


def install(
    config: SquadkitConfig,
    project_dir: Path,
    agents: Iterable[str],
    *,
    count: int | Mapping[str, int] | None = None,
    fizzy: FizzyConfig | None = None,
    dry_run: bool = False,
    confirm: ConfirmFn | None = None,
    catalog: Catalog | None = None,
) -> RunResult:
    catalog = _load(config, catalog)
    target = config.target_root(Path(project_dir))
    state = scan_target(target)

    selection = build_install_selection(catalog, state, agents, count=count, fizzy=fizzy)
    resolved = resolve(selection.role_ids, catalog)
    plan = build_plan(catalog, selection, resolved, state, PlanMode.INSTALL)

    log.info(
        "install_start",
        target=str(target),
        roles=len(resolved.role_ids),
        packs=len(resolved.pack_ids),
        dry_run=dry_run,
    )
    report = apply_plan(plan, target, dry_run=dry_run, confirm=confirm)
    return RunResult(PlanMode.INSTALL, target, selection, resolved, plan, report)


def update(
    config: SquadkitConfig,
    project_dir: Path,
    *,
    categories: Iterable[SyncCategory] | None = None,
    dry_run: bool = False,
    sync_all: bool = False,
    confirm: ConfirmFn | None = None,
    catalog: Catalog | None = None,
) -> RunResult:
    target = config.target_root(Path(project_dir))
    if not target.is_dir() and not sync_all:
        raise NotInstalledError(
            f"{target} does not exist. Run install first, or update --all to create all files."
        )
    catalog = _load(config, catalog)
    state = scan_target(target)

    mode = PlanMode.UPDATE_ALL if sync_all else PlanMode.UPDATE
    selection = build_update_selection(catalog, state, sync_all)
    resolved = resolve(selection.role_ids, catalog)
    plan = build_plan(catalog, selection, resolved, state, mode, categories)

    log.info("update_start", target=str(target), mode=mode.value, dry_run=dry_run)
    report = apply_plan(plan, target, dry_run=dry_run, confirm=confirm)
    return RunResult(mode, target, selection, resolved, plan, report)


def reconfigure(
    config: SquadkitConfig,
    project_dir: Path,
    fizzy: FizzyConfig,
    *,
    catalog: Catalog | None = None,
) -> Path:
    """Rewrite only the fizzy fields of an installed global pipeline config.

    Also refreshes the board-sync script from the catalog when one is available.
    """
    target = config.target_root(Path(project_dir))
    config_path = target / GLOBAL_PIPELINE_PATH
    if not config_path.is_file():
        raise NotInstalledError(f"{config_path} not found. Run install first.")

    try:
        doc = json.loads(config_path.read_text())
    except json.JSONDecodeError as e:
        raise NotInstalledError(f"{config_path} is not valid JSON: {e}") from e
    if not isinstance(doc, dict):
        raise NotInstalledError(f"{config_path} must hold a JSON object")

    if catalog is None and (config.resolved_source_root() / "agents").is_dir():
        catalog = load_catalog(config.resolved_source_root(), config)

    fizzy = fizzy.model_copy(update={"sync": True})
    for key, value in fizzy.to_document().items():
        set_field(doc, f".fizzy.{key}", value)
    _write(target, GLOBAL_PIPELINE_PATH, render_document(doc), executable=False)
    log.info("fizzy_reconfigured", path=str(config_path), url=fizzy.url, board=fizzy.board_id)

    if catalog is not None:
        for script in catalog.scripts:
            if script.path == config.board_sync_script:
                _write(target, script.path, script.content, executable=True)
                log.info("board_sync_script_refreshed", path=script.path)
    return config_path


def _write(target: Path, rel: str, content: bytes, *, executable: bool) -> None:
    try:
        write_atomic(target / rel, content, executable=executable)
    except OSError as e:
        log.error("reconfigure_write_failed", path=rel, error=str(e))
        raise SyncIOError(rel, e.strerror or str(e)) from e


def describe_catalog(catalog: Catalog) -> list[RoleSummary]:
    summaries: list[RoleSummary] = []
    for role in catalog.roles:
        summaries.append(
            RoleSummary(
                id=role.id,
                category=role.category,
                description=role.description,
                packs=list(role.declared_packs),
                pack_lines=sum(
                    catalog.packs[p].line_count for p in role.declared_packs if p in catalog.packs
                ),
            )
        )
    return summaries
