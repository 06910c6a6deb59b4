"""Installation planner: diff the resolved set against a target snapshot.

Planning is a pure function of (catalog, selection, resolved set, target
state, mode). It never touches the filesystem, so the same plan drives both
dry runs and real runs.
"""

from __future__ import annotations

import json
from collections import Counter
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import structlog

from squadkit.models import SKILLS_DIR, Catalog, Role, Selection, SourceFile, SyncCategory
from squadkit.preserve import DocumentKind, candidate_document, render_document
from squadkit.resolver import ResolvedSet
from squadkit.state import InstallationState

log = structlog.get_logger()


class PlanMode(StrEnum):
    INSTALL = "install"
    UPDATE = "update"
    UPDATE_ALL = "update_all"


class OpKind(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    UNCHANGED = "unchanged"
    SKIP = "skip"
    REMOVE = "remove"


@dataclass(frozen=True)
class FileOperation:
    kind: OpKind
    category: SyncCategory
    path: str
    content: bytes | None = None
    executable: bool = False
    merge_aware: bool = False
    confirm: bool = False
    core: bool = False
    directory: bool = False


@dataclass
class Plan:
    mode: PlanMode
    operations: list[FileOperation] = field(default_factory=list)

    def __iter__(self) -> Iterator[FileOperation]:
        return iter(self.operations)

    def __len__(self) -> int:
        return len(self.operations)

    def of_kind(self, kind: OpKind) -> list[FileOperation]:
        return [op for op in self.operations if op.kind is kind]

    def counts(self) -> dict[OpKind, int]:
        tally = Counter(op.kind for op in self.operations)
        return {kind: tally.get(kind, 0) for kind in OpKind}

    @property
    def has_changes(self) -> bool:
        return any(op.kind in (OpKind.CREATE, OpKind.UPDATE, OpKind.REMOVE) for op in self.operations)


class _PlanBuilder:
    def __init__(
        self,
        catalog: Catalog,
        selection: Selection,
        resolved: ResolvedSet,
        state: InstallationState,
        mode: PlanMode,
    ) -> None:
        self.catalog = catalog
        self.selection = selection
        self.resolved = resolved
        self.state = state
        self.mode = mode

    # -- generic classification --

    def file_op(
        self, category: SyncCategory, source: SourceFile, *, create_ok: bool, core: bool = False,
        confirm: bool = True,
    ) -> FileOperation:
        path = source.path
        if not self.state.has(path):
            if not create_ok:
                return FileOperation(OpKind.SKIP, category, path)
            return FileOperation(
                OpKind.CREATE, category, path, source.content, executable=source.executable, core=core
            )
        if self.state.matches(source):
            if source.executable and path in self.state.non_executable:
                # same bytes, lost +x: rewrite to restore the mode
                return FileOperation(
                    OpKind.UPDATE, category, path, source.content, executable=True, confirm=False
                )
            return FileOperation(OpKind.UNCHANGED, category, path, executable=source.executable)
        return FileOperation(
            OpKind.UPDATE, category, path, source.content, executable=source.executable, confirm=confirm
        )

    def document_op(
        self,
        source: SourceFile,
        kind: DocumentKind,
        overrides: dict[str, Any],
        *,
        create_ok: bool,
        core: bool = False,
    ) -> FileOperation:
        path = source.path
        target_doc = self.state.document(path)
        candidate = candidate_document(kind, json.loads(source.content), target_doc, overrides)
        content = render_document(candidate)
        category = SyncCategory.PIPELINE
        if not self.state.has(path):
            if not create_ok:
                return FileOperation(OpKind.SKIP, category, path)
            return FileOperation(OpKind.CREATE, category, path, content, merge_aware=True, core=core)
        if target_doc == candidate:
            return FileOperation(OpKind.UNCHANGED, category, path, merge_aware=True)
        return FileOperation(OpKind.UPDATE, category, path, content, merge_aware=True)

    # -- role scoping --

    def roles_in_scope(self) -> Iterable[Role]:
        """Install mode plans only the selection; update modes visit the whole catalog."""
        for role in self.catalog.roles:
            if self.mode is PlanMode.INSTALL and role.id not in self.selection.role_ids:
                continue
            yield role

    def role_create_ok(self, role: Role) -> bool:
        if role.is_core or self.mode is PlanMode.UPDATE_ALL:
            return True
        return self.mode is PlanMode.INSTALL and role.id in self.selection.role_ids

    # -- categories --

    def agents(self) -> list[FileOperation]:
        return [
            self.file_op(
                SyncCategory.AGENTS, role.agent_file, create_ok=self.role_create_ok(role), core=role.is_core
            )
            for role in self.roles_in_scope()
        ]

    def skills(self) -> list[FileOperation]:
        """Prune stale pack directories and sync the files of every resolved pack.

        A pack directory is the unit of installation: files the target added
        inside a kept pack are left alone.
        """
        ops: list[FileOperation] = []
        required = set(self.resolved.pack_ids)
        for pack_id in sorted(self.state.pack_ids - required):
            ops.append(
                FileOperation(OpKind.REMOVE, SyncCategory.SKILLS, f"{SKILLS_DIR}/{pack_id}", directory=True)
            )
        for pack_id in self.resolved.pack_ids:
            for source in self.catalog.packs[pack_id].files:
                ops.append(self.file_op(SyncCategory.SKILLS, source, create_ok=True))
        return ops

    def pipeline(self) -> list[FileOperation]:
        overrides: dict[str, Any] = {}
        if self.selection.fizzy is not None:
            for key, value in self.selection.fizzy.to_document().items():
                overrides[f".fizzy.{key}"] = value
        ops = [
            self.document_op(
                self.catalog.global_config,
                DocumentKind.GLOBAL_PIPELINE,
                overrides,
                create_ok=True,
                core=True,
            )
        ]
        for role in self.roles_in_scope():
            if role.pipeline_file is None:
                continue
            count = self.selection.count_for(role)
            ops.append(
                self.document_op(
                    role.pipeline_file,
                    DocumentKind.ROLE_PIPELINE,
                    {".count": count} if count is not None else {},
                    create_ok=self.role_create_ok(role),
                    core=role.is_core,
                )
            )
        return ops

    def support(self, category: SyncCategory) -> list[FileOperation]:
        create_ok = self.mode in (PlanMode.INSTALL, PlanMode.UPDATE_ALL)
        return [
            self.file_op(category, source, create_ok=create_ok)
            for source in self.catalog.support_files(category)
        ]

    def for_category(self, category: SyncCategory) -> list[FileOperation]:
        if category is SyncCategory.AGENTS:
            return self.agents()
        if category is SyncCategory.SKILLS:
            return self.skills()
        if category is SyncCategory.PIPELINE:
            return self.pipeline()
        return self.support(category)


def build_plan(
    catalog: Catalog,
    selection: Selection,
    resolved: ResolvedSet,
    state: InstallationState,
    mode: PlanMode,
    categories: Iterable[SyncCategory] | None = None,
) -> Plan:
    """Compute the ordered operation list for one run.

    Core auto-creations come first, then each category in SyncCategory
    order, each following catalog order.
    """
    wanted = set(categories) if categories else set(SyncCategory)
    builder = _PlanBuilder(catalog, selection, resolved, state, mode)

    ops: list[FileOperation] = []
    for category in SyncCategory:
        if category in wanted:
            ops.extend(builder.for_category(category))

    def core_create(op: FileOperation) -> bool:
        return op.core and op.kind is OpKind.CREATE

    ordered = [op for op in ops if core_create(op)] + [op for op in ops if not core_create(op)]
    plan = Plan(mode=mode, operations=ordered)
    log.debug("plan_built", mode=mode.value, **{k.value: v for k, v in plan.counts().items()})
    return plan
