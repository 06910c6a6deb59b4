"""File synchronizer: executes a plan against the install root."""

from __future__ import annotations

import os
import shutil
import stat
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

import structlog

from squadkit.errors import SyncIOError
from squadkit.planner import FileOperation, OpKind, Plan

log = structlog.get_logger()

ConfirmFn = Callable[[FileOperation], bool]


class Outcome(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"
    REMOVED = "removed"
    FAILED = "failed"


_LABELS = {
    Outcome.CREATED: "Created",
    Outcome.UPDATED: "Updated",
    Outcome.UNCHANGED: "Up to date",
    Outcome.SKIPPED: "Skipped",
    Outcome.REMOVED: "Removed",
    Outcome.FAILED: "Failed",
}


@dataclass
class SyncReport:
    """Per-outcome record of a run, in execution order."""

    dry_run: bool = False
    entries: list[tuple[Outcome, FileOperation]] = field(default_factory=list)
    errors: list[SyncIOError] = field(default_factory=list)

    def add(self, outcome: Outcome, op: FileOperation) -> None:
        self.entries.append((outcome, op))

    def paths(self, outcome: Outcome) -> list[str]:
        return [op.path for o, op in self.entries if o is outcome]

    @property
    def created(self) -> list[str]:
        return self.paths(Outcome.CREATED)

    @property
    def updated(self) -> list[str]:
        return self.paths(Outcome.UPDATED)

    @property
    def unchanged(self) -> list[str]:
        return self.paths(Outcome.UNCHANGED)

    @property
    def skipped(self) -> list[str]:
        return self.paths(Outcome.SKIPPED)

    @property
    def removed(self) -> list[str]:
        return self.paths(Outcome.REMOVED)

    @property
    def failed(self) -> list[str]:
        return self.paths(Outcome.FAILED)

    def counts(self) -> dict[Outcome, int]:
        return {outcome: len(self.paths(outcome)) for outcome in Outcome}

    @property
    def ok(self) -> bool:
        return not self.errors

    def summary(self) -> str:
        counts = self.counts()
        lines = [f"  {_LABELS[o] + ':':<12} {counts[o]}" for o in Outcome]
        lines.append(f"  {'Total:':<12} {len(self.entries)}")
        return "\n".join(lines)


def write_atomic(dest: Path, content: bytes, executable: bool) -> None:
    dest.parent.mkdir(parents=True, exist_ok=True)
    tmp = dest.with_name(dest.name + ".squadkit-tmp")
    try:
        tmp.write_bytes(content)
        if executable:
            mode = tmp.stat().st_mode
            tmp.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        os.replace(tmp, dest)
    finally:
        if tmp.exists():
            tmp.unlink()


def _remove(dest: Path, directory: bool) -> None:
    if directory and dest.is_dir():
        shutil.rmtree(dest)
    elif dest.exists():
        dest.unlink()


def _execute(op: FileOperation, root: Path) -> None:
    dest = root / op.path
    if op.kind is OpKind.REMOVE:
        _remove(dest, op.directory)
        return
    assert op.content is not None
    write_atomic(dest, op.content, op.executable)


def apply_plan(
    plan: Plan,
    root: Path,
    *,
    dry_run: bool = False,
    confirm: ConfirmFn | None = None,
) -> SyncReport:
    """Run every operation in order. A failing file is recorded and the run continues.

    ``confirm`` is consulted for plain-file updates only; when absent every
    update is accepted. Dry runs never call it and never write.
    """
    root = Path(root)
    report = SyncReport(dry_run=dry_run)

    for op in plan:
        if op.kind is OpKind.UNCHANGED:
            report.add(Outcome.UNCHANGED, op)
            continue
        if op.kind is OpKind.SKIP:
            report.add(Outcome.SKIPPED, op)
            continue

        outcome = {
            OpKind.CREATE: Outcome.CREATED,
            OpKind.UPDATE: Outcome.UPDATED,
            OpKind.REMOVE: Outcome.REMOVED,
        }[op.kind]

        if dry_run:
            report.add(outcome, op)
            continue

        if op.kind is OpKind.UPDATE and op.confirm and confirm is not None and not confirm(op):
            log.info("update_declined", path=op.path)
            report.add(Outcome.SKIPPED, op)
            continue

        try:
            _execute(op, root)
        except OSError as e:
            err = SyncIOError(op.path, e.strerror or str(e))
            log.warning("sync_io_failed", path=op.path, error=err.reason)
            report.errors.append(err)
            report.add(Outcome.FAILED, op)
            continue

        log.info(f"file_{outcome.value}", path=op.path)
        report.add(outcome, op)

    return report
