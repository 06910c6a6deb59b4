"""Snapshot of what a target directory currently holds."""

from __future__ import annotations

import hashlib
import json
import stat
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from squadkit.models import (
    GLOBAL_PIPELINE_PATH,
    ROLE_PIPELINE_DIR,
    SKILLS_DIR,
    Catalog,
    SourceFile,
)

log = structlog.get_logger()


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


@dataclass(frozen=True)
class InstallationState:
    """Prior-install facts, loaded once per run and passed into planning.

    ``files`` maps install-root-relative POSIX paths to content digests;
    ``documents`` holds the parsed pipeline JSON files that carry owned fields;
    ``non_executable`` lists files without any execute bit.
    """

    root: Path
    exists: bool = False
    files: Mapping[str, str] = field(default_factory=dict)
    documents: Mapping[str, dict] = field(default_factory=dict)
    pack_ids: frozenset[str] = frozenset()
    non_executable: frozenset[str] = frozenset()

    def has(self, path: str) -> bool:
        return path in self.files

    def matches(self, source: SourceFile) -> bool:
        return self.files.get(source.path) == sha256_bytes(source.content)

    def document(self, path: str) -> dict | None:
        return self.documents.get(path)

    def count_for(self, pipeline_name: str) -> int | None:
        doc = self.documents.get(f"{ROLE_PIPELINE_DIR}/{pipeline_name}.json")
        count = doc.get("count") if doc else None
        if isinstance(count, bool) or not isinstance(count, int):
            return None
        return count if count > 0 else None

    def installed_role_ids(self, catalog: Catalog) -> list[str]:
        """Non-core catalog roles with an agent file or pipeline config in the target."""
        installed: list[str] = []
        for role in catalog.roles:
            if role.is_core:
                continue
            if self.has(role.agent_file.path) or (
                role.pipeline_file is not None and self.has(role.pipeline_file.path)
            ):
                installed.append(role.id)
        return installed

    def installed_counts(self, catalog: Catalog) -> dict[str, int]:
        counts: dict[str, int] = {}
        for role_id in self.installed_role_ids(catalog):
            role = catalog.role(role_id)
            name = role.pipeline_name if role else None
            count = self.count_for(name) if name else None
            if count is not None:
                counts[role_id] = count
        return counts


def _is_pipeline_document(rel: str) -> bool:
    return rel == GLOBAL_PIPELINE_PATH or (
        rel.startswith(f"{ROLE_PIPELINE_DIR}/") and rel.endswith(".json") and rel.count("/") == 2
    )


def scan_target(root: Path) -> InstallationState:
    """Read the install root into an InstallationState. A missing root is an empty state."""
    root = Path(root)
    if not root.is_dir():
        return InstallationState(root=root, exists=False)

    files: dict[str, str] = {}
    documents: dict[str, dict] = {}
    non_executable: set[str] = set()
    for path in sorted(root.rglob("*")):
        if not path.is_file():
            continue
        rel = path.relative_to(root).as_posix()
        data = path.read_bytes()
        files[rel] = sha256_bytes(data)
        if not path.stat().st_mode & (stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH):
            non_executable.add(rel)
        if _is_pipeline_document(rel):
            try:
                doc = json.loads(data)
            except (json.JSONDecodeError, UnicodeDecodeError):
                log.warning("pipeline_config_unreadable", path=rel)
                continue
            if isinstance(doc, dict):
                documents[rel] = doc

    skills = root / SKILLS_DIR
    pack_ids = frozenset(p.name for p in skills.iterdir() if p.is_dir()) if skills.is_dir() else frozenset()

    log.debug("target_scanned", root=str(root), files=len(files), packs=len(pack_ids))
    return InstallationState(
        root=root,
        exists=True,
        files=files,
        documents=documents,
        pack_ids=pack_ids,
        non_executable=frozenset(non_executable),
    )
