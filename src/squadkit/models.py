"""Data models and enums for squadkit."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

TOKEN_PLACEHOLDER = "${FIZZY_TOKEN}"


class RoleCategory(StrEnum):
    CORE = "core"
    DEV = "dev"
    DEVOPS = "devops"


class SyncCategory(StrEnum):
    """Target sub-trees, in the order a run visits them."""

    AGENTS = "agents"
    SKILLS = "skills"
    PIPELINE = "pipeline"
    HOOKS = "hooks"
    SCRIPTS = "scripts"
    SETTINGS = "settings"
    TEMPLATES = "templates"


# Categories the `update` command accepts by name.
UPDATE_CATEGORIES = (
    SyncCategory.AGENTS,
    SyncCategory.SKILLS,
    SyncCategory.PIPELINE,
    SyncCategory.HOOKS,
    SyncCategory.SCRIPTS,
)

GLOBAL_PIPELINE_PATH = "pipeline/config.json"
ROLE_PIPELINE_DIR = "pipeline/agents"
SKILLS_DIR = "skills"


@dataclass(frozen=True)
class SourceFile:
    """A catalog file, addressed by its path relative to the install root."""

    path: str
    content: bytes
    executable: bool = False


@dataclass(frozen=True)
class KnowledgePack:
    id: str
    files: tuple[SourceFile, ...] = ()
    requires: tuple[str, ...] = ()

    @property
    def line_count(self) -> int:
        return sum(f.content.count(b"\n") for f in self.files if f.path.endswith("SKILL.md"))


@dataclass(frozen=True)
class Role:
    id: str
    category: RoleCategory
    agent_file: SourceFile
    description: str = ""
    declared_packs: tuple[str, ...] = ()
    pipeline_file: SourceFile | None = None

    @property
    def is_core(self) -> bool:
        return self.category is RoleCategory.CORE

    @property
    def pipeline_name(self) -> str | None:
        """Stem of the per-role pipeline config, e.g. ``pm`` for ``pm-agent``."""
        if self.pipeline_file is None:
            return None
        return Path(self.pipeline_file.path).stem


@dataclass(frozen=True)
class Catalog:
    """Immutable snapshot of a source distribution."""

    source_root: Path
    roles: tuple[Role, ...]
    packs: Mapping[str, KnowledgePack]
    global_config: SourceFile
    utility_pack_ids: tuple[str, ...] = ()
    hooks: tuple[SourceFile, ...] = ()
    scripts: tuple[SourceFile, ...] = ()
    settings: tuple[SourceFile, ...] = ()
    templates: tuple[SourceFile, ...] = ()

    def role(self, role_id: str) -> Role | None:
        for role in self.roles:
            if role.id == role_id:
                return role
        return None

    @property
    def role_ids(self) -> list[str]:
        return [r.id for r in self.roles]

    @property
    def core_role_ids(self) -> list[str]:
        return [r.id for r in self.roles if r.is_core]

    @property
    def selectable_role_ids(self) -> list[str]:
        return [r.id for r in self.roles if not r.is_core]

    def roles_in(self, category: RoleCategory) -> list[Role]:
        return [r for r in self.roles if r.category is category]

    def support_files(self, category: SyncCategory) -> tuple[SourceFile, ...]:
        return {
            SyncCategory.HOOKS: self.hooks,
            SyncCategory.SCRIPTS: self.scripts,
            SyncCategory.SETTINGS: self.settings,
            SyncCategory.TEMPLATES: self.templates,
        }.get(category, ())


class FizzyConfig(BaseModel):
    """Board-sync credentials persisted under ``fizzy`` in the global pipeline config.

    The board uses the fixed Todo / In Progress / Review column model with
    done cards closed, so no column mapping is persisted here.
    """

    model_config = ConfigDict(populate_by_name=True)

    url: str
    account_slug: str = Field(alias="accountSlug")
    token: str = TOKEN_PLACEHOLDER
    sync: bool = True
    board_id: str = Field(default="", alias="boardId")

    @classmethod
    def from_flag(cls, value: str, placeholder: str = TOKEN_PLACEHOLDER) -> FizzyConfig:
        """Parse the CLI form ``url,slug,token,boardId``; token and board may be empty."""
        parts = [p.strip() for p in value.split(",", 3)]
        parts += [""] * (4 - len(parts))
        url, slug, token, board = parts
        if not url or not slug:
            raise ValueError("Fizzy URL and account slug are required (url,slug,token,boardId)")
        return cls(url=url, account_slug=slug, token=token or placeholder, board_id=board)

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True)


@dataclass(frozen=True)
class Selection:
    """Resolved installation intent for one run. Read-only once built."""

    role_ids: frozenset[str]
    counts: Mapping[str, int] = field(default_factory=dict)
    fizzy: FizzyConfig | None = None

    def __post_init__(self) -> None:
        for role_id, count in self.counts.items():
            if count < 1:
                raise ValueError(f"Count for {role_id} must be a positive integer, got {count}")

    def count_for(self, role: Role) -> int | None:
        if role.is_core:
            return 1
        return self.counts.get(role.id)
