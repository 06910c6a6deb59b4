"""Catalog loader: scans a source distribution into an immutable snapshot.

Layout read from ``source_root``:

- ``agents/<id>.md`` with YAML frontmatter (``description``, ``skills``)
- ``skills/<id>/`` knowledge packs, ``SKILL.md`` may declare ``requires``
- ``pipeline/config.json`` and ``pipeline/agents/<name>.json``
- ``hooks/*.sh``, ``scripts/*.sh`` plus script sub-directories
- ``settings/settings.json`` and ``templates/*``
"""

from __future__ import annotations

import json
import os
import re
from pathlib import Path

import structlog
import yaml

from squadkit.config import SquadkitConfig
from squadkit.errors import CatalogCorruptError
from squadkit.models import (
    GLOBAL_PIPELINE_PATH,
    ROLE_PIPELINE_DIR,
    SKILLS_DIR,
    Catalog,
    KnowledgePack,
    Role,
    RoleCategory,
    SourceFile,
)

log = structlog.get_logger()

_FRONTMATTER_RE = re.compile(r"\A---\s*\n(.*?)\n---\s*(?:\n|\Z)", re.DOTALL)


def parse_frontmatter(text: str) -> dict:
    """Return the YAML frontmatter block of a markdown file, or {} when absent."""
    match = _FRONTMATTER_RE.match(text)
    if not match:
        return {}
    data = yaml.safe_load(match.group(1)) or {}
    if not isinstance(data, dict):
        raise yaml.YAMLError("frontmatter is not a mapping")
    return data


def _id_list(value: object) -> tuple[str, ...]:
    """Normalize ``a, b`` or ``[a, b]`` into an ordered, de-duplicated tuple."""
    if value is None:
        return ()
    items = value.split(",") if isinstance(value, str) else [str(v) for v in value]
    seen: dict[str, None] = {}
    for item in items:
        item = item.strip()
        if item:
            seen.setdefault(item, None)
    return tuple(seen)


def _source_file(path: Path, rel: str, *, executable: bool = False) -> SourceFile:
    return SourceFile(path=rel, content=path.read_bytes(), executable=executable)


def _read_json(path: Path) -> dict:
    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise CatalogCorruptError(f"Invalid pipeline config {path}: {e}") from e
    if not isinstance(data, dict):
        raise CatalogCorruptError(f"Pipeline config {path} must be a JSON object")
    return data


def _role_category(role_id: str, config: SquadkitConfig) -> RoleCategory | None:
    if role_id in config.core_agents:
        return RoleCategory.CORE
    for prefix, category in config.role_prefixes.items():
        if role_id.startswith(prefix):
            return RoleCategory(category)
    return None


def _pipeline_file(source_root: Path, role_id: str) -> SourceFile | None:
    """Find a role's pipeline config: ``<id>.json`` then ``<id minus -agent>.json``."""
    candidates = [role_id]
    if role_id.endswith("-agent"):
        candidates.append(role_id.removesuffix("-agent"))
    for name in candidates:
        path = source_root / ROLE_PIPELINE_DIR / f"{name}.json"
        if path.is_file():
            _read_json(path)
            return _source_file(path, f"{ROLE_PIPELINE_DIR}/{name}.json")
    return None


def _load_packs(source_root: Path) -> dict[str, KnowledgePack]:
    packs: dict[str, KnowledgePack] = {}
    skills_dir = source_root / SKILLS_DIR
    if not skills_dir.is_dir():
        return packs
    for pack_dir in sorted(p for p in skills_dir.iterdir() if p.is_dir()):
        meta: dict = {}
        skill_md = pack_dir / "SKILL.md"
        if skill_md.is_file():
            try:
                meta = parse_frontmatter(skill_md.read_text())
            except yaml.YAMLError as e:
                raise CatalogCorruptError(f"Invalid frontmatter in {skill_md}: {e}") from e
        files = tuple(
            _source_file(f, f"{SKILLS_DIR}/{pack_dir.name}/{f.relative_to(pack_dir).as_posix()}")
            for f in sorted(pack_dir.rglob("*"))
            if f.is_file()
        )
        packs[pack_dir.name] = KnowledgePack(
            id=pack_dir.name,
            files=files,
            requires=_id_list(meta.get("requires")),
        )
    return packs


def _load_roles(source_root: Path, config: SquadkitConfig) -> list[Role]:
    agents_dir = source_root / "agents"
    roles: list[Role] = []
    for agent_path in sorted(agents_dir.glob("*.md")):
        role_id = agent_path.stem
        category = _role_category(role_id, config)
        if category is None:
            log.debug("agent_not_distributed", agent=role_id)
            continue
        try:
            meta = parse_frontmatter(agent_path.read_text())
        except yaml.YAMLError as e:
            raise CatalogCorruptError(f"Invalid frontmatter in {agent_path}: {e}") from e
        roles.append(
            Role(
                id=role_id,
                category=category,
                agent_file=_source_file(agent_path, f"agents/{agent_path.name}"),
                description=str(meta.get("description", "")),
                declared_packs=_id_list(meta.get("skills")),
                pipeline_file=_pipeline_file(source_root, role_id),
            )
        )

    order = {RoleCategory.CORE: 0, RoleCategory.DEV: 1, RoleCategory.DEVOPS: 2}
    core_rank = {role_id: i for i, role_id in enumerate(config.core_agents)}
    roles.sort(key=lambda r: (order[r.category], core_rank.get(r.id, 0), r.id))
    return roles


def _load_scripts(source_root: Path, config: SquadkitConfig) -> tuple[SourceFile, ...]:
    scripts_dir = source_root / "scripts"
    if not scripts_dir.is_dir():
        return ()
    files: list[SourceFile] = []
    for path in sorted(scripts_dir.glob("*.sh")):
        if path.name in config.excluded_scripts:
            continue
        files.append(_source_file(path, f"scripts/{path.name}", executable=True))
    for sub in sorted(p for p in scripts_dir.iterdir() if p.is_dir()):
        if sub.name.endswith(config.excluded_script_dir_suffix):
            continue
        for path in sorted(sub.iterdir()):
            if path.is_file():
                files.append(
                    _source_file(
                        path,
                        f"scripts/{sub.name}/{path.name}",
                        executable=os.access(path, os.X_OK) or path.suffix == ".sh",
                    )
                )
    return tuple(files)


def _validate(roles: list[Role], packs: dict[str, KnowledgePack], config: SquadkitConfig) -> None:
    present = {r.id for r in roles}
    missing_core = [a for a in config.core_agents if a not in present]
    if missing_core:
        raise CatalogCorruptError(f"Core agent definitions missing: {', '.join(missing_core)}")

    for role in roles:
        for pack_id in role.declared_packs:
            if pack_id not in packs:
                raise CatalogCorruptError(
                    f"Agent {role.id} references knowledge pack {pack_id!r} with no skills/{pack_id}/"
                )
    for pack_id in config.utility_skills:
        if pack_id not in packs:
            raise CatalogCorruptError(f"Utility knowledge pack {pack_id!r} has no skills/{pack_id}/")
    for pack in packs.values():
        for dep in pack.requires:
            if dep not in packs:
                raise CatalogCorruptError(f"Knowledge pack {pack.id} requires missing pack {dep!r}")


def load_catalog(source_root: Path, config: SquadkitConfig | None = None) -> Catalog:
    """Read the source catalog. Raises CatalogCorruptError on any inconsistency."""
    config = config or SquadkitConfig()
    source_root = Path(source_root)

    if not (source_root / "agents").is_dir():
        raise CatalogCorruptError(f"No agents/ directory in catalog {source_root}")
    global_path = source_root / GLOBAL_PIPELINE_PATH
    if not global_path.is_file():
        raise CatalogCorruptError(f"Missing {GLOBAL_PIPELINE_PATH} in catalog {source_root}")
    _read_json(global_path)

    roles = _load_roles(source_root, config)
    packs = _load_packs(source_root)
    _validate(roles, packs, config)

    hooks_dir = source_root / "hooks"
    hooks = tuple(
        _source_file(p, f"hooks/{p.name}", executable=True) for p in sorted(hooks_dir.glob("*.sh"))
    )
    settings_path = source_root / "settings" / "settings.json"
    settings = (_source_file(settings_path, "settings.json"),) if settings_path.is_file() else ()
    templates_dir = source_root / "templates"
    templates = tuple(
        _source_file(p, f"templates/{p.name}") for p in sorted(templates_dir.glob("*")) if p.is_file()
    )

    catalog = Catalog(
        source_root=source_root,
        roles=tuple(roles),
        packs=packs,
        global_config=_source_file(global_path, GLOBAL_PIPELINE_PATH),
        utility_pack_ids=tuple(config.utility_skills),
        hooks=hooks,
        scripts=_load_scripts(source_root, config),
        settings=settings,
        templates=templates,
    )
    log.info("catalog_loaded", source=str(source_root), roles=len(roles), packs=len(packs))
    return catalog
