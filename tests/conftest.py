from __future__ import annotations

import json
from pathlib import Path

import pytest

from squadkit.catalog import load_catalog
from squadkit.config import SquadkitConfig
from squadkit.models import Catalog

CORE_AGENTS = [
    "pipeline-agent",
    "pm-agent",
    "ba-agent",
    "designer-agent",
    "architect-agent",
    "integration-agent",
    "qa-agent",
]

AGENT_SKILLS = {
    "qa-agent": "testing-basics",
    "dev-rails": "rails-conventions, ruby-testing, api-design",
    "dev-node": "node-patterns, api-design",
    "devop-aws": "aws-infra",
}

PACKS = {
    "pipeline": "",
    "pipeline-status": "",
    "review": "",
    "api-design": "",
    "aws-infra": "",
    "node-patterns": "",
    "rails-conventions": "",
    "ruby-testing": "testing-basics",
    "testing-basics": "",
}

GLOBAL_CONFIG = {
    "planning": {"model": "opus"},
    "implementation": {"model": "sonnet"},
    "fizzy": {
        "url": "",
        "accountSlug": "",
        "token": "${FIZZY_TOKEN}",
        "sync": False,
        "boardId": "",
    },
}


def write(root: Path, rel: str, content: str | bytes, executable: bool = False) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, bytes):
        path.write_bytes(content)
    else:
        path.write_text(content)
    if executable:
        path.chmod(0o755)
    return path


def agent_markdown(agent_id: str, skills: str = "") -> str:
    lines = ["---", f"name: {agent_id}", f"description: The {agent_id} role"]
    if skills:
        lines.append(f"skills: {skills}")
    lines += ["---", "", f"# {agent_id}", "", "Instructions.", ""]
    return "\n".join(lines)


def role_pipeline(agent_id: str, skills: list[str] | None = None) -> str:
    doc = {
        "agent": agent_id,
        "role": "worker",
        "count": 1,
        "skills": skills or [],
        "mcp": [],
        "taskFilter": {"labels": [agent_id]},
    }
    return json.dumps(doc, indent=2) + "\n"


def build_catalog(root: Path) -> Path:
    for agent_id in CORE_AGENTS:
        write(root, f"agents/{agent_id}.md", agent_markdown(agent_id, AGENT_SKILLS.get(agent_id, "")))
        if agent_id != "pipeline-agent":
            name = agent_id.removesuffix("-agent")
            write(root, f"pipeline/agents/{name}.json", role_pipeline(agent_id))
    for agent_id in ("dev-rails", "dev-node", "devop-aws"):
        write(root, f"agents/{agent_id}.md", agent_markdown(agent_id, AGENT_SKILLS[agent_id]))
        write(root, f"pipeline/agents/{agent_id}.json", role_pipeline(agent_id))
    write(root, "agents/scratchpad.md", agent_markdown("scratchpad"))

    for pack_id, requires in PACKS.items():
        header = ["---", f"name: {pack_id}", f"description: {pack_id} knowledge"]
        if requires:
            header.append(f"requires: {requires}")
        header += ["---", "", f"# {pack_id}", "line one", "line two", ""]
        write(root, f"skills/{pack_id}/SKILL.md", "\n".join(header))
    write(root, "skills/rails-conventions/references/active-record.md", "# Active Record\n")

    write(root, "pipeline/config.json", json.dumps(GLOBAL_CONFIG, indent=2) + "\n")

    write(root, "hooks/on-stop.sh", "#!/bin/sh\necho stop\n", executable=True)
    write(root, "scripts/fizzy-sync.sh", "#!/bin/sh\necho sync v1\n", executable=True)
    write(root, "scripts/kanban.sh", "#!/bin/sh\necho board\n", executable=True)
    write(root, "scripts/test-setup.sh", "#!/bin/sh\necho test\n", executable=True)
    write(root, "scripts/update.sh", "#!/bin/sh\necho update\n", executable=True)
    write(root, "scripts/metrics/collect.sh", "#!/bin/sh\necho collect\n", executable=True)
    write(root, "scripts/bench-results/out.txt", "results\n")
    write(root, "settings/settings.json", '{"permissions": {"allow": []}}\n')
    write(root, "templates/feature.md", "# Feature\n")
    return root


def snapshot(root: Path) -> dict[str, bytes]:
    return {
        p.relative_to(root).as_posix(): p.read_bytes() for p in sorted(root.rglob("*")) if p.is_file()
    }


@pytest.fixture
def source_root(tmp_path) -> Path:
    return build_catalog(tmp_path / "source")


@pytest.fixture
def config(source_root) -> SquadkitConfig:
    return SquadkitConfig(source_root=source_root)


@pytest.fixture
def catalog(source_root, config) -> Catalog:
    return load_catalog(source_root, config)


@pytest.fixture
def project(tmp_path) -> Path:
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def target(project, config) -> Path:
    return config.target_root(project)
