"""Tests for catalog loading."""

from __future__ import annotations

import pytest
import yaml

from conftest import CORE_AGENTS, write
from squadkit.catalog import load_catalog, parse_frontmatter
from squadkit.errors import CatalogCorruptError
from squadkit.models import RoleCategory, SyncCategory


class TestParseFrontmatter:
    def test_reads_mapping(self):
        meta = parse_frontmatter("---\nname: x\nskills: a, b\n---\nbody\n")
        assert meta == {"name": "x", "skills": "a, b"}

    def test_no_frontmatter(self):
        assert parse_frontmatter("# Just a heading\n") == {}

    def test_empty_block(self):
        assert parse_frontmatter("---\n\n---\n") == {}

    def test_non_mapping_raises(self):
        with pytest.raises(yaml.YAMLError):
            parse_frontmatter("---\n- a\n- b\n---\n")


class TestLoadCatalog:
    def test_role_order_core_then_dev_then_devops(self, catalog):
        assert catalog.role_ids == [*CORE_AGENTS, "dev-node", "dev-rails", "devop-aws"]

    def test_categories(self, catalog):
        assert [r.id for r in catalog.roles_in(RoleCategory.DEV)] == ["dev-node", "dev-rails"]
        assert [r.id for r in catalog.roles_in(RoleCategory.DEVOPS)] == ["devop-aws"]
        assert catalog.core_role_ids == CORE_AGENTS

    def test_undistributed_agent_ignored(self, catalog):
        assert catalog.role("scratchpad") is None

    def test_declared_packs_parsed_from_csv(self, catalog):
        assert catalog.role("dev-rails").declared_packs == (
            "rails-conventions",
            "ruby-testing",
            "api-design",
        )

    def test_description(self, catalog):
        assert catalog.role("dev-node").description == "The dev-node role"

    def test_pipeline_file_strips_agent_suffix(self, catalog):
        assert catalog.role("pm-agent").pipeline_file.path == "pipeline/agents/pm.json"
        assert catalog.role("pm-agent").pipeline_name == "pm"
        assert catalog.role("dev-rails").pipeline_file.path == "pipeline/agents/dev-rails.json"

    def test_role_without_pipeline_config(self, catalog):
        assert catalog.role("pipeline-agent").pipeline_file is None
        assert catalog.role("pipeline-agent").pipeline_name is None

    def test_pack_files_include_nested(self, catalog):
        paths = [f.path for f in catalog.packs["rails-conventions"].files]
        assert paths == [
            "skills/rails-conventions/SKILL.md",
            "skills/rails-conventions/references/active-record.md",
        ]

    def test_pack_requires(self, catalog):
        assert catalog.packs["ruby-testing"].requires == ("testing-basics",)
        assert catalog.packs["api-design"].requires == ()

    def test_pack_line_count_counts_skill_md_only(self, catalog):
        assert catalog.packs["rails-conventions"].line_count == 8

    def test_utility_packs(self, catalog):
        assert catalog.utility_pack_ids == ("pipeline", "pipeline-status", "review")

    def test_scripts_exclude_test_and_results(self, catalog):
        paths = [s.path for s in catalog.scripts]
        assert paths == ["scripts/fizzy-sync.sh", "scripts/kanban.sh", "scripts/metrics/collect.sh"]
        assert all(s.executable for s in catalog.scripts)

    def test_support_files(self, catalog):
        assert [h.path for h in catalog.support_files(SyncCategory.HOOKS)] == ["hooks/on-stop.sh"]
        assert catalog.hooks[0].executable
        assert [s.path for s in catalog.support_files(SyncCategory.SETTINGS)] == ["settings.json"]
        assert [t.path for t in catalog.support_files(SyncCategory.TEMPLATES)] == ["templates/feature.md"]
        assert catalog.support_files(SyncCategory.AGENTS) == ()

    def test_global_config(self, catalog):
        assert catalog.global_config.path == "pipeline/config.json"


class TestCatalogCorrupt:
    def test_missing_agents_dir(self, tmp_path, config):
        with pytest.raises(CatalogCorruptError, match="agents"):
            load_catalog(tmp_path / "nowhere", config)

    def test_missing_core_agent(self, source_root, config):
        (source_root / "agents" / "qa-agent.md").unlink()
        with pytest.raises(CatalogCorruptError, match="qa-agent"):
            load_catalog(source_root, config)

    def test_undeclared_pack_dir(self, source_root, config):
        write(source_root, "agents/dev-go.md", "---\nskills: go-idioms\n---\n")
        with pytest.raises(CatalogCorruptError, match="go-idioms"):
            load_catalog(source_root, config)

    def test_missing_utility_pack(self, source_root, config):
        (source_root / "skills" / "review" / "SKILL.md").unlink()
        (source_root / "skills" / "review").rmdir()
        with pytest.raises(CatalogCorruptError, match="review"):
            load_catalog(source_root, config)

    def test_missing_required_pack(self, source_root, config):
        write(source_root, "skills/api-design/SKILL.md", "---\nrequires: http-basics\n---\n")
        with pytest.raises(CatalogCorruptError, match="http-basics"):
            load_catalog(source_root, config)

    def test_missing_global_config(self, source_root, config):
        (source_root / "pipeline" / "config.json").unlink()
        with pytest.raises(CatalogCorruptError, match="pipeline/config.json"):
            load_catalog(source_root, config)

    def test_invalid_role_pipeline_json(self, source_root, config):
        write(source_root, "pipeline/agents/dev-node.json", "{not json")
        with pytest.raises(CatalogCorruptError, match="dev-node.json"):
            load_catalog(source_root, config)

    def test_invalid_frontmatter(self, source_root, config):
        write(source_root, "agents/dev-node.md", "---\nskills: [unclosed\n---\n")
        with pytest.raises(CatalogCorruptError, match="frontmatter"):
            load_catalog(source_root, config)
