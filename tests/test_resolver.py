"""Tests for dependency resolution over in-memory catalogs."""

from __future__ import annotations

from pathlib import Path

import pytest

from squadkit.errors import DependencyCycleError, UnknownRoleError
from squadkit.models import Catalog, KnowledgePack, Role, RoleCategory, SourceFile
from squadkit.resolver import resolve


def _role(role_id: str, category: RoleCategory, packs: tuple[str, ...] = ()) -> Role:
    return Role(
        id=role_id,
        category=category,
        agent_file=SourceFile(f"agents/{role_id}.md", b"# role\n"),
        declared_packs=packs,
    )


def _catalog(roles: list[Role], packs: dict[str, tuple[str, ...]], utility: tuple[str, ...] = ()) -> Catalog:
    return Catalog(
        source_root=Path("/catalog"),
        roles=tuple(roles),
        packs={pid: KnowledgePack(id=pid, requires=req) for pid, req in packs.items()},
        global_config=SourceFile("pipeline/config.json", b"{}"),
        utility_pack_ids=utility,
    )


@pytest.fixture
def small_catalog() -> Catalog:
    return _catalog(
        [
            _role("pm-agent", RoleCategory.CORE, ("planning",)),
            _role("dev-a", RoleCategory.DEV, ("shared", "a-only")),
            _role("dev-b", RoleCategory.DEV, ("shared",)),
            _role("devop-c", RoleCategory.DEVOPS, ("infra",)),
        ],
        {
            "a-only": (),
            "infra": ("shared",),
            "planning": (),
            "shared": ("base",),
            "base": (),
            "status": (),
        },
        utility=("status",),
    )


class TestResolve:
    def test_core_always_included(self, small_catalog):
        result = resolve([], small_catalog)
        assert result.role_ids == ("pm-agent",)
        assert result.pack_ids == ("planning", "status")

    def test_selection_in_catalog_order(self, small_catalog):
        result = resolve(["devop-c", "dev-a"], small_catalog)
        assert result.role_ids == ("pm-agent", "dev-a", "devop-c")

    def test_shared_pack_appears_once(self, small_catalog):
        result = resolve(["dev-a", "dev-b"], small_catalog)
        assert result.pack_ids.count("shared") == 1
        assert len(result.pack_ids) == len(set(result.pack_ids))

    def test_transitive_requires(self, small_catalog):
        result = resolve(["dev-b"], small_catalog)
        assert "base" in result.pack_ids
        assert "a-only" not in result.pack_ids

    def test_pack_order_follows_catalog(self, small_catalog):
        result = resolve(["dev-a", "devop-c"], small_catalog)
        assert result.pack_ids == ("a-only", "infra", "planning", "shared", "base", "status")

    def test_duplicate_selection_ids(self, small_catalog):
        assert resolve(["dev-a", "dev-a"], small_catalog) == resolve(["dev-a"], small_catalog)

    def test_unknown_role(self, small_catalog):
        with pytest.raises(UnknownRoleError) as exc:
            resolve(["dev-z"], small_catalog)
        assert exc.value.unknown == ["dev-z"]
        assert exc.value.available == ["dev-a", "dev-b", "devop-c"]

    def test_cycle_detected(self):
        catalog = _catalog(
            [_role("dev-a", RoleCategory.DEV, ("x",))],
            {"x": ("y",), "y": ("z",), "z": ("x",)},
        )
        with pytest.raises(DependencyCycleError) as exc:
            resolve(["dev-a"], catalog)
        assert exc.value.cycle == ["x", "y", "z", "x"]

    def test_diamond_is_not_a_cycle(self):
        catalog = _catalog(
            [_role("dev-a", RoleCategory.DEV, ("left", "right"))],
            {"left": ("base",), "right": ("base",), "base": ()},
        )
        assert resolve(["dev-a"], catalog).pack_ids == ("left", "right", "base")
