"""Dependency resolution: selected roles -> roles + knowledge packs to install."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

import structlog

from squadkit.errors import DependencyCycleError, UnknownRoleError
from squadkit.models import Catalog

log = structlog.get_logger()


@dataclass(frozen=True)
class ResolvedSet:
    role_ids: tuple[str, ...]
    pack_ids: tuple[str, ...]


def resolve(selected_ids: Iterable[str], catalog: Catalog) -> ResolvedSet:
    """Union the selection with the core roles and collect every pack they need.

    Packs are de-duplicated across roles and closed over pack ``requires``.
    Both tuples follow catalog order so plans are reproducible.
    """
    selected = set(selected_ids)
    unknown = sorted(selected - set(catalog.role_ids))
    if unknown:
        raise UnknownRoleError(unknown, catalog.selectable_role_ids)

    wanted = selected | set(catalog.core_role_ids)
    role_ids = tuple(r for r in catalog.role_ids if r in wanted)

    roots: list[str] = list(catalog.utility_pack_ids)
    for role_id in role_ids:
        role = catalog.role(role_id)
        if role is not None:
            roots.extend(role.declared_packs)

    required = _closure(roots, catalog)
    pack_ids = tuple(p for p in catalog.packs if p in required)
    log.debug("selection_resolved", roles=len(role_ids), packs=len(pack_ids))
    return ResolvedSet(role_ids=role_ids, pack_ids=pack_ids)


def _closure(roots: list[str], catalog: Catalog) -> set[str]:
    """Transitive closure over pack ``requires``; raises on cycles."""
    done: set[str] = set()
    stack: list[str] = []

    def visit(pack_id: str) -> None:
        if pack_id in done:
            return
        if pack_id in stack:
            raise DependencyCycleError(stack[stack.index(pack_id) :] + [pack_id])
        stack.append(pack_id)
        pack = catalog.packs.get(pack_id)
        for dep in pack.requires if pack else ():
            visit(dep)
        stack.pop()
        done.add(pack_id)

    for root in roots:
        visit(root)
    return done
