"""Owned sub-field preservation for merge-aware pipeline files.

Layers (later wins):
1. The source catalog's document
2. Owned fields read from the target's current document
3. Explicit overrides for this run (``--count``, ``--fizzy``, core count pin)
"""

from __future__ import annotations

import copy
import json
from collections.abc import Mapping
from enum import StrEnum
from typing import Any

import structlog

from squadkit.errors import MergeFieldMissingError
from squadkit.models import GLOBAL_PIPELINE_PATH, ROLE_PIPELINE_DIR

log = structlog.get_logger()


class DocumentKind(StrEnum):
    GLOBAL_PIPELINE = "global_pipeline"
    ROLE_PIPELINE = "role_pipeline"


OWNED_FIELDS: dict[DocumentKind, tuple[str, ...]] = {
    DocumentKind.GLOBAL_PIPELINE: (".fizzy",),
    DocumentKind.ROLE_PIPELINE: (".count",),
}


def document_kind(path: str) -> DocumentKind | None:
    if path == GLOBAL_PIPELINE_PATH:
        return DocumentKind.GLOBAL_PIPELINE
    if path.startswith(f"{ROLE_PIPELINE_DIR}/") and path.endswith(".json"):
        return DocumentKind.ROLE_PIPELINE
    return None


def _split(field_path: str) -> list[str]:
    return [part for part in field_path.split(".") if part]


def get_field(doc: Mapping, field_path: str) -> Any:
    """Read a dotted field. Missing, null or empty-object values raise MergeFieldMissingError."""
    node: Any = doc
    for key in _split(field_path):
        if not isinstance(node, Mapping) or key not in node:
            raise MergeFieldMissingError(field_path)
        node = node[key]
    if node is None or node == {}:
        raise MergeFieldMissingError(field_path)
    return node


def set_field(doc: dict, field_path: str, value: Any) -> None:
    keys = _split(field_path)
    node = doc
    for key in keys[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            child = {}
            node[key] = child
        node = child
    node[keys[-1]] = copy.deepcopy(value)


def splice_owned_fields(
    source_doc: Mapping, target_doc: Mapping | None, fields: tuple[str, ...]
) -> dict:
    """Copy of ``source_doc`` with each owned field taken from ``target_doc`` when present."""
    merged = copy.deepcopy(dict(source_doc))
    if not target_doc:
        return merged
    for field_path in fields:
        try:
            value = get_field(target_doc, field_path)
        except MergeFieldMissingError:
            log.debug("owned_field_missing", field=field_path)
            continue
        set_field(merged, field_path, value)
    return merged


def candidate_document(
    kind: DocumentKind,
    source_doc: Mapping,
    target_doc: Mapping | None,
    overrides: Mapping[str, Any] | None = None,
) -> dict:
    """Build the document that will be compared against, and possibly written to, the target."""
    merged = splice_owned_fields(source_doc, target_doc, OWNED_FIELDS[kind])
    for field_path, value in (overrides or {}).items():
        set_field(merged, field_path, value)
    return merged


def render_document(doc: Mapping) -> bytes:
    return (json.dumps(doc, indent=2, ensure_ascii=False) + "\n").encode("utf-8")
